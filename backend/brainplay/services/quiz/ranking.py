from dataclasses import dataclass, asdict
from typing import Iterable, List, Optional

from brainplay.models import avatar_glyph


@dataclass(frozen=True)
class LeaderboardEntry:
    playerId: str
    nickname: str
    team: Optional[str]
    avatar: str
    score: int
    correctAnswers: int
    totalQuestions: int
    accuracy: float
    rank: int

    def to_dict(self):
        data = asdict(self)
        data['avatarGlyph'] = avatar_glyph(self.avatar)
        return data


def _score_of(player):
    if isinstance(player, dict):
        return player['score']
    return player.score


def calculate_leaderboard_rank(players: Iterable) -> List[int]:
    """Competition ranking: each rank is 1 + the number of strictly higher scores.

    Ties share a rank and leave a gap behind them. Ranks come back in the
    caller's order, ranks[i] belonging to players[i].
    """
    scores = [_score_of(p) for p in players]
    ordered = sorted(range(len(scores)), key=lambda i: scores[i], reverse=True)
    ranks = [0] * len(scores)
    current_rank = 1
    last_score = None
    for position, idx in enumerate(ordered):
        if scores[idx] != last_score:
            current_rank = position + 1
            last_score = scores[idx]
        ranks[idx] = current_rank
    return ranks


def _player_fields(player):
    # Accepts Player rows or their serialized to_dict() snapshots
    if isinstance(player, dict):
        answers = player.get('answeredQuestions') or []
        correct = sum(1 for a in answers if a.get('isCorrect'))
        return player['id'], player['nickname'], player.get('team'), player.get('avatar'), player['score'], correct, len(answers)
    answers = list(player.answers)
    correct = sum(1 for a in answers if a.is_correct)
    return player.id, player.nickname, player.team, player.avatar, player.score, correct, len(answers)


def build_leaderboard(players) -> List[LeaderboardEntry]:
    players = list(players)
    ranks = calculate_leaderboard_rank(players)
    entries = []
    for player, rank in zip(players, ranks):
        player_id, nickname, team, avatar, score, correct, total = _player_fields(player)
        entries.append(LeaderboardEntry(
            playerId=player_id,
            nickname=nickname,
            team=team,
            avatar=avatar,
            score=score,
            correctAnswers=correct,
            totalQuestions=total,
            accuracy=(correct / total) * 100 if total else 0.0,
            rank=rank,
        ))
    entries.sort(key=lambda e: (e.rank, e.nickname.lower()))
    return entries
