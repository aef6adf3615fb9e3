import math

BASE_POINTS = 100
MAX_SPEED_BONUS = 50
SPEED_BONUS_WINDOW_MS = 5000
WRONG_ANSWER_PENALTY = -20


def speed_bonus(time_taken_ms) -> float:
    """Linear bonus from MAX_SPEED_BONUS at 0 ms down to nothing at the window edge."""
    t = max(0, time_taken_ms or 0)
    if t >= SPEED_BONUS_WINDOW_MS:
        return 0
    return max(0, MAX_SPEED_BONUS - t / 100)


def score_answer(is_correct: bool, time_taken_ms, penalize_wrong: bool = True) -> int:
    """Points for one submission.

    Correct answers earn BASE_POINTS plus the speed bonus, floored once the
    two are added. Wrong answers cost WRONG_ANSWER_PENALTY whatever the
    timing, or nothing when the quiz does not penalize wrong answers.
    """
    if not is_correct:
        return WRONG_ANSWER_PENALTY if penalize_wrong else 0
    return int(math.floor(BASE_POINTS + speed_bonus(time_taken_ms)))
