"""Quiz domain services: CSV ingestion, scoring, ranking, session store,
realtime fan-out and the play-screen state machine.

HTTP routes and socket handlers import from here, keeping transport
concerns separated from core game mechanics.
"""
