import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///brainplay.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Per-question timers (seconds)
    QUESTION_DURATION_SEC = int(os.environ.get('QUESTION_DURATION_SEC', '10'))
    RESULTS_DURATION_SEC = int(os.environ.get('RESULTS_DURATION_SEC', '10'))
    # Server-side host drives question advancement when enabled
    AUTO_ADVANCE = os.environ.get('AUTO_ADVANCE', '0').lower() in ('1', 'true', 'yes')
    # Attempts at finding a PIN not held by an active quiz
    PIN_GENERATION_ATTEMPTS = int(os.environ.get('PIN_GENERATION_ATTEMPTS', '20'))
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
        ).split(',') if o.strip()
    ]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
