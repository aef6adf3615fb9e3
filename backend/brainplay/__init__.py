from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from brainplay.main import main
    flask_app.register_blueprint(main)

    from brainplay.api.quizzes import quizzes, players
    flask_app.register_blueprint(quizzes, url_prefix='/api/quizzes')
    flask_app.register_blueprint(players, url_prefix='/api/players')

    from brainplay.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates all quiz tables."""
        import brainplay.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('validate-csv')
    @click.argument('path', type=click.Path(exists=True, dir_okay=False))
    def validate_csv_command(path):
        """Validates a question CSV file and lists any problems."""
        from brainplay.services.quiz.csv_import import parse_csv, validate_csv
        with open(path, encoding='utf-8-sig') as fh:
            rows = parse_csv(fh.read())
        result = validate_csv(rows)
        if result.valid:
            click.echo(f'OK: {len(rows)} question(s)')
            return
        for message in result.errors:
            click.echo(message, err=True)
        raise SystemExit(1)

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(validate_csv_command)

    return flask_app
