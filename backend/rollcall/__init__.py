"""Rollcall - Rotating-credential attendance service, application factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)


def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database and the session service
    setup_database(app)
    setup_attendance_service(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        from rollcall.services.attendance_service import get_attendance_service
        return jsonify({
            'status': 'healthy',
            'service': 'Rollcall',
            'version': '1.0.0',
            'active_sessions': len(get_attendance_service().registry.active_sessions())
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from rollcall.api.sessions import sessions_bp

    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from rollcall.utils.helpers import handle_error, error_response
    from rollcall.utils.errors import AttendanceError
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        if error.status_code >= 500:
            app.logger.error('Attendance operation failed: %s', error.message)
        return error_response(error.message, error.status_code, code=error.code)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e.description, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.getLogger('rollcall').setLevel(level)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)
        logging.getLogger('rollcall').addHandler(file_handler)

        app.logger.setLevel(level)
        app.logger.info('Rollcall startup')


def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models
        from rollcall.models import Subject, AttendanceRecord  # noqa: F401


def setup_attendance_service(app: Flask) -> None:
    """Create the in-memory session registry, ledger and credential channel."""
    from rollcall.services.attendance_service import init_app
    init_app(app)


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('add-subject')
    @click.argument('code')
    @click.argument('title')
    def add_subject(code, title):
        """Register a subject that sessions can be opened for."""
        from rollcall.models.subject import Subject
        from rollcall.utils.validators import Validator

        if not Validator.is_identifier(code):
            raise click.BadParameter('Subject code must be a short identifier', param_hint='CODE')

        if Subject.query.filter_by(code=code).first():
            click.echo(f'Subject already exists: {code}')
            return

        Subject(code=code, title=title).save()
        click.echo(f'Subject created: {code}')

    @app.cli.command('list-subjects')
    def list_subjects():
        """List registered subjects."""
        from rollcall.models.subject import Subject

        for subject in Subject.query.order_by(Subject.code).all():
            state = 'active' if subject.is_active else 'inactive'
            click.echo(f'{subject.code}\t{subject.title}\t{state}')
