"""Attendance Session & Integrity Engine - Application Factory."""
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
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)

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
    
    # Outbound event queue
    from attendance_engine.services.event_queue import init_event_queue
    init_event_queue(app)
    
    # Register blueprints
    register_blueprints(app)
    
    # Register error handlers
    register_error_handlers(app)
    
    # Make models known to the metadata
    with app.app_context():
        from attendance_engine import models  # noqa: F401
    
    # Add CLI commands
    register_commands(app)
    
    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Attendance Session & Integrity Engine',
            'version': '1.0.0'
        })
    
    return app

def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from attendance_engine.api.auth import auth_bp
    from attendance_engine.api.sessions import sessions_bp
    from attendance_engine.api.attendance import attendance_bp
    from attendance_engine.api.disputes import disputes_bp
    from attendance_engine.api.summaries import summaries_bp
    from attendance_engine.api.fraud import fraud_bp
    from attendance_engine.api.face import face_bp
    from attendance_engine.api.notifications import notifications_bp
    
    # Auth
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    
    # Core Features
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(disputes_bp, url_prefix='/api/disputes')
    app.register_blueprint(summaries_bp, url_prefix='/api/summaries')
    app.register_blueprint(fraud_bp, url_prefix='/api/fraud')
    app.register_blueprint(face_bp, url_prefix='/api/face')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')

def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from sqlalchemy.exc import SQLAlchemyError
    from werkzeug.exceptions import HTTPException
    from attendance_engine.utils.errors import AttendanceError
    from attendance_engine.utils.helpers import handle_error
    
    @app.errorhandler(AttendanceError)
    def handle_attendance_error(error):
        if error.status_code >= 500:
            db.session.rollback()
            app.logger.error('%s: %s', error.code, error.message)
        return jsonify(error.to_dict()), error.status_code
    
    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        app.logger.exception('Database error')
        return jsonify({
            'error': True,
            'code': 'INTERNAL_ERROR',
            'message': 'A database error occurred, please retry',
            'status_code': 500
        }), 500
    
    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)
    
    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)
    
    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'code': 'TOKEN_EXPIRED',
            'message': 'Token has expired',
            'status_code': 401
        }), 401
    
    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'code': 'INVALID_TOKEN',
            'message': 'Invalid token',
            'status_code': 401
        }), 401
    
    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'code': 'UNAUTHENTICATED',
            'message': 'Authorization token required',
            'status_code': 401
        }), 401

def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.getLogger('attendance_engine').setLevel(level)
    
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
        logging.getLogger('attendance_engine').addHandler(file_handler)
        
        app.logger.setLevel(level)
        app.logger.info('Attendance engine startup')

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
    
    @app.cli.command('seed-demo')
    def seed_demo():
        """Seed a teacher, a class and a few enrolled students."""
        from attendance_engine.services.seed_service import SeedService
        
        try:
            result = SeedService.seed_demo()
        except Exception as e:
            db.session.rollback()
            raise click.ClickException(f'Error seeding database: {e}')
        click.echo(f"Seeded class {result['class_id']} taught by {result['teacher_email']} "
                   f"with {len(result['student_emails'])} students.")
    
    @app.cli.command('run-worker')
    @click.option('--max-events', type=int, default=None, help='Stop after this many events')
    def run_worker(max_events):
        """Drain the Redis event queue."""
        from attendance_engine.services.event_queue import RedisEventQueue
        
        event_queue = app.extensions['event_queue']
        if not isinstance(event_queue, RedisEventQueue):
            raise click.ClickException('run-worker needs EVENT_QUEUE_BACKEND=redis')
        handled = event_queue.run_worker(max_events=max_events)
        click.echo(f'Handled {handled} events.')
