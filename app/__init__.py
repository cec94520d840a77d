"""
Flask application factory.

This module implements the application factory pattern for creating
Flask application instances with different configurations.
"""

from flask import Flask
import os
import logging
from datetime import datetime

from .extensions import db, migrate, limiter
from .config import get_config

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """
    Application factory function.

    Args:
        config_name: Configuration name (development, testing, production)
                    If None, determined from environment

    Returns:
        Flask application instance
    """
    app = Flask(__name__)

    # Apply ProxyFix for correct IP and scheme handling behind reverse proxies
    from werkzeug.middleware.proxy_fix import ProxyFix
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    # Load configuration
    config_class = get_config(config_name, validate=(config_name == 'production'))
    app.config.from_object(config_class)
    app.config['ENV_NAME'] = config_name or os.environ.get('FLASK_ENV', 'development')
    app.config['VERSION'] = datetime.now().strftime('%Y%m%d%H%M%S')

    # Ensure instance directory exists
    basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    os.makedirs(os.path.join(basedir, "instance"), exist_ok=True)

    # Update database URI to use absolute path
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///instance/'):
        db_name = app.config['SQLALCHEMY_DATABASE_URI'][len('sqlite:///instance/'):]
        app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{os.path.join(basedir, "instance", db_name)}'

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Enable foreign key constraints for SQLite
    from sqlalchemy import event
    from sqlalchemy.engine import Engine

    @event.listens_for(Engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite connections"""
        if 'sqlite' in str(type(dbapi_conn)).lower():
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    # Configure logging and error handling
    from app.error_handlers import setup_logging, register_error_handlers
    setup_logging(app)
    register_error_handlers(app)

    # Initialize database models
    from app.models import init_models, model_registry
    models = init_models(db)
    model_registry.init_app(app)
    model_registry.register(models)

    # Reschedule notifications
    from app.services.reschedule_notifier import RescheduleNotifier
    RescheduleNotifier.from_config(app.config).init_app(app)

    register_blueprints(app)
    setup_background_tasks(app)

    return app


def register_blueprints(app):
    """Register all Flask blueprints."""
    from app.routes import conflicts_bp, displacement_bp, health_bp

    app.register_blueprint(conflicts_bp)
    app.register_blueprint(displacement_bp)
    app.register_blueprint(health_bp)

    # Health checks are polled continuously by the orchestrator
    limiter.exempt(health_bp)


def setup_background_tasks(app):
    """Setup background tasks and schedulers."""
    detection_enabled = app.config.get('SCHEDULED_DETECTION_ENABLED', False)
    sweep_enabled = app.config.get('NOTIFICATION_SWEEP_ENABLED', False)
    if app.config.get('TESTING') or not (detection_enabled or sweep_enabled):
        return None

    from apscheduler.schedulers.background import BackgroundScheduler
    from apscheduler.triggers.interval import IntervalTrigger
    import atexit

    from app.models import get_models
    from app.services.conflict_ledger import detect_and_record
    from app.services.reschedule_notifier import get_notifier, republish_pending_notifications

    def scheduled_detection():
        """Background task that records a detection run over the default window."""
        with app.app_context():
            try:
                result = detect_and_record(db.session, get_models(), app.config, triggered_by='scheduler')
                logger.info(
                    f"Scheduled detection run {result['detection_run_id']}: "
                    f"{result['summary']['total_conflicts']} conflicts"
                )
            except Exception as e:
                db.session.rollback()
                logger.error(f"Scheduled detection failed: {e}", exc_info=True)
            finally:
                db.session.remove()

    def notification_sweep():
        """Background task that re-sends undelivered reschedule notifications."""
        with app.app_context():
            try:
                republish_pending_notifications(db.session, get_models(), get_notifier(app))
            except Exception as e:
                db.session.rollback()
                logger.error(f"Notification sweep failed: {e}", exc_info=True)
            finally:
                db.session.remove()

    scheduler = BackgroundScheduler()
    if detection_enabled:
        scheduler.add_job(
            func=scheduled_detection,
            trigger=IntervalTrigger(minutes=app.config.get('SCHEDULED_DETECTION_INTERVAL_MINUTES', 60)),
            id='scheduled_conflict_detection',
            name='Periodic conflict detection',
            replace_existing=True,
            max_instances=1
        )
    if sweep_enabled:
        scheduler.add_job(
            func=notification_sweep,
            trigger=IntervalTrigger(seconds=app.config.get('NOTIFICATION_SWEEP_INTERVAL_SECONDS', 60)),
            id='reschedule_notification_sweep',
            name='Re-send undelivered reschedule notifications',
            replace_existing=True,
            max_instances=1
        )
    scheduler.start()

    # Ensure scheduler shuts down when app exits
    atexit.register(lambda: scheduler.shutdown())
    return scheduler


def init_db(app):
    """Initialize the database."""
    with app.app_context():
        db.create_all()
