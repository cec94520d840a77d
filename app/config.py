"""
Configuration management for the CNC scheduling engine.

Handles environment-based settings for the database, the conflict
detector, the displacement engine and the reschedule notifier.
Values are read with python-decouple so they can come from the
environment or a .env file.
"""
import secrets
from decouple import config, Csv
from typing import Optional


class Config:
    """Base configuration class"""
    # Flask settings
    # Development: Generate random key on startup (non-persistent OK for dev)
    SECRET_KEY = config('SECRET_KEY', default=secrets.token_hex(32))
    SQLALCHEMY_DATABASE_URI = config('DATABASE_URL', default='sqlite:///instance/cnc_scheduler.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging settings
    LOG_LEVEL = config('LOG_LEVEL', default='INFO')
    LOG_FILE = config('LOG_FILE', default='logs/cnc_scheduler.log')

    # Displacement engine
    HIGH_PRIORITY_THRESHOLD = config('HIGH_PRIORITY_THRESHOLD', default=700, cast=float)
    # Kept as a string so the 15% rule can be evaluated with Decimal
    SUBSTITUTION_PRIORITY_RATIO = config('SUBSTITUTION_PRIORITY_RATIO', default='0.85')
    FIRM_ZONE_DAYS = config('FIRM_ZONE_DAYS', default=14, cast=int)

    # Conflict detection
    DEFAULT_DETECTION_WINDOW_DAYS = config('DEFAULT_DETECTION_WINDOW_DAYS', default=30, cast=int)
    CONFLICT_LIST_DEFAULT_LIMIT = config('CONFLICT_LIST_DEFAULT_LIMIT', default=100, cast=int)
    CONFLICT_LIST_MAX_LIMIT = config('CONFLICT_LIST_MAX_LIMIT', default=1000, cast=int)

    # Working hours used when an employee has no weekly schedule row
    DEFAULT_SHIFT_START = config('DEFAULT_SHIFT_START', default='06:00')
    DEFAULT_SHIFT_END = config('DEFAULT_SHIFT_END', default='18:00')
    DEFAULT_WORKING_DAYS = config('DEFAULT_WORKING_DAYS', default='1,2,3,4,5', cast=Csv(int))

    # Reschedule notifications ('celery' or 'memory')
    RESCHEDULE_NOTIFIER = config('RESCHEDULE_NOTIFIER', default='celery')
    CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='redis://localhost:6379/0')
    CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default='redis://localhost:6379/0')
    RESCHEDULE_TASK_NAME = config('RESCHEDULE_TASK_NAME', default='scheduling.reschedule_required')
    RESCHEDULE_QUEUE = config('RESCHEDULE_QUEUE', default='rescheduling')

    # Background timers
    SCHEDULED_DETECTION_ENABLED = config('SCHEDULED_DETECTION_ENABLED', default=False, cast=bool)
    SCHEDULED_DETECTION_INTERVAL_MINUTES = config('SCHEDULED_DETECTION_INTERVAL_MINUTES', default=60, cast=int)
    NOTIFICATION_SWEEP_ENABLED = config('NOTIFICATION_SWEEP_ENABLED', default=True, cast=bool)
    NOTIFICATION_SWEEP_INTERVAL_SECONDS = config('NOTIFICATION_SWEEP_INTERVAL_SECONDS', default=60, cast=int)

    # Rate limiting (read by Flask-Limiter)
    RATELIMIT_ENABLED = config('RATELIMIT_ENABLED', default=True, cast=bool)
    RATELIMIT_DEFAULT = config('RATELIMIT_DEFAULT', default='300 per hour')
    RATELIMIT_STORAGE_URI = config('RATELIMIT_STORAGE_URI', default='memory://')

    @classmethod
    def validate(cls) -> None:
        """
        Validate configuration - can be called explicitly or on-demand

        Raises:
            ValueError: If required configuration is missing
        """
        pass  # Base config has no required validation


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    RESCHEDULE_NOTIFIER = 'memory'
    SCHEDULED_DETECTION_ENABLED = False
    NOTIFICATION_SWEEP_ENABLED = False
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Database Connection Pool (for production databases)
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': config('DB_POOL_SIZE', default=10, cast=int),
        'pool_recycle': config('DB_POOL_RECYCLE', default=3600, cast=int),
        'pool_pre_ping': True,
        'max_overflow': config('DB_MAX_OVERFLOW', default=20, cast=int),
    }

    RATELIMIT_STORAGE_URI = config('RATELIMIT_STORAGE_URI', default='redis://localhost:6379/1')

    # Logging
    LOG_LEVEL = config('LOG_LEVEL', default='WARNING')

    @classmethod
    def validate(cls) -> None:
        """
        Production mode: validate all required settings

        Raises:
            ValueError: If any required configuration is missing
        """
        try:
            secret_key = config('SECRET_KEY')
        except Exception:
            raise ValueError(
                "SECRET_KEY environment variable must be set in production. "
                "Generate a secure key with: python -c 'import secrets; print(secrets.token_hex(32))'"
            )

        if len(secret_key) < 32:
            raise ValueError(
                f"SECRET_KEY must be at least 32 characters in production (current: {len(secret_key)})."
            )

        if not config('DATABASE_URL', default=''):
            raise ValueError("DATABASE_URL environment variable must be set in production.")


# Configuration mapping
config_mapping = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None, validate: bool = False) -> type:
    """
    Get configuration class based on environment.

    Args:
        config_name: Environment name ('development', 'testing', 'production')
        validate: Whether to validate configuration immediately (default: False)

    Returns:
        Config class for the specified environment

    Example:
        >>> config = get_config('production', validate=True)
    """
    if config_name is None:
        config_name = config('FLASK_ENV', default='development')

    config_class = config_mapping.get(config_name, DevelopmentConfig)

    if validate:
        config_class.validate()

    return config_class
