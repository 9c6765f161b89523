# Library Attendance & Mail Service Configuration

import os
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'library-attendance-secret-key'
    JSON_SORT_KEYS = False

    # Database Configuration
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or str(BASE_DIR / 'database' / 'library.db')
    DATABASE_TIMEOUT = 30.0

    # Export Configuration
    EXPORTS_FOLDER = BASE_DIR / 'exports'
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max request size

    # Library Configuration
    SYSTEM_NAME = os.environ.get('SYSTEM_NAME') or 'Library Management System'
    STUDENT_ID_PREFIX = os.environ.get('STUDENT_ID_PREFIX') or '025'

    # Email Configuration
    MAIL_SERVER = os.environ.get('MAIL_SERVER') or 'smtp.gmail.com'
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 587)
    MAIL_USE_TLS = _env_flag('MAIL_USE_TLS', 'true')
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER') or os.environ.get('MAIL_USERNAME')
    MAIL_SENDER_NAME = os.environ.get('MAIL_SENDER_NAME') or 'Library Management System'
    MAIL_TIMEOUT = int(os.environ.get('MAIL_TIMEOUT') or 30)  # seconds
    MAIL_BATCH_SIZE = int(os.environ.get('MAIL_BATCH_SIZE') or 50)
    MAIL_SUPPRESS_SEND = False
    MAIL_SEND_REGISTRATION_CONFIRMATION = True

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'library.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Development Configuration
    DEBUG = _env_flag('DEBUG', 'False')
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        directories = [cls.EXPORTS_FOLDER, cls.LOG_FILE.parent]
        if cls.DATABASE_PATH != ':memory:':
            directories.append(Path(cls.DATABASE_PATH).parent)

        for directory in directories:
            Path(directory).mkdir(parents=True, exist_ok=True)

        app.config.from_object(cls)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False

    DATABASE_PATH = os.environ.get('DATABASE_PATH') or str(BASE_DIR / 'database' / 'library_dev.db')

    # More verbose logging
    LOG_LEVEL = 'DEBUG'

    # Email configuration for development (MailHog)
    MAIL_SERVER = os.environ.get('MAIL_SERVER') or 'localhost'
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 1025)
    MAIL_USE_TLS = False
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER') or 'library@localhost'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    # Use in-memory database for testing
    DATABASE_PATH = ':memory:'

    # Keep outgoing mail in the transport outbox
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = 'library@example.com'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    DATABASE_PATH = os.environ.get('DATABASE_PATH') or str(BASE_DIR / 'database' / 'library_prod.db')

    # Production logging
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        import logging
        from logging.handlers import RotatingFileHandler

        if not app.debug:
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('Library service startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration based on name or the FLASK_ENV environment variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)


def validate_config(config_class):
    """Validate configuration settings"""
    errors = []

    if not config_class.MAIL_SERVER:
        errors.append("MAIL_SERVER is required")

    if not config_class.MAIL_DEFAULT_SENDER:
        errors.append("MAIL_DEFAULT_SENDER or MAIL_USERNAME is required to send email")

    if config_class.MAIL_BATCH_SIZE < 1:
        errors.append("MAIL_BATCH_SIZE must be at least 1")

    return errors


def init_config(app, config_name=None):
    """Initialize application with configuration"""
    config_class = get_config(config_name)
    config_class.init_app(app)

    errors = validate_config(config_class)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    return config_class
