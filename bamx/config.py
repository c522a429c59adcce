import os


def _database_url():
    database_url = os.environ.get('DATABASE_URL', 'sqlite:///bamx.sqlite3')

    # Render/Heroku entregan "postgres://" y SQLAlchemy necesita el driver explícito
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)
    return database_url


def _env_list(name, default):
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


class Config:
    APP_ENV = os.environ.get('APP_ENV', 'development')

    SECRET_KEY = os.environ.get('SECRET_KEY', 'bamx-dev-secret')
    JWT_SECRET = os.environ.get('FRASE_JWT', 'bamx-dev-jwt-secret-change-me-in-prod')
    JWT_EXPIRES_HOURS = int(os.environ.get('JWT_EXPIRES_HOURS', 24))
    JWT_COOKIE_SECURE = APP_ENV == 'production'

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CORS_ORIGINS = _env_list('ORIGIN', 'http://localhost:3000')

    RESEND_API_KEY = os.environ.get('RESEND_API_KEY')
    MAIL_FROM = os.environ.get('MAIL_FROM', 'notificaciones@bamxtepatitlan.org')
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')
    RESET_TOKEN_HOURS = int(os.environ.get('RESET_TOKEN_HOURS', 1))

    DRIVE_ACCESS_TOKEN = os.environ.get('DRIVE_ACCESS_TOKEN')
    DRIVE_ROOT_FOLDER = os.environ.get('DRIVE_ROOT_FOLDER')
    COBRANZAS_DIR = os.environ.get('COBRANZAS_DIR')

    LOG_DIR = os.environ.get('LOG_DIR', 'logs')
    LOG_TO_FILE = os.environ.get('LOG_TO_FILE', 'true').lower() == 'true'


class TestingConfig(Config):
    TESTING = True
    APP_ENV = 'test'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET = 'bamx-test-jwt-secret-32-bytes-long'
    JWT_COOKIE_SECURE = False
    RESEND_API_KEY = None
    DRIVE_ACCESS_TOKEN = None
    LOG_TO_FILE = False
    BCRYPT_LOG_ROUNDS = 4
