import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from the package directory or its parent directory
env_path = Path(__file__).parent / '.env'
if not env_path.exists():
    env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


def _env_int(name, default):
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Tokens are issued by the identity service; only the shared secret lives here
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or SECRET_KEY
    JWT_IDENTITY_CLAIM = os.environ.get('JWT_IDENTITY_CLAIM', 'sub')

    DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///group_ledger.db')
    DB_POOL_SIZE = _env_int('DB_POOL_SIZE', 5)
    DB_MAX_OVERFLOW = _env_int('DB_MAX_OVERFLOW', 10)
    DB_POOL_TIMEOUT = _env_int('DB_POOL_TIMEOUT', 30)
    DB_STATEMENT_TIMEOUT_MS = _env_int('DB_STATEMENT_TIMEOUT_MS', 15000)
    DB_CREATE_TABLES = os.environ.get('DB_CREATE_TABLES', 'true').lower() == 'true'

    # Empty means usernames are resolved against the shared USERS table
    MEMBER_DIRECTORY_URL = os.environ.get('MEMBER_DIRECTORY_URL')
    MEMBER_DIRECTORY_TIMEOUT = _env_int('MEMBER_DIRECTORY_TIMEOUT', 10)

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            'CORS_ORIGINS', 'http://localhost:8081,http://localhost:19006'
        ).split(',')
        if origin.strip()
    ]

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_JSON = os.environ.get('LOG_JSON', 'true').lower() == 'true'

    DEFAULT_PAGE_LIMIT = 10
    MAX_PAGE_LIMIT = 50


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    DATABASE_URL = 'sqlite://'
    DB_CREATE_TABLES = True
    MEMBER_DIRECTORY_URL = None
    LOG_LEVEL = 'WARNING'
    LOG_JSON = False
