"""
Configuration for the School ERP API
Database, payment gateway and WhatsApp settings are read from the environment
"""

import os
from urllib.parse import quote_plus
import dotenv
dotenv.load_dotenv()  # Load environment variables from .env file

# Values shipped in sample .env files; treated as "not configured"
PLACEHOLDER_VALUES = {'', 'your_key_id', 'your_key_secret', 'rzp_test_xxxxxxxx', 'changeme'}


class Config:
    """Base configuration"""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'supersecretkey'
    AUTO_CREATE_TABLES = os.environ.get('AUTO_CREATE_TABLES', '1').lower() in ('1', 'true', 'yes')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Database settings
    DATABASE_URL = os.environ.get('DATABASE_URL')
    MYSQL_HOST = os.environ.get('DB_HOST', 'localhost')
    MYSQL_PORT = int(os.environ.get('DB_PORT', 3306))
    MYSQL_USERNAME = os.environ.get('DB_USER', 'school')
    MYSQL_PASSWORD = os.environ.get('DB_PASS', '')
    MYSQL_DATABASE = os.environ.get('DB_NAME', 'school_erp')
    MYSQL_CHARSET = 'utf8mb4'

    # SQLAlchemy settings
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_recycle': 280,
        'pool_pre_ping': True,
    }

    # Razorpay
    RAZORPAY_KEY_ID = os.environ.get('RAZORPAY_KEY_ID', '')
    RAZORPAY_KEY_SECRET = os.environ.get('RAZORPAY_KEY_SECRET', '')
    RAZORPAY_WEBHOOK_SECRET = os.environ.get('RAZORPAY_WEBHOOK_SECRET', '')
    PAYMENT_CURRENCY = 'INR'

    # WhatsApp (Meta Cloud API); messages are logged as sent when unset
    WHATSAPP_ACCESS_TOKEN = os.environ.get('WHATSAPP_ACCESS_TOKEN', '')
    WHATSAPP_PHONE_NUMBER_ID = os.environ.get('WHATSAPP_PHONE_NUMBER_ID', '')
    WHATSAPP_API_VERSION = os.environ.get('WHATSAPP_API_VERSION', 'v18.0')
    WHATSAPP_TIMEOUT = int(os.environ.get('WHATSAPP_TIMEOUT', 30))

    # Records created by devices are attributed to this user
    SYSTEM_USER_ID = int(os.environ.get('SYSTEM_USER_ID', 1))
    SYSTEM_ADMIN_EMAIL = os.environ.get('SYSTEM_ADMIN_EMAIL', 'system@school.local')
    SYSTEM_ADMIN_PASSWORD = os.environ.get('SYSTEM_ADMIN_PASSWORD', 'admin123')

    # Pagination
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    def _encoded_password(self) -> str:
        """Percent-encode special characters for URL usage."""
        return quote_plus(self.MYSQL_PASSWORD) if self.MYSQL_PASSWORD else ''

    def get_database_uri(self) -> str:
        """Get database URI, DATABASE_URL wins over the DB_* variables."""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = self.MYSQL_USERNAME
        pwd = self._encoded_password()
        host = self.MYSQL_HOST
        port = self.MYSQL_PORT
        database = self.MYSQL_DATABASE

        if pwd:
            return f"mysql+pymysql://{user}:{pwd}@{host}:{port}/{database}?charset={self.MYSQL_CHARSET}"
        return f"mysql+pymysql://{user}@{host}:{port}/{database}?charset={self.MYSQL_CHARSET}"


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    AUTO_CREATE_TABLES = True
    LOG_LEVEL = 'WARNING'

    RAZORPAY_KEY_ID = 'rzp_test_key'
    RAZORPAY_KEY_SECRET = 'test_key_secret'
    RAZORPAY_WEBHOOK_SECRET = 'test_webhook_secret'

    WHATSAPP_ACCESS_TOKEN = ''
    WHATSAPP_PHONE_NUMBER_ID = ''

    # Use in-memory SQLite for testing
    def get_database_uri(self) -> str:
        return 'sqlite:///:memory:'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
