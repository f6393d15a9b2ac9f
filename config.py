"""Configuration module for the checkout terminal service."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""
    
    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    
    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours
    
    # Remote PHP backend (inventory, purchases, receipts)
    BACKEND_BASE_URL = os.getenv('BACKEND_BASE_URL', 'http://192.168.0.89/rtw_backend')
    BACKEND_TIMEOUT = float(os.getenv('BACKEND_TIMEOUT', '10'))
    
    # Scanner: seconds the scan gate stays closed after a scan resolves
    SCAN_COOLDOWN_SECONDS = float(os.getenv('SCAN_COOLDOWN_SECONDS', '1.0'))
    
    # Inventory dashboard
    LOW_STOCK_THRESHOLD = int(os.getenv('LOW_STOCK_THRESHOLD', '5'))
    
    # Redis Cache Configuration
    # Product searches and inventory; stock is re-checked by the backend on purchase
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_PRODUCTS_TTL = int(os.getenv('CACHE_PRODUCTS_TTL', '30'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'pos')
    
    # Error tracking (production only)
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestingConfig(Config):
    """Configuration used by the test suite."""
    
    TESTING = True
    DEBUG = False
    ENV = 'testing'
    BACKEND_BASE_URL = 'http://backend.test/rtw_backend'
    SCAN_COOLDOWN_SECONDS = 0.0
    CACHE_ENABLED = False
    SENTRY_DSN = None
