import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your-secret-key-here'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(os.path.abspath(os.path.dirname(__file__)), 'loginguard.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEBUG = False
    TESTING = False

    GEOIP_DATABASE_PATH = os.environ.get('GEOIP_DATABASE_PATH')

    # 外部服务
    HCAPTCHA_SECRET_KEY = os.environ.get('HCAPTCHA_SECRET_KEY', '')
    HCAPTCHA_VERIFY_URL = os.environ.get('HCAPTCHA_VERIFY_URL') or 'https://hcaptcha.com/siteverify'
    HCAPTCHA_TIMEOUT = 5.0
    ATTESTATION_HEADER = 'X-Attestation-Token'
    ATTESTATION_MAX_AGE = 3600
    ENFORCE_ATTESTATION = True

    # 会话 cookie
    LOGIN_COOKIE_NAME = 'auth_session'
    LOGIN_COOKIE_SECURE = True
    LOGIN_COOKIE_MAX_AGE = 7 * 24 * 60 * 60

    # 0 或 1 表示顺序执行查询
    LOGIN_QUERY_WORKERS = int(os.environ.get('LOGIN_QUERY_WORKERS', '0'))

    # 风险评分窗口（秒）
    RISK_WINDOWS = {
        'immediate': 5 * 60,
        'short': 15 * 60,
        'medium': 60 * 60,
        'long': 24 * 60 * 60,
    }
    # 分层阈值，严重程度从高到低
    RISK_CRITICAL_IP_IMMEDIATE = 3
    RISK_HIGH_IP_SHORT = 8
    RISK_HIGH_EMAIL_SHORT = 5
    RISK_HIGH_IP_MEDIUM = 15
    RISK_HIGH_EMAIL_MEDIUM = 8
    RISK_HIGH_DEVICE_MEDIUM = 10
    RISK_MEDIUM_IP_LONG = 25
    RISK_MEDIUM_IP_SHORT = 3
    RISK_MEDIUM_EMAIL_SHORT = 2
    RISK_RECENT_ATTEMPTS_LIMIT = 10
    BOT_TIMING_MAX_CV = 0.1
    BOT_TIMING_MAX_MEAN_SECONDS = 10.0

    PROFILE_COMPLETE_THRESHOLD = 80

class ProductionConfig(Config):
    DEBUG = False

class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_ECHO = True
    ENFORCE_ATTESTATION = False
    LOGIN_COOKIE_SECURE = False

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    ENFORCE_ATTESTATION = False
    LOGIN_COOKIE_SECURE = False
    LOGIN_QUERY_WORKERS = 0
    GEOIP_DATABASE_PATH = None
