# arithduel/config.py
import os


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() not in ("0", "false", "no", "off", "")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-key-change-in-production"

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = False

    DUEL_LOG_LEVEL = os.environ.get("DUEL_LOG_LEVEL", "INFO")
    DUEL_DEFAULT_DIFFICULTY = os.environ.get("DUEL_DEFAULT_DIFFICULTY", "medium")
    DUEL_STRICT_TARGETS = _flag("DUEL_STRICT_TARGETS", "1")
    DUEL_ROOM_CODE_LENGTH = int(os.environ.get("DUEL_ROOM_CODE_LENGTH", "4"))

    RATELIMIT_DEFAULT = os.environ.get("RATELIMIT_DEFAULT", "600 per hour; 120 per minute")
    RATELIMIT_ENABLED = _flag("RATELIMIT_ENABLED", "1")
    RATELIMIT_STORAGE_URI = "memory://"


class DevelopmentConfig(Config):
    DEBUG = True
    DUEL_LOG_LEVEL = os.environ.get("DUEL_LOG_LEVEL", "DEBUG")


class ProductionConfig(Config):
    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    TESTING = True
    RATELIMIT_ENABLED = False
    DUEL_LOG_LEVEL = "DEBUG"


CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": Config,
}
