import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "giftops.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-giftops")
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_COOKIE_SECURE = _bool_env("SESSION_COOKIE_SECURE", False)
    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CSRF_ENABLED = _bool_env("CSRF_ENABLED", True)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)
    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    RATE_LIMIT_LOGIN_MAX_REQUESTS = _int_env("RATE_LIMIT_LOGIN_MAX_REQUESTS", 10)
    RATE_LIMIT_LOGIN_WINDOW_SECONDS = _int_env("RATE_LIMIT_LOGIN_WINDOW_SECONDS", 300)
    RATE_LIMIT_BID_MAX_REQUESTS = _int_env("RATE_LIMIT_BID_MAX_REQUESTS", 30)
    RATE_LIMIT_BID_WINDOW_SECONDS = _int_env("RATE_LIMIT_BID_WINDOW_SECONDS", 60)
    RATE_LIMIT_CHECKOUT_MAX_REQUESTS = _int_env("RATE_LIMIT_CHECKOUT_MAX_REQUESTS", 10)
    RATE_LIMIT_CHECKOUT_WINDOW_SECONDS = _int_env("RATE_LIMIT_CHECKOUT_WINDOW_SECONDS", 60)

    ROUTING_MODE = os.environ.get("ROUTING_MODE", "straight_line")
    ROUTING_BASE_URL = os.environ.get("ROUTING_BASE_URL", "https://router.project-osrm.org")
    ROUTING_TIMEOUT_SECONDS = _int_env("ROUTING_TIMEOUT_SECONDS", 10)

    INVOICE_DUE_DAYS = _int_env("INVOICE_DUE_DAYS", 30)
    DEFAULT_TAX_RATE = _float_env("DEFAULT_TAX_RATE", 5.0)
    INVOICE_CLIENT_NAME = os.environ.get("INVOICE_CLIENT_NAME", "Zellow Enterprises")

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is required in production.")
        if env == "production" and self.SECRET_KEY == "dev-secret-giftops":
            raise RuntimeError("SECRET_KEY must be changed in production.")
