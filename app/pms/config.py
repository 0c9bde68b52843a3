import os
from dataclasses import dataclass

DEV_SECRET = "change-me"
DEV_JWT_SECRET = "dev-access-secret"
DEV_JWT_REFRESH_SECRET = "dev-refresh-secret"


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    jwt_secret: str
    jwt_refresh_secret: str
    access_token_ttl: int
    refresh_token_ttl: int

    cors_origins: tuple[str, ...]

    superadmin_email: str
    superadmin_password: str
    superadmin_first_name: str
    superadmin_last_name: str

    notification_ttl: int
    profile_request_ttl: int

    company_name: str
    company_address: str
    company_contact: str

    log_level: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer number of seconds, got {raw!r}") from None


def load_settings() -> Settings:
    origins = _getenv("CORS_ORIGINS") or _getenv("CORS_ORIGIN", "http://localhost:3000")
    return Settings(
        secret_key=_getenv("SECRET_KEY", DEV_SECRET),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///proposals.db"),
        jwt_secret=_getenv("JWT_SECRET", DEV_JWT_SECRET),
        jwt_refresh_secret=_getenv("JWT_REFRESH_SECRET", DEV_JWT_REFRESH_SECRET),
        access_token_ttl=_getint("ACCESS_TOKEN_TTL", 15 * 60),
        refresh_token_ttl=_getint("REFRESH_TOKEN_TTL", 7 * 24 * 60 * 60),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        superadmin_email=_getenv("SUPERADMIN_EMAIL", "superadmin@example.com").lower(),
        superadmin_password=os.environ.get("SUPERADMIN_PASSWORD") or "change-me-now",
        superadmin_first_name=_getenv("SUPERADMIN_FIRST_NAME", "Super"),
        superadmin_last_name=_getenv("SUPERADMIN_LAST_NAME", "Admin"),
        notification_ttl=_getint("NOTIFICATION_TTL", 24 * 60 * 60),
        profile_request_ttl=_getint("PROFILE_REQUEST_TTL", 24 * 60 * 60),
        company_name=_getenv("COMPANY_NAME", "BuildINT"),
        company_address=_getenv(
            "COMPANY_ADDRESS",
            "4th Floor, Srishti Plaza, Chandivali, Powai, Mumbai 400072",
        ),
        company_contact=_getenv("COMPANY_CONTACT", "support@buildint.co | www.buildint.co"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JWT_SECRET": s.jwt_secret,
        "JWT_REFRESH_SECRET": s.jwt_refresh_secret,
        "ACCESS_TOKEN_TTL": s.access_token_ttl,
        "REFRESH_TOKEN_TTL": s.refresh_token_ttl,
        "CORS_ORIGINS": list(s.cors_origins),
        "SUPERADMIN_EMAIL": s.superadmin_email,
        "SUPERADMIN_PASSWORD": s.superadmin_password,
        "SUPERADMIN_FIRST_NAME": s.superadmin_first_name,
        "SUPERADMIN_LAST_NAME": s.superadmin_last_name,
        "NOTIFICATION_TTL": s.notification_ttl,
        "PROFILE_REQUEST_TTL": s.profile_request_ttl,
        "COMPANY_NAME": s.company_name,
        "COMPANY_ADDRESS": s.company_address,
        "COMPANY_CONTACT": s.company_contact,
        "LOG_LEVEL": s.log_level,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        "REFRESH_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # request body limit (10MB)
        "MAX_CONTENT_LENGTH": 10 * 1024 * 1024,
    }
