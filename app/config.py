import warnings
from typing import List
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Known insecure default keys (must never be used in production) ──
_INSECURE_KEYS = {
    "change_this",
    "change_this_to_a_secure_random_string",
    "CHANGE_THIS_PRODUCTION_SECRET_MIN_32_CHARS",
    "secret",
}


def _split_csv(value: str) -> List[str]:
    return [item.strip().lower() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    APP_NAME: str = "LinkBio Domains"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change_this"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8  # 8 days
    ALGORITHM: str = "HS256"

    # CORS
    BACKEND_CORS_ORIGINS: str = ""

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "linkbio"
    DATABASE_URL: str = ""  # overrides the POSTGRES_* settings when set

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Platform identity
    DNS_APP_NAME: str = "linkbio"                  # TXT host is _<name>, value <name>_verify=<token>
    PLATFORM_DOMAIN: str = "links.dalvi.cloud"
    PLATFORM_SCHEME: str = "https"
    PLATFORM_SERVER_IP: str = "72.61.227.134"      # comma separated when load balanced
    LOCAL_DEV_HOSTS: str = "localhost,127.0.0.1,::1,0.0.0.0,testserver"
    RESERVED_PATHS: str = "api,dashboard,admin,auth,docs,redoc,openapi.json,health,metrics,static"
    PLATFORM_ONLY_PATHS: str = "api,dashboard,admin,auth"

    # DNS verification
    DNS_NAMESERVERS: str = ""                      # empty = system resolver
    DNS_TIMEOUT_SECONDS: float = 5.0

    # Verification scheduler
    DOMAIN_VERIFY_BASE_INTERVAL_SECONDS: int = 30
    DOMAIN_VERIFY_MAX_INTERVAL_SECONDS: int = 900
    DOMAIN_VERIFY_MAX_FAILURES: int = 200
    DOMAIN_VERIFY_MAX_WAIT_HOURS: int = 72         # DNS propagation can take ~48h
    DOMAIN_SCHEDULER_TICK_SECONDS: int = 30
    DOMAIN_SCHEDULER_BATCH_SIZE: int = 100
    DOMAIN_AUTO_ACTIVATE: bool = False

    # Request-time lookups
    DOMAIN_CACHE_TTL_SECONDS: int = 30
    DOMAIN_CACHE_MAX_ENTRIES: int = 10000
    DOMAIN_CACHE_REDIS_URL: str = "redis://localhost:6379/1"  # shared invalidation counter (empty = per-process only)
    FORWARDED_ALLOW_IPS: str = "127.0.0.1,::1"     # peers whose X-Forwarded-Proto is trusted; "*" trusts all

    # Cross-process single-flight lock (empty = in-process only)
    DOMAIN_LOCK_REDIS_URL: str = "redis://localhost:6379/1"
    DOMAIN_LOCK_TIMEOUT_SECONDS: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Block startup if critical secrets are insecure in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            # ── SECRET_KEY ──
            if self.SECRET_KEY in _INSECURE_KEYS or len(self.SECRET_KEY) < 32:
                raise ValueError(
                    f"SECRET_KEY is insecure ('{self.SECRET_KEY[:8]}…'). "
                    "Set a strong random key (≥ 32 chars) in .env or environment. "
                    f"Hint: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
                )
            # ── Database password ──
            if not self.DATABASE_URL and self.POSTGRES_PASSWORD in ("postgres", ""):
                raise ValueError(
                    "POSTGRES_PASSWORD is set to default 'postgres'. "
                    "Set a strong password in .env or environment."
                )
            if self.PLATFORM_SCHEME != "https":
                warnings.warn(
                    "PLATFORM_SCHEME is not https; redirects will downgrade visitors.",
                    UserWarning,
                    stacklevel=2,
                )
        return self

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def local_dev_hosts(self) -> List[str]:
        return _split_csv(self.LOCAL_DEV_HOSTS)

    @property
    def reserved_paths(self) -> List[str]:
        return _split_csv(self.RESERVED_PATHS)

    @property
    def platform_only_paths(self) -> List[str]:
        return _split_csv(self.PLATFORM_ONLY_PATHS)

    @property
    def forwarded_allow_ips(self) -> List[str]:
        return _split_csv(self.FORWARDED_ALLOW_IPS)

    @property
    def platform_server_ips(self) -> List[str]:
        return _split_csv(self.PLATFORM_SERVER_IP)

    @property
    def dns_nameservers(self) -> List[str]:
        return _split_csv(self.DNS_NAMESERVERS)

    @property
    def txt_record_host(self) -> str:
        return f"_{self.DNS_APP_NAME}"

    @property
    def txt_verify_prefix(self) -> str:
        return f"{self.DNS_APP_NAME}_verify"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"


settings = Settings()
