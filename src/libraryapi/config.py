import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///library.db"
    session_ttl: int = 60 * 60 * 24
    request_timeout: float = 10.0
    overdue_interval: int = 60  # minutes
    log_level: str = "INFO"
    admin_username: str | None = None
    admin_email: str | None = None
    admin_password: str | None = None
    port: int = 8080

    @property
    def bootstrap_admin(self) -> bool:
        return bool(self.admin_username and self.admin_email and self.admin_password)


def load_settings(environ=os.environ) -> Settings:
    defaults = Settings()
    return Settings(
        database_url=environ.get("LIBRARY_DATABASE_URL", defaults.database_url),
        session_ttl=int(environ.get("LIBRARY_SESSION_TTL", defaults.session_ttl)),
        request_timeout=float(
            environ.get("LIBRARY_REQUEST_TIMEOUT", defaults.request_timeout)
        ),
        overdue_interval=int(
            environ.get("LIBRARY_OVERDUE_INTERVAL", defaults.overdue_interval)
        ),
        log_level=environ.get("LIBRARY_LOG_LEVEL", defaults.log_level).upper(),
        admin_username=environ.get("LIBRARY_ADMIN_USERNAME") or None,
        admin_email=environ.get("LIBRARY_ADMIN_EMAIL") or None,
        admin_password=environ.get("LIBRARY_ADMIN_PASSWORD") or None,
        port=int(environ.get("PORT", defaults.port)),
    )
