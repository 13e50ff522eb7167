"""
Homologation Configuration

Environment configuration for TypeDB, the HTTP API, authentication,
e-mail notifications and attachment intake.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


@dataclass
class TypeDBConfig:
    """TypeDB connection configuration."""
    host: str = os.getenv("TYPEDB_HOST", "localhost")
    port: int = int(os.getenv("TYPEDB_PORT", "1729"))
    database: str = os.getenv("TYPEDB_DATABASE", "homologation")
    username: str = os.getenv("TYPEDB_USERNAME", "admin")
    password: str = os.getenv("TYPEDB_PASSWORD", "password")
    tls_enabled: bool = _env_bool("TYPEDB_TLS")
    tls_root_ca_path: Optional[str] = os.getenv("TYPEDB_ROOT_CA_PATH") or None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class APIConfig:
    """FastAPI configuration."""
    host: str = os.getenv("API_HOST", "0.0.0.0")
    port: int = int(os.getenv("API_PORT", "8000"))
    debug: bool = _env_bool("API_DEBUG", "true")


@dataclass
class AuthConfig:
    """JWT validation settings. Tokens are issued elsewhere."""
    jwt_secret: Optional[str] = os.getenv("AUTH_JWT_SECRET") or None
    jwt_issuer: Optional[str] = os.getenv("AUTH_JWT_ISSUER") or None
    jwt_audience: Optional[str] = os.getenv("AUTH_JWT_AUDIENCE") or None
    env: str = os.getenv("AUTH_ENV", "prod")
    # Header fallback (X-Actor-Id / X-Role) is honoured only in dev.
    allow_insecure_headers: bool = _env_bool("AUTH_ALLOW_INSECURE_HEADERS")


@dataclass
class NotificationConfig:
    """SMTP settings for status-change e-mails."""
    email_from: str = os.getenv("EMAIL_FROM", "noreply@av-homologacion.com")
    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_user: str = os.getenv("SMTP_USER", "")
    smtp_password: str = os.getenv("SMTP_PASS", "")
    app_url: str = os.getenv("APP_URL", "http://localhost:3000")

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)


@dataclass
class UploadConfig:
    """Attachment intake limits."""
    max_file_size: int = int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024)))


@dataclass
class Config:
    """Main configuration container."""
    typedb: TypeDBConfig
    api: APIConfig
    auth: AuthConfig
    notifications: NotificationConfig
    uploads: UploadConfig = field(default_factory=UploadConfig)

    # "typedb" for production, "memory" for demos and tests
    store_backend: str = os.getenv("HOMOLOGATION_STORE", "typedb")

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            typedb=TypeDBConfig(),
            api=APIConfig(),
            auth=AuthConfig(),
            notifications=NotificationConfig(),
            uploads=UploadConfig(),
        )


# Global config instance
config = Config.from_env()
