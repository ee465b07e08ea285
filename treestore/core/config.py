"""Runtime settings for treestore, read from the environment and ``.env``."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class PathPolicy(str, Enum):
    """How stored logical paths react to a rename or move of an ancestor.

    cascade   -- paths are a maintained invariant; the whole subtree is re-pathed
    self_only -- only the mutated entity's own path changes; descendants go stale
    """
    CASCADE = "cascade"
    SELF_ONLY = "self_only"


class ConfigurationError(Exception):
    """Startup configuration is unusable in the current environment."""
    pass


_INSECURE_JWT_SECRET = "dev-insecure-key-change-me"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """
    Every knob the service reads at startup.

    Each field maps to an upper-case environment variable of the same name
    (``STORAGE_ROOT``, ``PATH_POLICY`` ...).
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="development or production; production refuses insecure defaults"
    )
    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated browser origins allowed to call the API"
    )

    # Metadata store
    database_url: str = Field(
        default="sqlite:///./treestore.db",
        description="SQLAlchemy URL of the metadata database"
    )
    # Pool sizing applies to PostgreSQL only.
    db_pool_size: int = Field(default=5, description="Persistent pooled connections")
    db_max_overflow: int = Field(default=10, description="Burst connections above the pool size")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a pooled connection")
    db_pool_recycle: int = Field(default=1800, description="Seconds before a pooled connection is replaced")

    # Content store
    storage_root: str = Field(
        default="./data/blobs",
        description="Directory holding file content blobs"
    )
    archive_dir: str = Field(
        default="",
        description="Directory for transient download archives (empty = system temp dir)"
    )
    stream_chunk_size: int = Field(
        default=64 * 1024,
        description="Bytes per chunk when streaming content"
    )

    # Tree behaviour
    path_policy: PathPolicy = Field(
        default=PathPolicy.CASCADE,
        description="Logical path maintenance on rename/move (cascade/self_only)"
    )

    # Tokens and passwords
    jwt_secret_key: str = Field(
        default=_INSECURE_JWT_SECRET,
        description="HMAC key used to sign user tokens"
    )
    jwt_algorithm: str = Field(default="HS256")
    token_expires_hours: int = Field(
        default=72,
        description="Lifetime of issued user tokens in hours"
    )
    password_hash_rounds: int = Field(
        default=12,
        description="bcrypt cost factor for password hashes"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root logger level")
    log_format: str = Field(default="json", description="json or text")

    def get_cors_origins(self) -> List[str]:
        """Parsed CORS origins. A wildcard entry is rejected outright."""
        origins = [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]
        if "*" in origins:
            raise ValueError("CORS_ALLOWED_ORIGINS must list explicit origins, not '*'")
        return origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @field_validator('password_hash_rounds')
    @classmethod
    def validate_hash_rounds(cls, v: int) -> int:
        # bcrypt accepts cost factors 4..31
        if not 4 <= v <= 31:
            raise ValueError("password_hash_rounds must be between 4 and 31")
        return v

    def uses_insecure_jwt_secret(self) -> bool:
        return self.jwt_secret_key == _INSECURE_JWT_SECRET

    def insecure_settings(self) -> List[str]:
        """Human-readable list of settings still at development-only values."""
        problems: List[str] = []
        if self.uses_insecure_jwt_secret():
            problems.append("JWT_SECRET_KEY is the built-in default; set one with `openssl rand -hex 32`")
        local = [o for o in self.get_cors_origins() if "localhost" in o or "127.0.0.1" in o]
        if local:
            problems.append(f"CORS_ALLOWED_ORIGINS includes local origins: {local}")
        return problems

    def validate_production_config(self) -> None:
        """Refuse to start in production while any insecure default remains.

        Raises:
            ConfigurationError: production environment with insecure settings.
        """
        problems = self.insecure_settings()
        if problems and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Refusing to start with insecure production settings:\n  - "
                + "\n  - ".join(problems)
            )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


settings = Settings()
