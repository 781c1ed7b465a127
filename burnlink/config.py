from __future__ import annotations

from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_origins(raw: Any) -> List[str]:
    """
    Normalize CORS allow origins from env.

    Supports:
      - list[str] (already parsed)
      - "*"
      - comma-separated string: "https://a.com, https://b.com"
    """
    if raw is None:
        return ["*"]

    if isinstance(raw, list):
        items = [str(x).strip() for x in raw]
        items = [x for x in items if x]
        return items or ["*"]

    s = str(raw).strip()
    if not s or s == "*":
        return ["*"]

    if "," in s:
        parts = [p.strip() for p in s.split(",")]
        parts = [p for p in parts if p]
        return parts or ["*"]

    return [s]


class Settings(BaseSettings):
    """
    Central settings for the burnlink service.

    Everything is env-driven (or .env) so the same build runs against a local
    SQLite file and a hosted Postgres without code changes.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # App identity
    env: str = Field(default="local", alias="APP_ENV")
    app_name: str = Field(default="burnlink", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server runtime (uvicorn)
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS")

    # Preferred: a real SQLAlchemy URL (SQLite locally, Postgres when hosted)
    database_url: str = Field(default="", alias="DATABASE_URL")
    db_path: str = Field(default="./data/burnlink.sqlite", alias="DB_PATH")

    # Sessions
    session_ttl_days: int = Field(default=7, alias="SESSION_TTL_DAYS")
    session_cookie_name: str = Field(default="sid", alias="SESSION_COOKIE_NAME")

    # Invites
    invite_default_minutes: int = Field(default=60, alias="INVITE_DEFAULT_MINUTES")
    invite_max_minutes: int = Field(default=7 * 24 * 60, alias="INVITE_MAX_MINUTES")
    signup_path: str = Field(default="/signup", alias="SIGNUP_PATH")
    public_base_url: str = Field(default="", alias="PUBLIC_BASE_URL")

    # Drops / accounts
    drop_max_views_cap: int = Field(default=100, alias="DROP_MAX_VIEWS_CAP")
    # one year by default; the hard ceiling keeps expires_at representable
    drop_max_ttl_ms: int = Field(default=365 * 24 * 3_600_000, ge=1, le=100 * 365 * 24 * 3_600_000, alias="DROP_MAX_TTL_MS")
    password_min_length: int = Field(default=6, alias="PASSWORD_MIN_LENGTH")
    bcrypt_rounds: int = Field(default=12, ge=4, le=31, alias="BCRYPT_ROUNDS")

    # Off: any signed-in user may revoke any drop. On: non-admins only their own.
    revoke_owner_only: bool = Field(default=False, alias="REVOKE_OWNER_ONLY")

    # Dev-only login (disabled when APP_ENV is prod/production)
    dev_admin_user: str = Field(default="", alias="DEV_ADMIN_USER")
    dev_admin_pass: str = Field(default="", alias="DEV_ADMIN_PASS")

    # -------------------------
    # Validators / normalizers
    # -------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _norm_cors_allow_origins(cls, v: Any) -> list[str]:
        return _split_origins(v)

    @field_validator("host", mode="before")
    @classmethod
    def _norm_host(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "127.0.0.1"

    @field_validator("public_base_url", mode="before")
    @classmethod
    def _norm_public_base_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip().rstrip("/")

    @field_validator("signup_path", mode="before")
    @classmethod
    def _norm_signup_path(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip() or "/signup"
        return s if s.startswith("/") else "/" + s

    @field_validator("database_url", mode="before")
    @classmethod
    def _norm_database_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip()

    @field_validator("db_path", mode="before")
    @classmethod
    def _norm_db_path(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "./data/burnlink.sqlite"

    # -------------------------
    # Derived helpers
    # -------------------------

    @property
    def is_prod(self) -> bool:
        return str(self.env).strip().lower() in ("prod", "production")

    @property
    def resolved_database_url(self) -> str:
        """
        Priority:
        1) DATABASE_URL if provided
        2) Build sqlite:/// URL from DB_PATH (path or full sqlite URL)
        """
        if self.database_url:
            return self.database_url

        path = (self.db_path or "").strip() or "./data/burnlink.sqlite"
        if path.startswith("sqlite:"):
            return path

        p = Path(path)
        if not p.is_absolute():
            if str(p).startswith("./"):
                return f"sqlite:///{p.as_posix()}"
            return f"sqlite:///./{p.as_posix()}"

        # Absolute path needs 4 slashes after scheme (sqlite:////abs/path)
        return f"sqlite:////{p.as_posix().lstrip('/')}"


settings = Settings()
