"""GlowBot configuration schema — YAML + Pydantic + env override."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# ════════════════════════════════════════════════════════════
# SUB-CONFIGS (nested BaseModel)
# ════════════════════════════════════════════════════════════


class SchedulerConfig(BaseModel):
    """Recurring job scheduler (scheduler.*)."""

    enabled: bool = True
    failure_threshold: int = Field(default=3, ge=1)
    misfire_grace_s: int = 300
    stop_wait_s: float = 5.0  # bounded drain wait after emergency stop
    default_timezone: str = "America/New_York"


class GenerationConfig(BaseModel):
    """External unified content generator."""

    endpoint: str = "http://localhost:5000/api/generate-unified"
    timeout_s: float = 180.0
    api_key: str = ""


class TriggersConfig(BaseModel):
    """Admission flags per trigger source. Empty webhook_secret = webhooks never verify."""

    allow_manual: bool = True
    allow_webhook: bool = True
    allow_scheduled: bool = True
    webhook_secret: str = ""


class AuthConfig(BaseModel):
    """UI session tokens. Empty jwt_secret_key = auth disabled."""

    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours


class DatabaseConfig(BaseModel):
    path: str = "data/glowbot.db"


class LoggingConfig(BaseModel):
    level: str = "INFO"


# ════════════════════════════════════════════════════════════
# ROOT CONFIG (BaseSettings, env + .env support)
# ════════════════════════════════════════════════════════════


class Config(BaseSettings):
    """
    Root configuration.

    Priority: env vars > .env > YAML (init kwargs) > defaults

    Env override examples:
        GLOWBOT_SCHEDULER__FAILURE_THRESHOLD=5
        GLOWBOT_DATABASE__PATH=data/prod.db
        GLOWBOT_TRIGGERS__ALLOW_WEBHOOK=false
    """

    model_config = SettingsConfigDict(
        env_prefix="GLOWBOT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    triggers: TriggersConfig = Field(default_factory=TriggersConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs; env must still win over it.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    # ── Computed properties ─────────────────────────────────

    @property
    def auth_enabled(self) -> bool:
        """True when JWT secret is set (UI sessions must carry a token)."""
        return bool(self.auth.jwt_secret_key)

    @property
    def db_path(self) -> Path:
        return Path(self.database.path)
