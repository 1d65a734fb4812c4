"""Pydantic v2 configuration schema with strict validation."""

from pydantic import BaseModel, Field, model_validator

from blackout.config.defaults import DEFAULT_GROUPS, DEFAULT_USER_AGENTS


class PortalConfig(BaseModel):
    model_config = {"extra": "forbid"}

    base_url: str = "https://kiroe.com.ua"
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay_seconds: float = Field(default=2.0, ge=0.0)
    user_agents: list[str] = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS), min_length=1)


class ResolverConfig(BaseModel):
    model_config = {"extra": "forbid"}

    seed_id: int = Field(default=100800, ge=1)
    id_space: int = Field(default=200000, ge=1)
    max_attempts: int = Field(default=2000, ge=1)
    request_delay_seconds: float = Field(default=0.8, ge=0.0)
    request_jitter_seconds: float = Field(default=0.4, ge=0.0)
    backoff_base_seconds: float = Field(default=2.0, ge=0.0)
    backoff_jitter_seconds: float = Field(default=2.0, ge=0.0)


class CacheConfig(BaseModel):
    model_config = {"extra": "forbid"}

    max_age_seconds: int = Field(default=300, ge=1)
    max_cycles: int = Field(default=5, ge=1)
    cycle_backoff_seconds: float = Field(default=5.0, ge=0.0)


class NotifyConfig(BaseModel):
    model_config = {"extra": "forbid"}

    timezone: str = "Europe/Kyiv"
    window_start_minute: int = Field(default=50, ge=0, le=59)
    window_end_minute: int = Field(default=55, ge=0, le=59)

    @model_validator(mode="after")
    def _window_ordered(self) -> "NotifyConfig":
        if self.window_start_minute > self.window_end_minute:
            raise ValueError("window_start_minute must not exceed window_end_minute")
        return self


class TelegramConfig(BaseModel):
    model_config = {"extra": "forbid"}

    enabled: bool = False
    bot_token: str = ""
    api_base_url: str = "https://api.telegram.org"
    timeout_seconds: float = Field(default=30.0, gt=0.0)


class OpsConfig(BaseModel):
    model_config = {"extra": "forbid"}

    fetch_interval_seconds: int = Field(default=300, ge=1)
    notify_interval_seconds: int = Field(default=60, ge=1)


class BlackoutConfig(BaseModel):
    model_config = {"extra": "forbid"}

    portal: PortalConfig = PortalConfig()
    resolver: ResolverConfig = ResolverConfig()
    cache: CacheConfig = CacheConfig()
    notify: NotifyConfig = NotifyConfig()
    telegram: TelegramConfig = TelegramConfig()
    ops: OpsConfig = OpsConfig()
    groups: list[str] = Field(default_factory=lambda: list(DEFAULT_GROUPS))
