"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Equipment Checkout"
    app_version: str = "0.1.0"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    service_name: str = "equipment-lifecycle"
    database_url: str = "sqlite:///./equipment.db"
    database_echo: bool = False
    sqlite_busy_timeout_seconds: float = 30.0
    # Lifecycle policy defaults (overridable from the YAML policy file)
    policy_path: str = "config/policy.yml"
    claim_mode: str = "direct"  # direct|two_step
    release_policy: str = "holder_or_elevated"  # holder_only|holder_or_elevated
    elevated_roles: tuple[str, ...] = ("ADMIN",)
    require_tag_scan: bool = False
    # Background status reconciliation for time-triggered maintenance windows
    reconcile_enabled: bool = True
    reconcile_interval_seconds: float = 60.0
    system_actor_id: str = "system"
    audit_page_size_default: int = 50
    audit_page_size_max: int = 200

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()

__all__ = ["settings", "Settings"]
