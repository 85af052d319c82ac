"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    discord_bot_token: str
    discord_guild_id: str
    supabase_url: str
    supabase_service_key: str
    admin_token: str
    relay_token: str | None = None
    deals_table: str = "member_wtbs"
    sellers_table: str = "sellers"
    deal_category_ids: str | None = None
    approver_role_ids: str | None = None
    approver_user_ids: str | None = None
    listings_channel_id: str | None = None
    automation_webhook_url: str | None = None
    payment_iban: str | None = None
    payment_paypal_email: str | None = None
    payment_beneficiary: str | None = None
    evidence_required: int = 6
    evidence_example_url: str | None = None
    upload_session_ttl_minutes: float = 15
    claim_context_ttl_minutes: float = 60
    channel_delete_delay_seconds: float = 2.5
    max_channels_per_category: int = 50
    tracking_prefix: str = "1Z"
    expiry_hours: float = 24
    expiry_sweep_minutes: float = 10
    expiry_initial_delay_seconds: float = 15
    expiry_batch_size: int = 100
    expiry_sweep_enabled: bool = True
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_id_list(raw: str | None) -> list[str]:
    """Parse a comma separated list of Discord snowflake ids."""
    if raw is None:
        return []
    ids: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if value.isdigit() and value not in ids:
            ids.append(value)
    return ids
