from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_REVIEWER_ROLES = [
    "president",
    "senior-general-manager",
    "general-manager",
    "assistant-sales-manager",
    "area-sales-manager",
    "regional-sales-manager",
    "senior-manager",
    "manager",
    "assistant-manager",
    "senior-executive",
    "executive",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./sfa.db"
    database_echo: bool = False
    tracing_enabled: bool = True

    # Internal API security
    admin_api_key: str = ""

    # Role gating for mason loyalty administration
    loyalty_reviewer_roles: list[str] = Field(default_factory=lambda: list(_DEFAULT_REVIEWER_ROLES))
    loyalty_ledger_reader_roles: list[str] = Field(
        default_factory=lambda: [role for role in _DEFAULT_REVIEWER_ROLES if role != "executive"]
    )

    @field_validator("loyalty_reviewer_roles", "loyalty_ledger_reader_roles", mode="before")
    @classmethod
    def _parse_role_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Points rules
    loyalty_slab_bonuses: list[dict] = Field(
        default_factory=lambda: [
            {"threshold": 100, "points": 20},
            {"threshold": 250, "points": 50},
            {"threshold": 500, "points": 100},
            {"threshold": 1000, "points": 250},
        ]
    )
    loyalty_referral_milestones: list[dict] = Field(
        default_factory=lambda: [{"threshold": 100, "points": 100}]
    )
    loyalty_joining_bonus_points: int = 250

    # Ledger reconciliation worker
    ledger_reconciliation_worker_enabled: bool = False
    ledger_reconciliation_interval_seconds: int = 60 * 60
    ledger_reconciliation_repair: bool = False
    ledger_reconciliation_batch_size: int = 500


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
