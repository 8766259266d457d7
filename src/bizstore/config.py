"""bizstore configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class BizStoreSettings(BaseSettings):
    supabase_url: str = ""
    supabase_key: str = ""
    local_store_dir: str = "~/.bizstore/cache"

    # Remote operations: 1 attempt + max_retries, delays grow linearly
    max_retries: int = 3
    retry_base_delay: float = 1.0
    request_timeout: float = 30.0

    # Let a read issued while offline try the remote once and go back online on success
    offline_read_probe: bool = False

    data_retention_days: int = 365

    model_config = {"env_prefix": "BIZSTORE_", "env_file": ".env", "extra": "ignore"}

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url.strip() and self.supabase_key.strip())

    @property
    def cache_dir(self) -> Path:
        return Path(self.local_store_dir).expanduser()


settings = BizStoreSettings()
