import os
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import BaseModel

CONFIG_PATH = Path(os.getenv("STOREFRONT_CONFIG", "configs/storefront.yaml"))

# env var -> (section, key)
ENV_OVERRIDES = {
    "SHOPIFY_SHOP": ("client", "shop"),
    "SHOPIFY_ACCESS_TOKEN": ("client", "access_token"),
    "SHOPIFY_API_VERSION": ("client", "api_version"),
    "SHOPIFY_REQUEST_TIMEOUT": ("client", "timeout"),
    "SHOPIFY_MAX_ATTEMPTS": ("client", "max_attempts"),
    "UPLOAD_POLL_INTERVAL": ("uploads", "poll_interval"),
    "UPLOAD_MAX_POLLS": ("uploads", "max_polls"),
    "BLOB_STORE_URL": ("uploads", "blob_store_url"),
    "BLOB_STORE_TOKEN": ("uploads", "blob_store_token"),
    "THEME_NAME_PREFIX": ("theme", "name_prefix"),
}


class ClientSettings(BaseModel):
    shop: str = ""
    access_token: str = ""
    api_version: str = "2026-01"
    timeout: float = 30.0
    max_attempts: int = 3


class UploadSettings(BaseModel):
    poll_interval: float = 3.0
    max_polls: int = 60
    blob_store_url: str = ""
    blob_store_token: str = ""


class ThemeSettings(BaseModel):
    name_prefix: str = "VT-PRO"
    primary_color: str = "#6d388b"
    secondary_color: str = "#a7d92f"
    write_attempts: int = 3
    write_backoff: float = 2.0


class RateLimitSettings(BaseModel):
    rate_per_sec: float = 2.0
    burst: int = 5


class Settings(BaseModel):
    client: ClientSettings = ClientSettings()
    uploads: UploadSettings = UploadSettings()
    theme: ThemeSettings = ThemeSettings()
    rate_limits: RateLimitSettings = RateLimitSettings()

    @property
    def has_credentials(self) -> bool:
        return bool(self.client.shop and self.client.access_token)


def _load_config(path: Path = CONFIG_PATH) -> Dict[str, Any]:
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text()) or {}


def load_settings(path: Path = CONFIG_PATH) -> Settings:
    """YAML file first, environment variables on top."""
    raw = _load_config(path)
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            raw.setdefault(section, {})[key] = value
    return Settings.model_validate(raw)
