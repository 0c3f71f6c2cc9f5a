# src/shopify_admin/base.py
from typing import Optional

from settings import Settings, load_settings

from .client import ShopifyClient


def get_client(settings: Optional[Settings] = None) -> Optional[ShopifyClient]:
    """Client bound to the configured shop, or None when credentials are missing."""
    settings = settings or load_settings()
    if not settings.has_credentials:
        return None
    return ShopifyClient.from_settings(settings.client)
