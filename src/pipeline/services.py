import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from rate_limit.limiter import SlidingWindowLimiter, get_limiter
from settings import Settings, load_settings
from shopify_admin.base import get_client
from shopify_admin.blob_store import BlobStore, HttpBlobStore
from shopify_admin.client import ShopifyClient
from shopify_admin.reconciler import ResourceReconciler
from shopify_admin.uploads import StagedUploadManager


@dataclass
class Services:
    """Collaborators shared by every step of one run."""

    client: ShopifyClient
    reconciler: ResourceReconciler
    uploads: StagedUploadManager
    settings: Settings
    limiter: Optional[SlidingWindowLimiter] = None
    blob_store: Optional[BlobStore] = None
    sleep: Callable[[float], None] = field(default=time.sleep)

    @classmethod
    def for_client(
        cls,
        client: ShopifyClient,
        settings: Settings,
        blob_store: Optional[BlobStore] = None,
        limiter: Optional[SlidingWindowLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "Services":
        return cls(
            client=client,
            reconciler=ResourceReconciler(client),
            uploads=StagedUploadManager.from_settings(client, settings.uploads, sleep=sleep),
            settings=settings,
            limiter=limiter,
            blob_store=blob_store,
            sleep=sleep,
        )


def build_services(settings: Optional[Settings] = None) -> Optional[Services]:
    """None when Shopify credentials are not configured."""
    settings = settings or load_settings()
    client = get_client(settings)
    if client is None:
        return None
    blob_store = None
    if settings.uploads.blob_store_url:
        blob_store = HttpBlobStore(settings.uploads.blob_store_url, settings.uploads.blob_store_token)
    return Services.for_client(
        client,
        settings,
        blob_store=blob_store,
        limiter=get_limiter(client.shop, settings.rate_limits),
    )
