# src/shopify_admin/reconciler.py
# Idempotent find-or-create for named store entities.
#
# The Admin API has no idempotent create, so we emulate it: create first,
# and when Shopify rejects the name as taken, look the entity up by its
# natural key. Re-running a step therefore never produces duplicates.

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

from . import queries
from .client import ShopifyClient
from .errors import BusinessError, ReconciliationError

logger = logging.getLogger(__name__)

CONFLICT_MARKERS = ("already", "taken")


class RemoteEntity(BaseModel):
    kind: str
    key: str
    id: str
    created: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class ResourceKind:
    name: str
    create: Callable[[ShopifyClient, str, Dict[str, Any]], Optional[Dict[str, Any]]]
    lookup: Callable[[ShopifyClient, str], Optional[Dict[str, Any]]]


def is_conflict(message: str) -> bool:
    m = (message or "").lower()
    return any(marker in m for marker in CONFLICT_MARKERS)


# ---------- collections (natural key: handle) ----------
def _create_collection(client: ShopifyClient, handle: str, spec: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = client.execute_with_retry(
        queries.COLLECTION_CREATE,
        {"input": {"title": spec.get("title") or handle, "handle": handle}},
    )
    return (data.get("collectionCreate") or {}).get("collection")


def _lookup_collection(client: ShopifyClient, handle: str) -> Optional[Dict[str, Any]]:
    data = client.execute_with_retry(queries.COLLECTION_BY_HANDLE, {"query": f"handle:{handle}"})
    for node in (data.get("collections") or {}).get("nodes") or []:
        if node.get("handle") == handle:
            return node
    return None


# ---------- products (natural key: handle) ----------
def _create_product(client: ShopifyClient, handle: str, spec: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    variables: Dict[str, Any] = {"product": {**spec["product"], "handle": handle}}
    if spec.get("media"):
        variables["media"] = spec["media"]
    data = client.execute_with_retry(queries.PRODUCT_CREATE, variables)
    return (data.get("productCreate") or {}).get("product")


def _lookup_product(client: ShopifyClient, handle: str) -> Optional[Dict[str, Any]]:
    data = client.execute_with_retry(queries.PRODUCT_BY_HANDLE, {"query": f"handle:{handle}"})
    for node in (data.get("products") or {}).get("nodes") or []:
        if node.get("handle") == handle:
            return node
    return None


# ---------- themes (natural key: name) ----------
def _create_theme(client: ShopifyClient, name: str, spec: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = client.execute_with_retry(
        queries.THEME_CREATE,
        {"name": name, "source": spec["source"], "role": spec.get("role", "UNPUBLISHED")},
    )
    return (data.get("themeCreate") or {}).get("theme")


def _lookup_theme(client: ShopifyClient, name: str) -> Optional[Dict[str, Any]]:
    data = client.execute_with_retry(queries.LIST_THEMES)
    for node in (data.get("themes") or {}).get("nodes") or []:
        if node.get("name") == name:
            return node
    return None


# ---------- menus (natural key: handle) ----------
def _create_menu(client: ShopifyClient, handle: str, spec: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = client.execute_with_retry(
        queries.MENU_CREATE,
        {"title": spec.get("title") or handle, "handle": handle, "items": spec.get("items", [])},
    )
    return (data.get("menuCreate") or {}).get("menu")


def _lookup_menu(client: ShopifyClient, handle: str) -> Optional[Dict[str, Any]]:
    data = client.execute_with_retry(queries.LIST_MENUS)
    for node in (data.get("menus") or {}).get("nodes") or []:
        if node.get("handle") == handle:
            return node
    return None


KINDS: Dict[str, ResourceKind] = {
    "collection": ResourceKind("collection", _create_collection, _lookup_collection),
    "product": ResourceKind("product", _create_product, _lookup_product),
    "theme": ResourceKind("theme", _create_theme, _lookup_theme),
    "menu": ResourceKind("menu", _create_menu, _lookup_menu),
}


class ResourceReconciler:
    def __init__(self, client: ShopifyClient, kinds: Optional[Dict[str, ResourceKind]] = None):
        self.client = client
        self.kinds = kinds or KINDS

    def _kind(self, kind: str) -> ResourceKind:
        try:
            return self.kinds[kind]
        except KeyError:
            raise ValueError(f"unknown resource kind: {kind}") from None

    def lookup(self, kind: str, natural_key: str) -> Optional[RemoteEntity]:
        node = self._kind(kind).lookup(self.client, natural_key)
        if not node or not node.get("id"):
            return None
        return RemoteEntity(kind=kind, key=natural_key, id=node["id"], created=False, data=node)

    def find_or_create(self, kind: str, natural_key: str, spec: Dict[str, Any]) -> RemoteEntity:
        k = self._kind(kind)
        try:
            node = k.create(self.client, natural_key, spec)
        except BusinessError as exc:
            if not is_conflict(str(exc)):
                raise ReconciliationError(kind, natural_key, str(exc)) from exc
            logger.info("%s '%s' already exists, looking it up", kind, natural_key)
            existing = self.lookup(kind, natural_key)
            if existing is None:
                raise ReconciliationError(kind, natural_key, str(exc)) from exc
            return existing

        if not node or not node.get("id"):
            raise ReconciliationError(kind, natural_key, "create returned no entity")
        return RemoteEntity(kind=kind, key=natural_key, id=node["id"], created=True, data=node)
