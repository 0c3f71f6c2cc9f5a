import csv
import io
import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from pipeline.catalog import REQUIRED_COLUMNS
from pipeline.services import Services
from settings import ClientSettings, Settings, UploadSettings
from shopify_admin.blob_store import HttpBlobStore
from shopify_admin.client import ShopifyClient

SHOP = "demo-store.myshopify.com"
UPLOAD_HOST = "uploads.test"
BLOB_HOST = "blobs.test"
CDN_HOST = "cdn.test"

OP_RE = re.compile(r"(query|mutation)\s+(\w+)")

Handler = Callable[[Dict[str, Any]], Any]


def ok(field: str, **payload) -> Dict[str, Any]:
    return {"data": {field: {**payload, "userErrors": []}}}


def user_error(field: str, message: str) -> Dict[str, Any]:
    return {"data": {field: {"userErrors": [{"field": ["handle"], "message": message}]}}}


def throttled() -> Dict[str, Any]:
    return {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}


class FakeShopify:
    """In-memory Admin API plus the staged-upload and blob hosts.

    Dispatches GraphQL calls on the operation name. Tests replace a single
    operation with `on(name, handler)`; a handler may return a response body,
    an httpx.Response, or a list of those to play back in order.
    """

    def __init__(self):
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.transfers: List[httpx.Request] = []
        self.blob_puts: List[str] = []
        self.blob_deletes: List[str] = []
        self.collections: Dict[str, str] = {}
        self.products: Dict[str, str] = {}
        self.themes: Dict[str, Dict[str, Any]] = {}
        self.menus: Dict[str, str] = {}
        self.files: Dict[str, str] = {}
        self.theme_files: Dict[str, str] = {}
        self.file_status = "READY"
        self.theme_processing = False
        self.theme_failed = False
        self.transfer_status = 201
        self.blob_delete_status = 204
        self._ids = 0
        self._overrides: Dict[str, Any] = {}

    # --------- test controls ---------
    def on(self, operation: str, response: Any) -> None:
        self._overrides[operation] = list(response) if isinstance(response, list) else response

    def ops(self) -> List[str]:
        return [op for op, _ in self.calls]

    def count(self, operation: str) -> int:
        return self.ops().count(operation)

    def variables(self, operation: str) -> List[Dict[str, Any]]:
        return [v for op, v in self.calls if op == operation]

    def _gid(self, kind: str) -> str:
        self._ids += 1
        return f"gid://shopify/{kind}/{self._ids}"

    # --------- transport ---------
    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == UPLOAD_HOST:
            self.transfers.append(request)
            return httpx.Response(self.transfer_status, text="" if self.transfer_status < 300 else "<Error>denied</Error>")
        if host == BLOB_HOST:
            if request.method == "PUT":
                self.blob_puts.append(str(request.url))
                return httpx.Response(200, json={"url": str(request.url)})
            self.blob_deletes.append(str(request.url))
            return httpx.Response(self.blob_delete_status, text="" if self.blob_delete_status < 300 else "unavailable")

        body = json.loads(request.content)
        operation = OP_RE.search(body["query"]).group(2)
        variables = body.get("variables") or {}
        self.calls.append((operation, variables))

        if operation in self._overrides:
            override = self._overrides[operation]
            if isinstance(override, list):
                result = override.pop(0) if len(override) > 1 else override[0]
            else:
                result = override
            if callable(result):
                result = result(variables)
        else:
            result = getattr(self, f"_{operation}")(variables)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    # --------- default behaviour ---------
    def _GetLocations(self, v):
        return {"data": {"locations": {"edges": [{"node": {"id": "gid://shopify/Location/1", "name": "Warehouse"}}]}}}

    def _GetPublications(self, v):
        edges = [
            {"node": {"id": "gid://shopify/Publication/1", "name": "Online Store"}},
            {"node": {"id": "gid://shopify/Publication/2", "name": "Point of Sale"}},
        ]
        return {"data": {"publications": {"edges": edges}}}

    def _PublishablePublish(self, v):
        return ok("publishablePublish")

    def _ProductCreate(self, v):
        handle = v["product"]["handle"]
        if handle in self.products:
            return user_error("productCreate", f"Handle '{handle}' has already been taken")
        self.products[handle] = self._gid("Product")
        return ok("productCreate", product={"id": self.products[handle], "handle": handle, "title": v["product"]["title"]})

    def _ProductByHandle(self, v):
        handle = v["query"].split(":", 1)[1]
        nodes = [{"id": self.products[handle], "handle": handle, "title": handle}] if handle in self.products else []
        return {"data": {"products": {"nodes": nodes}}}

    def _ProductVariantsBulkCreate(self, v):
        variants = [{"id": self._gid("ProductVariant"), "title": "x", "price": x["price"]} for x in v["variants"]]
        return ok("productVariantsBulkCreate", productVariants=variants)

    def _CollectionCreate(self, v):
        handle = v["input"]["handle"]
        if handle in self.collections:
            return user_error("collectionCreate", "Handle has already been taken")
        self.collections[handle] = self._gid("Collection")
        return ok("collectionCreate", collection={"id": self.collections[handle], "handle": handle, "title": v["input"]["title"]})

    def _CollectionByHandle(self, v):
        handle = v["query"].split(":", 1)[1]
        nodes = [{"id": self.collections[handle], "handle": handle, "title": handle}] if handle in self.collections else []
        return {"data": {"collections": {"nodes": nodes}}}

    def _CollectionAddProducts(self, v):
        return ok("collectionAddProducts", collection={"id": v["id"]})

    def _CollectionUpdate(self, v):
        return ok("collectionUpdate", collection={"id": v["input"]["id"]})

    def _ThemeCreate(self, v):
        name = v["name"]
        if name in self.themes:
            return user_error("themeCreate", "Name has already been taken")
        self.themes[name] = {"id": self._gid("OnlineStoreTheme"), "name": name, "role": v["role"]}
        return ok("themeCreate", theme=dict(self.themes[name]))

    def _ListThemes(self, v):
        return {"data": {"themes": {"nodes": [dict(t) for t in self.themes.values()]}}}

    def _ThemeStatus(self, v):
        return {"data": {"theme": {"id": v["id"], "processing": self.theme_processing, "processingFailed": self.theme_failed}}}

    def _ThemePublish(self, v):
        for t in self.themes.values():
            t["role"] = "MAIN" if t["id"] == v["id"] else "UNPUBLISHED"
        return ok("themePublish", theme={"id": v["id"], "role": "MAIN"})

    def _ThemeFilesUpsert(self, v):
        for f in v["files"]:
            self.theme_files[f["filename"]] = f["body"]["value"]
        return ok("themeFilesUpsert", upsertedThemeFiles=[{"filename": f["filename"]} for f in v["files"]])

    def _ThemeFiles(self, v):
        nodes = [{"filename": n, "body": {"content": c}} for n, c in self.theme_files.items() if n in v["filenames"]]
        return {"data": {"theme": {"id": v["themeId"], "name": "VT-PRO - demo-store", "role": "MAIN", "files": {"nodes": nodes}}}}

    def _StagedUploadsCreate(self, v):
        targets = [
            {
                "url": f"https://{UPLOAD_HOST}/bucket",
                "resourceUrl": f"https://{UPLOAD_HOST}/bucket/tmp/{i['filename']}",
                "parameters": [
                    {"name": "key", "value": f"tmp/{i['filename']}"},
                    {"name": "policy", "value": "cG9saWN5"},
                ],
            }
            for i in v["input"]
        ]
        return ok("stagedUploadsCreate", stagedTargets=targets)

    def _FileCreate(self, v):
        files = []
        for f in v["files"]:
            file_id = self._gid("MediaImage")
            self.files[file_id] = f["originalSource"].rsplit("/", 1)[-1]
            files.append({"id": file_id, "alt": f.get("alt", ""), "fileStatus": "UPLOADED"})
        return ok("fileCreate", files=files)

    def _FileStatus(self, v):
        name = self.files.get(v["id"], "missing.png")
        url = f"https://{CDN_HOST}/files/{name}?v=1" if self.file_status == "READY" else None
        return {"data": {"node": {"id": v["id"], "fileStatus": self.file_status, "image": {"url": url} if url else None}}}

    def _ListMenus(self, v):
        return {"data": {"menus": {"nodes": [{"id": i, "handle": h, "title": h} for h, i in self.menus.items()]}}}

    def _MenuCreate(self, v):
        handle = v["handle"]
        if handle in self.menus:
            return user_error("menuCreate", "Handle has already been taken")
        self.menus[handle] = self._gid("Menu")
        return ok("menuCreate", menu={"id": self.menus[handle], "handle": handle, "title": v["title"]})

    def _MenuUpdate(self, v):
        return ok("menuUpdate", menu={"id": v["id"], "handle": v["handle"], "title": v["title"]})

    def _ShopPolicyUpdate(self, v):
        return ok("shopPolicyUpdate", shopPolicy={"id": self._gid("ShopPolicy"), "type": v["shopPolicy"]["type"]})


# --------- catalog helpers ---------
EXTRA_COLUMNS = ["Option1 Name", "Option1 Value", "Variant SKU", "Variant Inventory Qty", "Status"]


def catalog_row(handle: str, title: str = "", price: str = "19.90", **extra: str) -> Dict[str, str]:
    row = {c: "" for c in REQUIRED_COLUMNS + EXTRA_COLUMNS}
    row.update({
        "Handle": handle,
        "Title": title,
        "Body (HTML)": f"<p>{title}</p>" if title else "",
        "Vendor": "Acme",
        "Type": "Shirt",
        "Tags": "summer, cotton",
        "Published": "TRUE",
        "Variant Price": price,
        "Image Src": f"https://img.test/{handle}.jpg" if title else "",
        "Image Position": "1" if title else "",
        "Variant SKU": f"SKU-{handle}",
        "Variant Inventory Qty": "5",
        "Status": "active",
    })
    row.update(extra)
    return row


def render_catalog(rows: List[Dict[str, str]], columns: Optional[List[str]] = None) -> str:
    columns = columns or REQUIRED_COLUMNS + EXTRA_COLUMNS
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def make_catalog(valid: int, missing_price: Tuple[str, ...] = ()) -> str:
    rows = [catalog_row(f"shirt-{i}", f"Shirt {i}") for i in range(1, valid + 1)]
    rows += [catalog_row(handle, handle.title(), price="") for handle in missing_price]
    return render_catalog(rows)


# --------- fixtures ---------
@pytest.fixture
def fake():
    return FakeShopify()


@pytest.fixture
def http(fake):
    return httpx.Client(transport=httpx.MockTransport(fake))


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(http, sleeps):
    return ShopifyClient(SHOP, "shpat_test", http=http, sleep=sleeps.append)


@pytest.fixture
def settings():
    return Settings(
        client=ClientSettings(shop=SHOP, access_token="shpat_test"),
        uploads=UploadSettings(poll_interval=0.5, max_polls=3, blob_store_url=f"https://{BLOB_HOST}"),
    )


@pytest.fixture
def blob_store(http):
    return HttpBlobStore(f"https://{BLOB_HOST}", token="blob-token", http=http)


@pytest.fixture
def services(client, settings, blob_store, sleeps):
    return Services.for_client(client, settings, blob_store=blob_store, sleep=sleeps.append)


@pytest.fixture
def image_file(tmp_path):
    p = tmp_path / "logo.png"
    p.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32)
    return p


@pytest.fixture
def theme_zip(tmp_path):
    p = tmp_path / "theme.zip"
    p.write_bytes(b"PK\x03\x04" + b"\x00" * 64)
    return p
