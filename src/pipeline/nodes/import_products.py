import logging
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel

from pipeline.catalog import Row, find_column, group_by_handle, normalize_price, parse_catalog, priced_rows
from pipeline.state import OnboardingForm, PipelineState
from pipeline.streaming import BulkEvent, ItemOutcome, ItemRejected, failed_stream, stream_items
from shopify_admin import queries
from shopify_admin.client import ShopifyClient
from shopify_admin.errors import StorefrontError

logger = logging.getLogger(__name__)

ONLINE_STORE = "Online Store"
MAX_OPTIONS = 3


class ImportRequest(BaseModel):
    catalog_text: str


def build_request(state: PipelineState, form: OnboardingForm) -> ImportRequest:
    return ImportRequest(catalog_text=state.catalog_text)


# --------- lookups ---------
def fetch_location_id(client: ShopifyClient) -> str:
    data = client.execute_with_retry(queries.GET_LOCATIONS)
    edges = (data.get("locations") or {}).get("edges") or []
    if not edges:
        raise ItemRejected("store has no locations")
    return edges[0]["node"]["id"]


def fetch_publication_id(client: ShopifyClient, name: str = ONLINE_STORE) -> Optional[str]:
    """Online Store channel id; None means products stay unpublished."""
    try:
        data = client.execute_with_retry(queries.GET_PUBLICATIONS)
    except StorefrontError as exc:
        logger.warning("publication lookup failed: %s", exc)
        return None
    for edge in (data.get("publications") or {}).get("edges") or []:
        if edge["node"].get("name") == name:
            return edge["node"]["id"]
    return None


def publish(client: ShopifyClient, resource_id: str, publication_id: Optional[str]) -> None:
    """Best effort; a missing sales channel never fails the caller."""
    if not publication_id:
        return
    try:
        client.execute_with_retry(
            queries.PUBLISHABLE_PUBLISH,
            {"id": resource_id, "input": [{"publicationId": publication_id}]},
        )
    except StorefrontError as exc:
        logger.warning("publish %s failed: %s", resource_id, exc)


# --------- payload builders ---------
def build_product(handle: str, rows: List[Row]) -> Dict[str, Any]:
    first = rows[0]
    title = find_column(first, "Title")
    tags = find_column(first, "Tags")
    product = {
        "title": title,
        "descriptionHtml": find_column(first, "Body (HTML)"),
        "vendor": find_column(first, "Vendor"),
        "productType": find_column(first, "Type"),
        "tags": [t.strip() for t in tags.split(",") if t.strip()] if tags else [],
        "status": "ACTIVE" if find_column(first, "Status").lower() == "active" else "DRAFT",
    }
    media = [
        {"originalSource": src, "mediaContentType": "IMAGE", "alt": title or handle}
        for src in (find_column(r, "Image Src") for r in rows)
        if src
    ]
    return {"product": product, "media": media}


def build_variants(rows: List[Row], location_id: str) -> List[Dict[str, Any]]:
    first = rows[0]
    option_names: List[str] = []
    for i in range(1, MAX_OPTIONS + 1):
        name = find_column(first, f"Option{i} Name")
        if not name:
            break
        option_names.append(name)

    variants = []
    for r in priced_rows(rows):
        variant: Dict[str, Any] = {"price": normalize_price(find_column(r, "Variant Price"))}
        compare_at = find_column(r, "Variant Compare At Price")
        if compare_at:
            variant["compareAtPrice"] = normalize_price(compare_at)
        sku = find_column(r, "Variant SKU")
        if sku:
            variant["sku"] = sku

        option_values = []
        for i, option in enumerate(option_names, start=1):
            value = find_column(r, f"Option{i} Value")
            if value:
                option_values.append({"name": value, "optionName": option})
        variant["optionValues"] = option_values or [{"name": "Default Title", "optionName": "Title"}]

        qty = find_column(r, "Variant Inventory Qty")
        if qty:
            try:
                variant["inventoryQuantities"] = [
                    {"availableQuantity": int(float(qty)), "locationId": location_id}
                ]
            except ValueError:
                logger.debug("ignoring inventory quantity %r", qty)
        variants.append(variant)
    return variants


# --------- node ---------
def import_products_node(req: ImportRequest, services) -> Iterator[BulkEvent]:
    client = services.client
    _, rows = parse_catalog(req.catalog_text)
    products = list(group_by_handle(rows).items())

    try:
        location_id = fetch_location_id(client)
    except (ItemRejected, StorefrontError) as exc:
        logger.error("location lookup failed: %s", exc)
        yield from failed_stream(
            len(products),
            f"location not found: {exc}",
            message=f"could not resolve a store location: {exc}",
        )
        return

    publication_id = fetch_publication_id(client)
    if not publication_id:
        logger.warning("%s publication not found, products will stay unpublished", ONLINE_STORE)

    def process(handle: str, product_rows: List[Row]) -> ItemOutcome:
        if not find_column(product_rows[0], "Title"):
            raise ItemRejected("Title missing")
        if not priced_rows(product_rows):
            raise ItemRejected("no row with a Variant Price")

        entity = services.reconciler.find_or_create("product", handle, build_product(handle, product_rows))
        if not entity.created:
            return ItemOutcome(id=entity.id, warnings=[f"{handle}: already in store, variants left as they are"])

        publish(client, entity.id, publication_id)

        warnings = []
        try:
            client.execute_with_retry(
                queries.PRODUCT_VARIANTS_BULK_CREATE,
                {
                    "productId": entity.id,
                    "strategy": "REMOVE_STANDALONE_VARIANT",
                    "variants": build_variants(product_rows, location_id),
                },
            )
        except StorefrontError as exc:
            logger.warning("variants for %s failed: %s", handle, exc)
            warnings.append(f"{handle}: variants not created: {exc}")
        return ItemOutcome(id=entity.id, warnings=warnings)

    yield from stream_items(products, process, limiter=services.limiter, label="products")
