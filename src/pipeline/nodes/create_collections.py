import logging
from typing import List

from pydantic import BaseModel, Field

from pipeline.catalog import chunk, slugify
from pipeline.nodes.import_products import fetch_publication_id, publish
from pipeline.state import CollectionRecord, ItemError, OnboardingForm, PipelineState, StepResult
from shopify_admin import queries
from shopify_admin.errors import StorefrontError

logger = logging.getLogger(__name__)

AGGREGATE_TITLE = "Best Sellers"
AGGREGATE_HANDLE = "best-sellers"
ADD_PRODUCTS_BATCH = 250


class CollectionsRequest(BaseModel):
    collection_names: List[str] = Field(default_factory=list)
    product_ids: List[str] = Field(default_factory=list)


def build_request(state: PipelineState, form: OnboardingForm) -> CollectionsRequest:
    return CollectionsRequest(collection_names=form.collection_names, product_ids=state.product_ids)


def create_collections_node(req: CollectionsRequest, services) -> StepResult:
    reconciler = services.reconciler
    client = services.client
    publication_id = fetch_publication_id(client)

    records: List[CollectionRecord] = []
    errors: List[ItemError] = []
    seen = set()

    for name in req.collection_names:
        name = name.strip()
        handle = slugify(name)
        if not handle or handle in seen or handle == AGGREGATE_HANDLE:
            continue
        seen.add(handle)
        try:
            entity = reconciler.find_or_create("collection", handle, {"title": name})
        except StorefrontError as exc:
            logger.warning("collection %s failed: %s", handle, exc)
            errors.append(ItemError(key=handle, reason=str(exc)))
            continue
        publish(client, entity.id, publication_id)
        records.append(CollectionRecord(id=entity.id, handle=handle, name=name))

    try:
        aggregate = reconciler.find_or_create("collection", AGGREGATE_HANDLE, {"title": AGGREGATE_TITLE})
    except StorefrontError as exc:
        # named collections alone are still a usable storefront
        logger.warning("%s failed: %s", AGGREGATE_HANDLE, exc)
        errors.append(ItemError(key=AGGREGATE_HANDLE, reason=str(exc)))
        return StepResult(
            success=bool(records),
            message=f"{len(records)} collections ready, could not create {AGGREGATE_TITLE}: {exc}",
            errors=errors,
            payload={"collections": records},
        )
    publish(client, aggregate.id, publication_id)

    added = 0
    for n, batch in enumerate(chunk(req.product_ids, ADD_PRODUCTS_BATCH), start=1):
        try:
            client.execute_with_retry(
                queries.COLLECTION_ADD_PRODUCTS,
                {"id": aggregate.id, "productIds": batch},
            )
            added += len(batch)
        except StorefrontError as exc:
            logger.warning("adding batch %d to %s failed: %s", n, AGGREGATE_HANDLE, exc)
            errors.append(ItemError(key=f"{AGGREGATE_HANDLE}#batch{n}", reason=str(exc)))

    message = f"{len(records)} collections ready, {added} products in {AGGREGATE_TITLE}"
    if errors:
        message += f", {len(errors)} problems"
    return StepResult(
        success=True,
        message=message,
        errors=errors,
        payload={"collections": records, "aggregate_collection_id": aggregate.id},
    )
