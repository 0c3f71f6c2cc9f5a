from typing import AbstractSet, Dict, List, Sequence

from .errors import PipelineDefinitionError
from .nodes import (
    configure_theme,
    create_collections,
    import_products,
    menus_policies,
    publish_theme,
    upload_images,
    upload_theme,
    validate_catalog,
)
from .state import INITIAL_FIELDS, PipelineState, StepDefinition


def _fs(*names: str) -> frozenset:
    return frozenset(names)


STEPS: List[StepDefinition] = [
    StepDefinition(
        id=1,
        label="Validate catalog",
        build_request=validate_catalog.build_request,
        handler=validate_catalog.validate_catalog_node,
        reads=_fs("catalog_text"),
        writes=_fs("total_products", "validated_products"),
        requires=_fs("catalog_text"),
    ),
    StepDefinition(
        id=2,
        label="Import products",
        build_request=import_products.build_request,
        handler=import_products.import_products_node,
        streaming=True,
        reads=_fs("catalog_text"),
        writes=_fs("product_ids"),
        requires=_fs("catalog_text"),
    ),
    StepDefinition(
        id=3,
        label="Create collections",
        build_request=create_collections.build_request,
        handler=create_collections.create_collections_node,
        reads=_fs("product_ids"),
        writes=_fs("collections", "aggregate_collection_id"),
    ),
    StepDefinition(
        id=4,
        label="Upload theme",
        build_request=upload_theme.build_request,
        handler=upload_theme.upload_theme_node,
        writes=_fs("theme_id"),
    ),
    StepDefinition(
        id=5,
        label="Upload images",
        build_request=upload_images.build_request,
        handler=upload_images.upload_images_node,
        reads=_fs("collections"),
        writes=_fs(
            "logo_url", "favicon_url", "banner_desktop_url", "banner_mobile_url", "collection_images"
        ),
    ),
    StepDefinition(
        id=6,
        label="Configure theme",
        build_request=configure_theme.build_request,
        handler=configure_theme.configure_theme_node,
        reads=_fs(
            "theme_id", "logo_url", "favicon_url", "banner_desktop_url", "banner_mobile_url", "collections"
        ),
        requires=_fs("theme_id"),
    ),
    StepDefinition(
        id=7,
        label="Publish theme",
        build_request=publish_theme.build_request,
        handler=publish_theme.publish_theme_node,
        reads=_fs("theme_id"),
        writes=_fs("theme_role"),
        requires=_fs("theme_id"),
    ),
    StepDefinition(
        id=8,
        label="Menus and policies",
        build_request=menus_policies.build_request,
        handler=menus_policies.menus_policies_node,
        reads=_fs("collections"),
    ),
]


def validate_definitions(
    steps: Sequence[StepDefinition],
    initial: AbstractSet[str] = INITIAL_FIELDS,
) -> None:
    """Static ordering check, run once at import and again for custom step tables."""
    known = set(PipelineState.model_fields)
    available = set(initial)
    writers: Dict[str, int] = {}

    for expected, step in enumerate(steps, start=1):
        if step.id != expected:
            raise PipelineDefinitionError(f"step ids must run 1..N in order; got {step.id} at position {expected}")
        unknown = (step.reads | step.writes) - known
        if unknown:
            raise PipelineDefinitionError(f"step {step.id} names unknown fields: {sorted(unknown)}")
        if not step.requires <= step.reads:
            raise PipelineDefinitionError(f"step {step.id} requires fields it does not read: {sorted(step.requires - step.reads)}")
        unmet = step.reads - available
        if unmet:
            raise PipelineDefinitionError(f"step {step.id} reads {sorted(unmet)} before any step writes them")
        for field in step.writes:
            if field in writers or field in initial:
                owner = writers.get(field, "the run input")
                raise PipelineDefinitionError(f"field {field!r} written by step {owner} and step {step.id}")
            writers[field] = step.id
        available |= step.writes


validate_definitions(STEPS)

STEPS_BY_ID: Dict[int, StepDefinition] = {s.id: s for s in STEPS}
