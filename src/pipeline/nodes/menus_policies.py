import logging
from typing import List

from pydantic import BaseModel, Field

from pipeline.state import CollectionRecord, ItemError, OnboardingForm, PipelineState, StepResult
from schema.templates.loader import render_policies
from shopify_admin import queries
from shopify_admin.errors import StorefrontError

logger = logging.getLogger(__name__)

MENU_HANDLE = "main-menu"
MENU_TITLE = "Main Menu"


class MenusRequest(BaseModel):
    collections: List[CollectionRecord] = Field(default_factory=list)


def build_request(state: PipelineState, form: OnboardingForm) -> MenusRequest:
    return MenusRequest(collections=state.collections)


def menu_items(collections: List[CollectionRecord]) -> List[dict]:
    return [{"title": c.name, "type": "COLLECTION", "resourceId": c.id} for c in collections]


def menus_policies_node(req: MenusRequest, services) -> StepResult:
    client = services.client
    errors: List[ItemError] = []
    items = menu_items(req.collections)

    try:
        menu = services.reconciler.find_or_create(
            "menu", MENU_HANDLE, {"title": MENU_TITLE, "items": items}
        )
        if not menu.created:
            # an existing menu keeps its own items unless we overwrite them
            client.execute_with_retry(
                queries.MENU_UPDATE,
                {"id": menu.id, "title": MENU_TITLE, "handle": MENU_HANDLE, "items": items},
            )
    except StorefrontError as exc:
        logger.warning("main menu failed: %s", exc)
        errors.append(ItemError(key=MENU_HANDLE, reason=str(exc)))

    store_name = client.store_name
    policies = render_policies(store_name, f"support@{client.shop}")
    for policy_type, body in policies.items():
        try:
            client.execute_with_retry(
                queries.SHOP_POLICY_UPDATE,
                {"shopPolicy": {"type": policy_type, "body": body}},
            )
        except StorefrontError as exc:
            logger.warning("policy %s failed: %s", policy_type, exc)
            errors.append(ItemError(key=policy_type, reason=str(exc)))

    if errors:
        message = f"{len(errors)} navigation/policy updates failed"
    else:
        message = f"main menu with {len(items)} collections and {len(policies)} policies set"
    return StepResult(success=not errors, message=message, errors=errors)
