import logging

from pydantic import BaseModel

from pipeline.state import ItemError, OnboardingForm, PipelineState, StepResult
from shopify_admin import queries
from shopify_admin.errors import StorefrontError

logger = logging.getLogger(__name__)

MAIN_ROLE = "MAIN"


class PublishRequest(BaseModel):
    theme_id: str


def build_request(state: PipelineState, form: OnboardingForm) -> PublishRequest:
    return PublishRequest(theme_id=state.theme_id)


def publish_theme_node(req: PublishRequest, services) -> StepResult:
    try:
        data = services.client.execute_with_retry(queries.THEME_PUBLISH, {"id": req.theme_id})
    except StorefrontError as exc:
        logger.error("themePublish failed: %s", exc)
        return StepResult(
            success=False,
            message=f"theme not published: {exc}",
            errors=[ItemError(key=req.theme_id, reason=str(exc))],
        )

    role = ((data.get("themePublish") or {}).get("theme") or {}).get("role") or ""
    if role != MAIN_ROLE:
        return StepResult(
            success=False,
            message=f"theme role is {role or 'unknown'}, expected {MAIN_ROLE}",
            errors=[ItemError(key=req.theme_id, reason=f"role {role or 'unknown'}")],
            payload={"theme_role": role},
        )
    return StepResult(success=True, message="theme is live", payload={"theme_role": role})
