import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from pipeline.state import ItemError, OnboardingForm, PipelineState, StepResult
from shopify_admin.errors import BlobCleanupError, ProcessingFailed, ProcessingTimeout, StorefrontError
from shopify_admin.uploads import LocalFile, ResourceStatus

logger = logging.getLogger(__name__)


class ThemeRequest(BaseModel):
    theme_zip_path: Optional[str] = None


def build_request(state: PipelineState, form: OnboardingForm) -> ThemeRequest:
    return ThemeRequest(theme_zip_path=form.theme_zip_path)


def theme_name(prefix: str, store_name: str) -> str:
    return f"{prefix} - {store_name}"


def _not_ready(theme_id: str, status: ResourceStatus, message: str) -> StepResult:
    reason = "processing failed" if status is ResourceStatus.FAILED else "processing timed out"
    return StepResult(
        success=False,
        message=message,
        errors=[ItemError(key="theme", reason=reason)],
        payload={"theme_id": theme_id},
    )


def upload_theme_node(req: ThemeRequest, services) -> StepResult:
    name = theme_name(services.settings.theme.name_prefix, services.client.store_name)

    try:
        existing = services.reconciler.lookup("theme", name)
    except StorefrontError as exc:
        logger.warning("theme lookup failed, installing anyway: %s", exc)
        existing = None
    if existing is not None:
        # an earlier attempt may have timed out or failed mid-processing
        polled = services.uploads.poll(existing.id, services.uploads.theme_status)
        if polled.status is not ResourceStatus.READY:
            logger.warning("theme %s (%s) is %s", name, existing.id, polled.status.value)
            return _not_ready(
                existing.id,
                polled.status,
                f"theme '{name}' exists but is not ready ({polled.status.value.lower()})",
            )
        logger.info("reusing theme %s (%s)", name, existing.id)
        return StepResult(
            success=True,
            message=f"theme '{name}' already installed",
            payload={"theme_id": existing.id},
        )

    if not req.theme_zip_path or not Path(req.theme_zip_path).is_file():
        return StepResult(
            success=False,
            message="no theme archive supplied",
            errors=[ItemError(key="theme", reason=f"archive not found: {req.theme_zip_path}")],
        )
    if services.blob_store is None:
        return StepResult(
            success=False,
            message="no blob store configured for theme uploads",
            errors=[ItemError(key="theme", reason="BLOB_STORE_URL is not set")],
        )

    archive = LocalFile.from_path(req.theme_zip_path, key="theme")
    warnings = []
    try:
        theme = services.uploads.install_theme(archive, name, services.reconciler, services.blob_store)
    except ProcessingTimeout as exc:
        # the theme exists remotely, it just has not finished processing
        return _not_ready(exc.reference.id, ResourceStatus.TIMEOUT, str(exc))
    except ProcessingFailed as exc:
        return _not_ready(exc.resource_id, ResourceStatus.FAILED, f"theme install failed: {exc}")
    except BlobCleanupError as exc:
        theme = exc.entity
        warnings.append(str(exc))
    except StorefrontError as exc:
        logger.error("theme install failed: %s", exc)
        return StepResult(
            success=False,
            message=f"theme install failed: {exc}",
            errors=[ItemError(key="theme", reason=str(exc))],
        )

    return StepResult(
        success=True,
        message=f"theme '{name}' installed",
        warnings=warnings,
        payload={"theme_id": theme.id},
    )
