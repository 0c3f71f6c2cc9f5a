import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from pipeline.catalog import slugify
from pipeline.state import CollectionImage, CollectionRecord, ItemError, OnboardingForm, PipelineState, StepResult
from shopify_admin import queries
from shopify_admin.errors import ProcessingTimeout, StorefrontError
from shopify_admin.uploads import LocalFile

logger = logging.getLogger(__name__)

# upload key -> PipelineState field
BRAND_IMAGES = {
    "logo": "logo_url",
    "favicon": "favicon_url",
    "bannerDesktop": "banner_desktop_url",
    "bannerMobile": "banner_mobile_url",
}


class ImagesRequest(BaseModel):
    logo_path: Optional[str] = None
    favicon_path: Optional[str] = None
    banner_desktop_path: Optional[str] = None
    banner_mobile_path: Optional[str] = None
    collections: List[CollectionRecord] = Field(default_factory=list)
    # collection handle -> image path
    collection_image_paths: Dict[str, str] = Field(default_factory=dict)


def build_request(state: PipelineState, form: OnboardingForm) -> ImagesRequest:
    return ImagesRequest(
        logo_path=form.logo_path,
        favicon_path=form.favicon_path,
        banner_desktop_path=form.banner_desktop_path,
        banner_mobile_path=form.banner_mobile_path,
        collections=state.collections,
        collection_image_paths={slugify(name): path for name, path in form.collection_image_paths.items()},
    )


def collection_key(handle: str) -> str:
    return f"col_{handle}"


def _planned_uploads(req: ImagesRequest) -> List[Tuple[str, str]]:
    plan = [
        ("logo", req.logo_path),
        ("favicon", req.favicon_path),
        ("bannerDesktop", req.banner_desktop_path),
        ("bannerMobile", req.banner_mobile_path),
    ]
    for col in req.collections:
        plan.append((collection_key(col.handle), req.collection_image_paths.get(col.handle)))
    return [(key, path) for key, path in plan if path]


def attach_collection_image(client, collection_id: str, url: str) -> None:
    try:
        client.execute_with_retry(
            queries.COLLECTION_UPDATE,
            {"input": {"id": collection_id, "image": {"src": url}}},
        )
    except StorefrontError as exc:
        logger.warning("could not attach image to %s: %s", collection_id, exc)


def upload_images_node(req: ImagesRequest, services) -> StepResult:
    plan = _planned_uploads(req)
    if not plan:
        return StepResult(success=True, message="no images to upload")

    urls: Dict[str, str] = {}
    errors: List[ItemError] = []
    warnings: List[str] = []

    for key, path in plan:
        try:
            local = LocalFile.from_path(path, key)
            ref = services.uploads.upload(local)
            urls[key] = ref.url
        except ProcessingTimeout as exc:
            urls[key] = exc.reference.url
            warnings.append(f"{key}: still processing, using unconfirmed URL")
        except (StorefrontError, OSError) as exc:
            logger.warning("upload of %s failed: %s", key, exc)
            errors.append(ItemError(key=key, reason=str(exc)))

    collection_images: List[CollectionImage] = []
    for col in req.collections:
        url = urls.get(collection_key(col.handle))
        if not url:
            continue
        attach_collection_image(services.client, col.id, url)
        collection_images.append(CollectionImage(handle=col.handle, url=url))

    payload = {field: urls.get(key, "") for key, field in BRAND_IMAGES.items()}
    payload["collection_images"] = collection_images

    uploaded = len(urls)
    message = f"{uploaded} images uploaded"
    if errors:
        message += f", {len(errors)} failed"
    return StepResult(
        success=uploaded > 0,
        message=message,
        errors=errors,
        warnings=warnings,
        payload=payload,
        details={"uploaded": uploaded, "failed": len(errors)},
    )
