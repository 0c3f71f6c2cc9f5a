import json
import logging
from typing import Any, Dict, List
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from pipeline.catalog import is_valid_hex
from pipeline.state import CollectionRecord, ItemError, OnboardingForm, PipelineState, StepResult
from rate_limit.limiter import retry_linear
from schema.templates.loader import load_template
from shopify_admin import queries
from shopify_admin.errors import StorefrontError

logger = logging.getLogger(__name__)

SETTINGS_FILE = "config/settings_data.json"
INDEX_FILE = "templates/index.json"
MAX_COLUMNS = 5


class ConfigureRequest(BaseModel):
    theme_id: str
    primary_color: str = ""
    secondary_color: str = ""
    logo_url: str = ""
    favicon_url: str = ""
    banner_desktop_url: str = ""
    banner_mobile_url: str = ""
    collections: List[CollectionRecord] = Field(default_factory=list)


def build_request(state: PipelineState, form: OnboardingForm) -> ConfigureRequest:
    return ConfigureRequest(
        theme_id=state.theme_id,
        primary_color=form.primary_color,
        secondary_color=form.secondary_color,
        logo_url=state.logo_url,
        favicon_url=state.favicon_url,
        banner_desktop_url=state.banner_desktop_url,
        banner_mobile_url=state.banner_mobile_url,
        collections=state.collections,
    )


def image_reference(url: str) -> str:
    """Theme settings point at files by name, not by CDN URL."""
    if not url:
        return ""
    name = urlparse(url).path.rsplit("/", 1)[-1]
    return f"shopify://shop_images/{name}" if name else ""


def build_settings_data(req: ConfigureRequest, primary: str, secondary: str) -> Dict[str, Any]:
    data = load_template("settings_data")
    current = data["current"]
    current["logo"] = image_reference(req.logo_url)
    current["favicon"] = image_reference(req.favicon_url)
    current["colors_accent_1"] = primary
    current["colors_accent_2"] = secondary
    current["colors_outline_button_labels"] = primary
    return data


def build_index(req: ConfigureRequest, primary: str, secondary: str) -> Dict[str, Any]:
    data = load_template("index")
    sections = data["sections"]

    slide = sections["slideshow"]["blocks"]["slide_main"]["settings"]
    slide["image"] = image_reference(req.banner_desktop_url)
    slide["mobile_image"] = image_reference(req.banner_mobile_url or req.banner_desktop_url)

    listing = sections["collection_list"]
    for col in req.collections:
        block_id = f"featured_collection_{col.handle}"
        listing["blocks"][block_id] = {
            "type": "featured_collection",
            "settings": {"collection": col.handle, "custom_title": ""},
        }
        listing["block_order"].append(block_id)
    listing["settings"]["columns_desktop"] = max(1, min(len(req.collections), MAX_COLUMNS))
    listing["settings"]["title_highlight_color"] = primary

    sections["featured_collection"]["settings"]["title_highlight_color"] = secondary
    return data


def theme_files(req: ConfigureRequest, primary: str, secondary: str) -> List[Dict[str, Any]]:
    return [
        {
            "filename": SETTINGS_FILE,
            "body": {"type": "TEXT", "value": json.dumps(build_settings_data(req, primary, secondary))},
        },
        {
            "filename": INDEX_FILE,
            "body": {"type": "TEXT", "value": json.dumps(build_index(req, primary, secondary))},
        },
    ]


def configure_theme_node(req: ConfigureRequest, services) -> StepResult:
    cfg = services.settings.theme
    warnings = []
    primary, secondary = req.primary_color or cfg.primary_color, req.secondary_color or cfg.secondary_color
    if not is_valid_hex(primary):
        warnings.append(f"primary color {primary!r} is not #RRGGBB, using {cfg.primary_color}")
        primary = cfg.primary_color
    if not is_valid_hex(secondary):
        warnings.append(f"secondary color {secondary!r} is not #RRGGBB, using {cfg.secondary_color}")
        secondary = cfg.secondary_color

    files = theme_files(req, primary, secondary)

    def write():
        return services.client.execute_with_retry(
            queries.THEME_FILES_UPSERT,
            {"themeId": req.theme_id, "files": files},
        )

    try:
        data = retry_linear(
            write,
            attempts=cfg.write_attempts,
            step=cfg.write_backoff,
            retry_on=(StorefrontError,),
            sleep=services.sleep,
            label="themeFilesUpsert",
        )
    except StorefrontError as exc:
        logger.error("theme settings write failed: %s", exc)
        return StepResult(
            success=False,
            message=f"theme settings not saved: {exc}",
            errors=[ItemError(key=req.theme_id, reason=str(exc))],
            warnings=warnings,
        )

    written = [f["filename"] for f in (data.get("themeFilesUpsert") or {}).get("upsertedThemeFiles") or []]
    return StepResult(
        success=True,
        message=f"{len(written)} theme files written",
        warnings=warnings,
        details={"files": written},
    )


DIAGNOSTIC_FILES = [SETTINGS_FILE, "config/settings_schema.json", INDEX_FILE, "layout/theme.liquid"]


def fetch_theme_files(client, theme_id: str) -> Dict[str, Any]:
    """Current content of the main theme files, for checking what a write produced."""
    data = client.execute(queries.THEME_FILES, {"themeId": theme_id, "filenames": DIAGNOSTIC_FILES})
    theme = data.get("theme") or {}
    files = {
        node["filename"]: (node.get("body") or {}).get("content")
        for node in (theme.get("files") or {}).get("nodes") or []
    }
    return {
        "theme": {"id": theme.get("id"), "name": theme.get("name"), "role": theme.get("role")},
        "files": files,
    }
