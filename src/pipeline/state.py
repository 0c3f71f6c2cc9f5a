from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field


class CollectionRecord(BaseModel):
    id: str
    handle: str
    name: str


class CollectionImage(BaseModel):
    handle: str
    url: str


class PipelineState(BaseModel):
    catalog_text: str = ""
    total_products: int = 0
    validated_products: int = 0
    product_ids: List[str] = Field(default_factory=list)
    collections: List[CollectionRecord] = Field(default_factory=list)
    aggregate_collection_id: str = ""
    theme_id: str = ""
    theme_role: str = ""
    logo_url: str = ""
    favicon_url: str = ""
    banner_desktop_url: str = ""
    banner_mobile_url: str = ""
    collection_images: List[CollectionImage] = Field(default_factory=list)


# Seeded by the caller before step 1 runs.
INITIAL_FIELDS: FrozenSet[str] = frozenset({"catalog_text"})


class ItemError(BaseModel):
    key: str
    reason: str

    def __str__(self) -> str:
        return f"{self.key}: {self.reason}"


class StepResult(BaseModel):
    success: bool
    message: str = ""
    errors: List[ItemError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    payload: Dict[str, Any] = Field(default_factory=dict)
    # response-only fields, never merged into PipelineState
    details: Dict[str, Any] = Field(default_factory=dict)

    def response(self) -> Dict[str, Any]:
        """Flat body for the step invocation surface."""
        body = {
            "success": self.success,
            "message": self.message,
            "errors": [e.model_dump() for e in self.errors],
            "warnings": list(self.warnings),
        }
        for k, v in {**self.details, **self.payload}.items():
            if isinstance(v, list):
                body[k] = [x.model_dump() if isinstance(x, BaseModel) else x for x in v]
            else:
                body[k] = v
        return body


class StepRecord(BaseModel):
    step_id: int
    label: str
    success: bool
    message: str = ""
    errors: List[ItemError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class OnboardingForm(BaseModel):
    """Everything the user typed or uploaded; never written by a step."""

    collection_names: List[str] = Field(default_factory=list)
    primary_color: str = ""
    secondary_color: str = ""
    theme_zip_path: Optional[str] = None
    logo_path: Optional[str] = None
    favicon_path: Optional[str] = None
    banner_desktop_path: Optional[str] = None
    banner_mobile_path: Optional[str] = None
    # collection name -> image path
    collection_image_paths: Dict[str, str] = Field(default_factory=dict)


@dataclass(frozen=True)
class StepDefinition:
    id: int
    label: str
    build_request: Callable[[PipelineState, OnboardingForm], BaseModel]
    handler: Callable[..., Any]
    streaming: bool = False
    reads: FrozenSet[str] = frozenset()
    writes: FrozenSet[str] = frozenset()
    # reads that must be non-empty before the step can run on its own
    requires: FrozenSet[str] = frozenset()

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "streaming": self.streaming,
            "reads": sorted(self.reads),
            "writes": sorted(self.writes),
        }


class PipelineRun(BaseModel):
    state: PipelineState = Field(default_factory=PipelineState)
    records: Dict[int, StepRecord] = Field(default_factory=dict)
    halted: bool = False

    @property
    def failed_steps(self) -> List[int]:
        return sorted(i for i, r in self.records.items() if not r.success)

    @property
    def completed_steps(self) -> List[int]:
        return sorted(i for i, r in self.records.items() if r.success)

    @property
    def success(self) -> bool:
        return bool(self.records) and not self.failed_steps and not self.halted
