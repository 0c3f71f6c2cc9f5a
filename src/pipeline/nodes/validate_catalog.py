from pydantic import BaseModel

from pipeline.catalog import validate_catalog
from pipeline.state import OnboardingForm, PipelineState, StepResult


class CatalogRequest(BaseModel):
    catalog_text: str


def build_request(state: PipelineState, form: OnboardingForm) -> CatalogRequest:
    return CatalogRequest(catalog_text=state.catalog_text)


def validate_catalog_node(req: CatalogRequest, services=None) -> StepResult:
    # Pure check; no remote calls, so services are unused.
    report = validate_catalog(req.catalog_text)

    if report.missing_columns:
        message = "catalog is missing required columns"
    elif report.validated_products == 0:
        message = "no product in the catalog is importable"
    elif report.errors:
        message = f"{report.validated_products} of {report.total_products} products valid, {len(report.errors)} row problems"
    else:
        message = f"{report.total_products} products ready to import"

    return StepResult(
        success=report.usable,
        message=message,
        errors=report.errors,
        payload={
            "total_products": report.total_products,
            "validated_products": report.validated_products,
        },
        details={"preview": report.preview},
    )
