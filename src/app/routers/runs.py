from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.deps import get_services
from pipeline.graph import Orchestrator
from pipeline.services import Services
from pipeline.state import OnboardingForm, PipelineRun, PipelineState

router = APIRouter()


class RunRequest(BaseModel):
    catalog_text: str
    form: OnboardingForm = Field(default_factory=OnboardingForm)


class ResumeRequest(BaseModel):
    run: PipelineRun
    form: OnboardingForm = Field(default_factory=OnboardingForm)


def _body(run: PipelineRun) -> Dict[str, Any]:
    return {
        "success": run.success,
        "halted": run.halted,
        "completed_steps": run.completed_steps,
        "failed_steps": run.failed_steps,
        "run": run.model_dump(),
    }


@router.post("/run")
def run_pipeline(req: RunRequest, services: Services = Depends(get_services)):
    orchestrator = Orchestrator(services, req.form)
    return _body(orchestrator.run(PipelineState(catalog_text=req.catalog_text)))


@router.post("/resume")
def resume_pipeline(req: ResumeRequest, services: Services = Depends(get_services)):
    orchestrator = Orchestrator(services, req.form)
    return _body(orchestrator.resume(req.run))
