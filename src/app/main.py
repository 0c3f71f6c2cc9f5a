import logging
import os

from fastapi import FastAPI
from .routers import health, onboarding, runs

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Storefront Onboarding Orchestrator")

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(onboarding.router, tags=["onboarding"])
app.include_router(runs.router, prefix="/pipeline", tags=["pipeline"])
