from __future__ import annotations

from fastapi import FastAPI

from lease_engine.api.models import HealthResponse
from lease_engine.api.routes import jobs
from lease_engine.core.lifespan import lifespan

__version__ = "0.1.0"

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None)


@app.get("/health", include_in_schema=False, response_model=HealthResponse)
async def health_check() -> HealthResponse:
  """Return a simple health status."""
  return HealthResponse(status="ok", version=__version__)


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
