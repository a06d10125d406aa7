import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lease_engine.core.database import dispose_engine
from lease_engine.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Ensure logging is set up after uvicorn starts and release pooled connections on shutdown."""
  from lease_engine.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("lease_engine.core.lifespan")

  try:
    initialize_logging(settings, label="api")
    logger.info("Status API startup complete - logging verified.")
  except Exception:
    # Uvicorn's own handlers still capture output when file logging cannot be configured.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  yield

  await dispose_engine()
