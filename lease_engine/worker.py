"""Long-running quote worker: `python -m lease_engine.worker`."""

from __future__ import annotations

import asyncio
import logging
import signal

from lease_engine.config import Settings, get_settings
from lease_engine.core.database import dispose_engine
from lease_engine.core.logging import initialize_logging
from lease_engine.jobs.executor import QuoteExecutor
from lease_engine.jobs.orchestrator import JobOrchestrator
from lease_engine.jobs.session import VendorSessionManager
from lease_engine.storage.factory import get_jobs_repo
from lease_engine.storage.jobs_repo import JobsRepository
from lease_engine.vendors.factory import get_vendor_client, get_vendor_credentials
from lease_engine.vendors.interface import VendorSessionClient

logger = logging.getLogger("lease_engine.worker")


def build_orchestrator(settings: Settings, *, client: VendorSessionClient, jobs_repo: JobsRepository | None = None) -> JobOrchestrator:
  """Wire the store, vendor client, session manager and executor into one orchestrator."""
  sessions = VendorSessionManager(client=client, credentials=get_vendor_credentials(settings))
  executor = QuoteExecutor.from_settings(client, settings)
  return JobOrchestrator(jobs_repo=jobs_repo or get_jobs_repo(settings), executor=executor, sessions=sessions, settings=settings)


async def run_worker(settings: Settings) -> None:
  """Poll for jobs until SIGINT/SIGTERM, then let running jobs finish."""
  client = get_vendor_client(settings)
  orchestrator = build_orchestrator(settings, client=client)

  loop = asyncio.get_running_loop()
  for sig in (signal.SIGINT, signal.SIGTERM):
    try:
      loop.add_signal_handler(sig, orchestrator.stop)
    except NotImplementedError:
      logger.debug("Signal handler for %s not supported on this platform.", sig.name)

  logger.info("Quote worker starting: env=%s vendor=%s", settings.environment, client.name)
  try:
    await orchestrator.run_forever()
  finally:
    await client.aclose()
    await dispose_engine()
    logger.info("Quote worker exited.")


def main() -> None:
  settings = get_settings()
  initialize_logging(settings, label="worker")
  asyncio.run(run_worker(settings))


if __name__ == "__main__":
  main()
