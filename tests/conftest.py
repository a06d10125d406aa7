"""Shared fixtures for the quote worker test suite."""

from __future__ import annotations

from dataclasses import replace

import pytest

from lease_engine.config import Settings
from lease_engine.jobs.executor import QuoteExecutor, RequestPacer
from lease_engine.jobs.orchestrator import JobOrchestrator
from lease_engine.jobs.session import VendorSessionManager
from lease_engine.storage.memory_jobs_repo import InMemoryJobsRepository
from lease_engine.vendors.dummy import DummyVendorClient
from lease_engine.vendors.interface import VendorCredentials

BASE_SETTINGS = Settings(
  environment="test",
  debug=False,
  log_max_bytes=1024 * 1024,
  log_backup_count=1,
  log_dir="./logs",
  pg_dsn=None,
  pg_connect_timeout=5,
  poll_interval_seconds=0.01,
  max_concurrent_jobs=3,
  vendor_provider="dummy",
  vendor_base_url="https://vendor.test/WebApp/api",
  vendor_username="broker",
  vendor_password="secret",
  vendor_timeout_seconds=5.0,
  vendor_session_ttl_seconds=1800,
  quote_min_interval_seconds=0.0,
  quote_max_retries=1,
  quote_retry_delay_seconds=0.0,
  error_sample_limit=10,
)


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def make_settings():
  def _make(**overrides) -> Settings:
    return replace(BASE_SETTINGS, **overrides)

  return _make


@pytest.fixture
def settings(make_settings) -> Settings:
  return make_settings()


@pytest.fixture
def repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@pytest.fixture
def dummy_client() -> DummyVendorClient:
  return DummyVendorClient()


@pytest.fixture
def build_orchestrator(repo, settings):
  """Wire an orchestrator around any vendor client with pacing and retry delays disabled."""

  def _build(client, *, settings_override: Settings | None = None, credentials: VendorCredentials | None = None, jobs_repo=None) -> JobOrchestrator:
    active_settings = settings_override or settings
    sessions = VendorSessionManager(client=client, credentials=credentials or VendorCredentials(username="broker", password="secret"))
    executor = QuoteExecutor(client=client, pacer=RequestPacer(0), max_retries=active_settings.quote_max_retries, retry_delay_seconds=0)
    return JobOrchestrator(jobs_repo=jobs_repo or repo, executor=executor, sessions=sessions, settings=active_settings)

  return _build
