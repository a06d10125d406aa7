import asyncio
import time
from datetime import UTC, datetime, timedelta

import pytest

from lease_engine.jobs.models import JobRecord, QuoteResult
from lease_engine.storage.memory_jobs_repo import InMemoryJobsRepository
from lease_engine.vendors.dummy import DummyVendorClient
from lease_engine.vendors.errors import AuthenticationError, PermanentQuoteError
from lease_engine.vendors.interface import VendorCredentials
from lease_engine.worker import build_orchestrator as build_worker_orchestrator

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)

BMW = {"id": "v1", "manufacturer": "BMW", "model": "3 Series", "variant": "320i M Sport"}
MYSTERY = {"id": "v2", "manufacturer": "Mystery", "model": "Ghost", "variant": "Base"}


async def _create(repo, job_id: str, vehicles: list[dict], config: dict | str, *, offset: int = 0) -> None:
  await repo.create_job(JobRecord(job_id=job_id, status="pending", vehicles=vehicles, config=config, created_at=T0 + timedelta(seconds=offset)))


async def _run_to_completion(orchestrator) -> None:
  await orchestrator.poll_once()
  await orchestrator.drain()


class GatedClient(DummyVendorClient):
  """Dummy vendor whose quotes block until the test opens the gate."""

  def __init__(self) -> None:
    super().__init__()
    self.gate = asyncio.Event()

  async def calculate_quote(self, session, vehicle, request) -> QuoteResult:
    await self.gate.wait()
    return await super().calculate_quote(session, vehicle, request)


class FlakyQuoteClient(DummyVendorClient):
  """Rejects every quote for one term."""

  def __init__(self, *, bad_term: int) -> None:
    super().__init__()
    self.bad_term = bad_term

  async def calculate_quote(self, session, vehicle, request) -> QuoteResult:
    if request.term == self.bad_term:
      raise PermanentQuoteError(f"No rate for {request.term} months")
    return await super().calculate_quote(session, vehicle, request)


class SessionRevokedClient(DummyVendorClient):
  """Starts rejecting the session after a number of successful quotes."""

  def __init__(self, *, allowed: int) -> None:
    super().__init__()
    self.allowed = allowed

  async def calculate_quote(self, session, vehicle, request) -> QuoteResult:
    if self.allowed <= 0:
      raise AuthenticationError("Session rejected while quoting (status 401).")
    self.allowed -= 1
    return await super().calculate_quote(session, vehicle, request)


@pytest.mark.anyio
async def test_single_vehicle_all_terms_completes_with_four_results(repo, build_orchestrator, dummy_client):
  await _create(repo, "job-1", [BMW], {"terms": "ALL", "mileages": 10000})
  orchestrator = build_orchestrator(dummy_client)

  await _run_to_completion(orchestrator)

  job = await repo.get_job("job-1")
  assert job.status == "completed"
  assert (job.success_count, job.failure_count) == (4, 0)
  assert job.error_details is None
  assert job.started_at is not None and job.completed_at is not None
  assert job.duration_seconds is not None
  assert [(r.term, r.mileage) for r in repo.results_for("job-1")] == [(24, 10000), (36, 10000), (48, 10000), (60, 10000)]


@pytest.mark.anyio
async def test_unresolvable_vehicle_counts_its_whole_slice_as_failed(repo, build_orchestrator):
  await _create(repo, "job-2", [BMW, MYSTERY], {"terms": 36, "mileages": "ALL"})
  client = DummyVendorClient(unknown_vehicles=["Mystery Ghost Base"])
  orchestrator = build_orchestrator(client)

  await _run_to_completion(orchestrator)

  job = await repo.get_job("job-2")
  assert job.status == "completed"
  assert (job.success_count, job.failure_count) == (8, 8)
  assert len(repo.results_for("job-2")) == 8
  assert {r.vehicle.vehicle_id for r in repo.results_for("job-2")} == {"v1"}
  sample = job.error_details["failures"][0]
  assert sample["type"] == "VehicleResolutionError"
  assert sample["vehicle_id"] == "v2"
  assert sample["requests"] == 8


@pytest.mark.anyio
async def test_quote_failures_do_not_abort_the_job(repo, build_orchestrator):
  await _create(repo, "job-3", [BMW], {"terms": "ALL", "mileages": 10000})
  orchestrator = build_orchestrator(FlakyQuoteClient(bad_term=48))

  await _run_to_completion(orchestrator)

  job = await repo.get_job("job-3")
  assert job.status == "completed"
  assert (job.success_count, job.failure_count) == (3, 1)
  assert job.error_details["failures"][0]["term"] == 48
  assert job.error_details["truncated"] is False


@pytest.mark.anyio
async def test_authentication_failure_fails_job_without_results(repo, build_orchestrator, dummy_client):
  await _create(repo, "job-4", [BMW], {"terms": "ALL", "mileages": 10000})
  orchestrator = build_orchestrator(dummy_client, credentials=VendorCredentials(username="broker", password=None))

  await _run_to_completion(orchestrator)

  job = await repo.get_job("job-4")
  assert job.status == "failed"
  assert (job.success_count, job.failure_count) == (0, 4)
  assert job.error_details["type"] == "AuthenticationError"
  assert repo.results_for("job-4") == []


@pytest.mark.anyio
async def test_session_rejected_mid_job_discards_partial_results(repo, build_orchestrator):
  await _create(repo, "job-5", [BMW], {"terms": "ALL", "mileages": 10000})
  client = SessionRevokedClient(allowed=2)
  orchestrator = build_orchestrator(client)

  await _run_to_completion(orchestrator)

  job = await repo.get_job("job-5")
  assert job.status == "failed"
  assert (job.success_count, job.failure_count) == (0, 4)
  assert repo.results_for("job-5") == []

  # The next job logs in again instead of reusing the rejected session.
  client.allowed = 10
  await _create(repo, "job-6", [BMW], {"terms": 36, "mileages": 10000}, offset=1)
  await _run_to_completion(orchestrator)
  assert (await repo.get_job("job-6")).status == "completed"
  assert client.sessions_established == 2


@pytest.mark.anyio
async def test_invalid_config_fails_job(repo, build_orchestrator, dummy_client):
  await _create(repo, "job-7", [BMW], {"terms": "forever"})
  orchestrator = build_orchestrator(dummy_client)

  await _run_to_completion(orchestrator)

  job = await repo.get_job("job-7")
  assert job.status == "failed"
  assert job.error_details["type"] == "ValueError"
  assert dummy_client.sessions_established == 0


@pytest.mark.anyio
async def test_empty_vehicle_list_completes_with_zero_counts(repo, build_orchestrator, dummy_client):
  await _create(repo, "job-8", [], {"terms": "ALL", "mileages": "ALL"})
  orchestrator = build_orchestrator(dummy_client)

  await _run_to_completion(orchestrator)

  job = await repo.get_job("job-8")
  assert job.status == "completed"
  assert (job.success_count, job.failure_count) == (0, 0)


@pytest.mark.anyio
async def test_concurrency_limit_is_respected(repo, build_orchestrator, make_settings):
  for index in range(5):
    await _create(repo, f"job-{index}", [BMW], {"terms": 36, "mileages": 10000}, offset=index)
  client = GatedClient()
  orchestrator = build_orchestrator(client, settings_override=make_settings(max_concurrent_jobs=2))

  first = await orchestrator.poll_once()
  await asyncio.sleep(0)
  second = await orchestrator.poll_once()

  assert first == ["job-0", "job-1"]
  assert second == []
  assert await repo.count_processing() == 2
  assert sorted(orchestrator.running_jobs) == ["job-0", "job-1"]

  client.gate.set()
  await orchestrator.drain()

  assert orchestrator.running_jobs == []
  assert await orchestrator.poll_once() == ["job-2", "job-3"]
  await orchestrator.drain()
  assert await orchestrator.poll_once() == ["job-4"]
  await orchestrator.drain()
  assert await repo.count_processing() == 0


@pytest.mark.anyio
async def test_lost_claim_is_skipped(repo, build_orchestrator, dummy_client):
  await _create(repo, "job-a", [BMW], {"terms": 36, "mileages": 10000})
  await _create(repo, "job-b", [BMW], {"terms": 36, "mileages": 10000}, offset=1)

  class RacingRepo(InMemoryJobsRepository):
    async def transition_to_processing(self, job_id):
      if job_id == "job-a":
        return None
      return await super().transition_to_processing(job_id)

  racing = RacingRepo()
  racing._jobs = repo._jobs
  racing._results = repo._results
  orchestrator = build_orchestrator(dummy_client, jobs_repo=racing)

  claimed = await orchestrator.poll_once()
  await orchestrator.drain()

  assert claimed == ["job-b"]
  assert (await repo.get_job("job-a")).status == "pending"
  assert (await repo.get_job("job-b")).status == "completed"


@pytest.mark.anyio
async def test_claim_is_exclusive_across_orchestrators(repo, build_orchestrator, dummy_client):
  await _create(repo, "job-x", [BMW], {"terms": 36, "mileages": 10000})
  first = build_orchestrator(dummy_client)
  second = build_orchestrator(DummyVendorClient())

  claims = await asyncio.gather(first.poll_once(), second.poll_once())
  await asyncio.gather(first.drain(), second.drain())

  assert sorted(sum(claims, [])) == ["job-x"]
  assert (await repo.get_job("job-x")).success_count == 1


@pytest.mark.anyio
async def test_jobs_are_claimed_oldest_first(repo, build_orchestrator, dummy_client, make_settings):
  await _create(repo, "newer", [BMW], {"terms": 36, "mileages": 10000}, offset=10)
  await _create(repo, "older", [BMW], {"terms": 36, "mileages": 10000}, offset=0)
  orchestrator = build_orchestrator(dummy_client, settings_override=make_settings(max_concurrent_jobs=1))

  assert await orchestrator.poll_once() == ["older"]
  await orchestrator.drain()


@pytest.mark.anyio
async def test_bulk_insert_failure_marks_job_failed(build_orchestrator, dummy_client):
  class BrokenResultsRepo(InMemoryJobsRepository):
    async def bulk_insert_results(self, job_id, results):
      raise ValueError("results table missing")

  broken = BrokenResultsRepo()
  await _create(broken, "job-p", [BMW], {"terms": "ALL", "mileages": 10000})
  orchestrator = build_orchestrator(dummy_client, jobs_repo=broken)

  await _run_to_completion(orchestrator)

  job = await broken.get_job("job-p")
  assert job.status == "failed"
  assert (job.success_count, job.failure_count) == (0, 4)
  assert job.error_details["type"] == "ValueError"


@pytest.mark.anyio
async def test_run_forever_survives_poll_errors_and_stops(build_orchestrator, dummy_client):
  class OutageRepo(InMemoryJobsRepository):
    def __init__(self) -> None:
      super().__init__()
      self.failures_left = 2

    async def get_pending_jobs(self, limit=None):
      if self.failures_left:
        self.failures_left -= 1
        raise ConnectionError("database unavailable")
      return await super().get_pending_jobs(limit)

  outage = OutageRepo()
  await _create(outage, "job-r", [BMW], {"terms": 36, "mileages": 10000})
  orchestrator = build_orchestrator(dummy_client, jobs_repo=outage)

  runner = asyncio.create_task(orchestrator.run_forever())
  for _ in range(500):
    if (await outage.get_job("job-r")).status == "completed":
      break
    await asyncio.sleep(0.01)
  orchestrator.stop()
  await asyncio.wait_for(runner, timeout=5)

  assert outage.failures_left == 0
  assert (await outage.get_job("job-r")).status == "completed"
  assert orchestrator.stopping


@pytest.mark.anyio
async def test_stopped_orchestrator_claims_nothing(repo, build_orchestrator, dummy_client):
  await _create(repo, "job-s", [BMW], {"terms": 36, "mileages": 10000})
  orchestrator = build_orchestrator(dummy_client)

  orchestrator.stop()

  assert await orchestrator.poll_once() == []
  assert (await repo.get_job("job-s")).status == "pending"


@pytest.mark.anyio
async def test_config_that_is_not_an_object_fails_job_with_zero_counts(repo, build_orchestrator, dummy_client):
  await _create(repo, "job-t", [BMW], "ALL")
  orchestrator = build_orchestrator(dummy_client)

  await _run_to_completion(orchestrator)

  job = await repo.get_job("job-t")
  assert job.status == "failed"
  assert (job.success_count, job.failure_count) == (0, 0)
  assert job.error_details["type"] == "ValueError"
  assert orchestrator.running_jobs == []
  assert dummy_client.sessions_established == 0


@pytest.mark.anyio
async def test_pacing_gap_holds_across_concurrent_jobs(repo, make_settings):
  class TimedClient(DummyVendorClient):
    """Records when each quote call starts and holds it open briefly."""

    def __init__(self) -> None:
      super().__init__()
      self.call_starts: list[float] = []

    async def calculate_quote(self, session, vehicle, request) -> QuoteResult:
      self.call_starts.append(time.monotonic())
      await asyncio.sleep(0.01)
      return await super().calculate_quote(session, vehicle, request)

  await _create(repo, "paced-1", [BMW], {"terms": "ALL", "mileages": 10000})
  await _create(repo, "paced-2", [BMW], {"terms": "ALL", "mileages": 10000}, offset=1)
  client = TimedClient()
  orchestrator = build_worker_orchestrator(make_settings(max_concurrent_jobs=2, quote_min_interval_seconds=0.05), client=client, jobs_repo=repo)

  assert await orchestrator.poll_once() == ["paced-1", "paced-2"]
  await orchestrator.drain()

  assert len(client.call_starts) == 8
  gaps = [later - earlier for earlier, later in zip(client.call_starts, client.call_starts[1:])]
  assert min(gaps) >= 0.045
  assert (await repo.get_job("paced-1")).success_count == 4
  assert (await repo.get_job("paced-2")).success_count == 4


@pytest.mark.anyio
async def test_retried_result_write_does_not_duplicate_rows(build_orchestrator, dummy_client):
  class LostAckRepo(InMemoryJobsRepository):
    """Commits the batch, then loses the acknowledgement once."""

    def __init__(self) -> None:
      super().__init__()
      self.insert_calls = 0

    async def bulk_insert_results(self, job_id, results):
      written = await super().bulk_insert_results(job_id, results)
      self.insert_calls += 1
      if self.insert_calls == 1:
        raise ConnectionError("connection reset after commit")
      return written

  lost_ack = LostAckRepo()
  await _create(lost_ack, "job-u", [BMW], {"terms": "ALL", "mileages": 10000})
  orchestrator = build_orchestrator(dummy_client, jobs_repo=lost_ack)

  await _run_to_completion(orchestrator)

  job = await lost_ack.get_job("job-u")
  assert lost_ack.insert_calls == 2
  assert job.status == "completed"
  assert job.success_count == 4
  assert len(lost_ack.results_for("job-u")) == 4


@pytest.mark.anyio
async def test_failed_completion_records_persisted_row_count(build_orchestrator, dummy_client):
  class CompletionRejectedRepo(InMemoryJobsRepository):
    async def finalize(self, job_id, finalization):
      if finalization.status == "completed":
        raise ValueError("completion rejected")
      return await super().finalize(job_id, finalization)

  rejecting = CompletionRejectedRepo()
  await _create(rejecting, "job-v", [BMW], {"terms": "ALL", "mileages": 10000})
  orchestrator = build_orchestrator(dummy_client, jobs_repo=rejecting)

  await _run_to_completion(orchestrator)

  job = await rejecting.get_job("job-v")
  assert job.status == "failed"
  assert (job.success_count, job.failure_count) == (0, 4)
  assert job.error_details["type"] == "ValueError"
  assert job.error_details["persisted_results"] == 4
  assert len(rejecting.results_for("job-v")) == 4
