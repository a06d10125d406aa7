"""Execution of single quote requests with retry and vendor pacing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from lease_engine.config import Settings
from lease_engine.jobs.models import QuoteRequest, QuoteResult, Vehicle
from lease_engine.vendors.errors import QuoteError
from lease_engine.vendors.interface import ResolvedVehicle, VendorSession, VendorSessionClient

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class QuoteOutcome:
  """Settled result of one request: exactly one of result or error is set."""

  request: QuoteRequest
  result: QuoteResult | None = None
  error: QuoteError | None = None
  attempts: int = 0

  @property
  def ok(self) -> bool:
    return self.result is not None


class RequestPacer:
  """Enforces a fixed minimum gap between vendor calls, shared by every running job."""

  def __init__(self, min_interval_seconds: float, *, clock: Callable[[], float] = time.monotonic, sleep: Sleep = asyncio.sleep) -> None:
    self._min_interval = min_interval_seconds
    self._clock = clock
    self._sleep = sleep
    self._last_call_at: float | None = None
    self._lock = asyncio.Lock()

  async def wait(self) -> None:
    if self._last_call_at is None or self._min_interval <= 0:
      return
    remaining = self._min_interval - (self._clock() - self._last_call_at)
    if remaining > 0:
      await self._sleep(remaining)

  @asynccontextmanager
  async def slot(self) -> AsyncIterator[None]:
    """Wait for the gap and stamp the call's start under the lock, then stamp its end whether it failed or not."""
    async with self._lock:
      await self.wait()
      self._last_call_at = self._clock()
    try:
      yield
    finally:
      # A later caller may already have stamped its own start.
      self._last_call_at = max(self._last_call_at, self._clock())


class QuoteExecutor:
  """Runs quote requests against the vendor client; one instance and its pacer serve every running job."""

  def __init__(self, *, client: VendorSessionClient, pacer: RequestPacer, max_retries: int = 1, retry_delay_seconds: float = 2.0, sleep: Sleep = asyncio.sleep) -> None:
    self._client = client
    self._pacer = pacer
    self._max_retries = max_retries
    self._retry_delay_seconds = retry_delay_seconds
    self._sleep = sleep

  @classmethod
  def from_settings(cls, client: VendorSessionClient, settings: Settings, *, sleep: Sleep = asyncio.sleep) -> QuoteExecutor:
    pacer = RequestPacer(settings.quote_min_interval_seconds, sleep=sleep)
    return cls(client=client, pacer=pacer, max_retries=settings.quote_max_retries, retry_delay_seconds=settings.quote_retry_delay_seconds, sleep=sleep)

  async def resolve_vehicle(self, session: VendorSession, vehicle: Vehicle) -> ResolvedVehicle:
    """Resolve via the vendor catalog unless the vehicle already carries vendor codes."""
    if vehicle.has_vendor_codes:
      return ResolvedVehicle.from_codes(vehicle)
    async with self._pacer.slot():
      return await self._client.resolve_vehicle(session, vehicle)

  async def execute(self, request: QuoteRequest, session: VendorSession, vehicle: ResolvedVehicle) -> QuoteOutcome:
    """Price one request; AuthenticationError propagates, QuoteError settles as a failure."""
    outcome = QuoteOutcome(request=request)
    while True:
      outcome.attempts += 1
      try:
        async with self._pacer.slot():
          outcome.result = await self._client.calculate_quote(session, vehicle, request)
        outcome.error = None
        return outcome
      except QuoteError as exc:
        outcome.error = exc
        retries_used = outcome.attempts - 1
        if not exc.transient or retries_used >= self._max_retries:
          logger.warning(
            "Quote failed: vehicle=%s term=%d mileage=%d attempts=%d error=%s: %s", request.vehicle.label, request.term, request.mileage, outcome.attempts, type(exc).__name__, exc
          )
          return outcome
        logger.info("Transient quote failure for %s %dm/%dmi; retrying in %.1fs: %s", request.vehicle.label, request.term, request.mileage, self._retry_delay_seconds, exc)
        if self._retry_delay_seconds > 0:
          await self._sleep(self._retry_delay_seconds)
