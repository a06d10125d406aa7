"""Bounded failure sampling for the structured error blob stored on a job."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from lease_engine.jobs.models import QuoteRequest, Vehicle

MAX_ERROR_MESSAGE_CHARS = 500


def truncate_message(message: str, limit: int = MAX_ERROR_MESSAGE_CHARS) -> str:
  if len(message) <= limit:
    return message
  return message[: limit - 3] + "..."


def describe_error(exc: BaseException) -> dict[str, str]:
  return {"type": type(exc).__name__, "message": truncate_message(str(exc) or type(exc).__name__)}


@dataclass
class FailureLog:
  """Counts every failure but keeps only the first few samples."""

  sample_limit: int = 10
  total: int = 0
  samples: list[dict[str, Any]] = field(default_factory=list)

  def record(self, vehicle: Vehicle, exc: BaseException, *, term: int | None = None, mileage: int | None = None, count: int = 1) -> None:
    self.total += count
    if len(self.samples) >= self.sample_limit:
      return
    sample: dict[str, Any] = {"vehicle": vehicle.label, "vehicle_id": vehicle.vehicle_id, **describe_error(exc)}
    if term is not None:
      sample["term"] = term
    if mileage is not None:
      sample["mileage"] = mileage
    if count > 1:
      sample["requests"] = count
    self.samples.append(sample)

  def record_request(self, request: QuoteRequest, exc: BaseException) -> None:
    self.record(request.vehicle, exc, term=request.term, mileage=request.mileage)

  def to_error_details(self, *, abort: BaseException | None = None) -> dict[str, Any] | None:
    """Build the blob stored on the job; None when there is nothing to report."""
    if abort is None and not self.samples:
      return None
    details: dict[str, Any] = {}
    if abort is not None:
      details.update(describe_error(abort))
    details["failures"] = list(self.samples)
    details["truncated"] = self.total > len(self.samples)
    return details
