"""Domain models for batch lease quote jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "completed", "failed"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

ALL_SELECTION = "ALL"
DEFAULT_TERMS: tuple[int, ...] = (24, 36, 48, 60)
DEFAULT_MILEAGES: tuple[int, ...] = (5000, 8000, 10000, 12000, 15000, 20000, 25000, 30000)
FALLBACK_TERM = 36
FALLBACK_MILEAGE = 10000


@dataclass(frozen=True)
class Vehicle:
  """A vehicle to be quoted, as submitted with the job."""

  manufacturer: str
  model: str
  variant: str
  vehicle_id: str | None = None
  make_code: str | None = None
  model_code: str | None = None
  variant_code: str | None = None

  @property
  def has_vendor_codes(self) -> bool:
    return bool(self.make_code and self.model_code and self.variant_code)

  @property
  def label(self) -> str:
    return " ".join(part for part in (self.manufacturer, self.model, self.variant) if part)

  @classmethod
  def from_payload(cls, payload: dict[str, Any]) -> Vehicle:
    """Build a vehicle from a stored job row entry."""
    if not isinstance(payload, dict):
      raise ValueError(f"Vehicle entry must be an object, got {type(payload).__name__}.")
    vehicle_id = payload.get("id", payload.get("vehicle_id"))
    return cls(
      manufacturer=str(payload.get("manufacturer") or "").strip(),
      model=str(payload.get("model") or "").strip(),
      variant=str(payload.get("variant") or "").strip(),
      vehicle_id=str(vehicle_id) if vehicle_id is not None else None,
      make_code=_optional_code(payload.get("make_code")),
      model_code=_optional_code(payload.get("model_code")),
      variant_code=_optional_code(payload.get("variant_code")),
    )


def _optional_code(raw: Any) -> str | None:
  if raw is None:
    return None
  value = str(raw).strip()
  return value or None


def _parse_selection(raw: Any, *, name: str, fallback: int) -> int | None:
  """Return None for "ALL", otherwise one positive integer."""
  if raw is None or (isinstance(raw, str) and raw.strip() == ""):
    return fallback
  if isinstance(raw, str) and raw.strip().upper() == ALL_SELECTION:
    return None
  if isinstance(raw, bool):
    raise ValueError(f"Invalid {name} selection: {raw!r}")
  try:
    value = int(raw)
  except (TypeError, ValueError):
    raise ValueError(f"Invalid {name} selection: {raw!r}") from None
  if value <= 0:
    raise ValueError(f"Invalid {name} selection: {raw!r}")
  return value


@dataclass(frozen=True)
class QuoteConfig:
  """Contract parameters applied to every vehicle in a job."""

  term: int | None = FALLBACK_TERM
  mileage: int | None = FALLBACK_MILEAGE
  maintenance: bool = False
  deposit: float = 0.0

  @property
  def terms(self) -> tuple[int, ...]:
    return DEFAULT_TERMS if self.term is None else (self.term,)

  @property
  def mileages(self) -> tuple[int, ...]:
    return DEFAULT_MILEAGES if self.mileage is None else (self.mileage,)

  @classmethod
  def from_payload(cls, payload: dict[str, Any] | None) -> QuoteConfig:
    payload = payload or {}
    if not isinstance(payload, dict):
      raise ValueError(f"Config must be an object, got {type(payload).__name__}.")
    deposit_raw = payload.get("deposit") or 0
    try:
      deposit = float(deposit_raw)
    except (TypeError, ValueError):
      raise ValueError(f"Invalid deposit: {deposit_raw!r}") from None
    if deposit < 0:
      raise ValueError(f"Invalid deposit: {deposit_raw!r}")
    return cls(
      term=_parse_selection(payload.get("terms"), name="terms", fallback=FALLBACK_TERM),
      mileage=_parse_selection(payload.get("mileages"), name="mileages", fallback=FALLBACK_MILEAGE),
      maintenance=bool(payload.get("maintenance", False)),
      deposit=deposit,
    )


@dataclass(frozen=True)
class QuoteRequest:
  """One (vehicle, term, mileage) unit of work."""

  vehicle: Vehicle
  term: int
  mileage: int
  maintenance: bool
  deposit: float


@dataclass
class QuoteResult:
  """Priced outcome of one quote request."""

  vehicle: Vehicle
  term: int
  mileage: int
  monthly_rental: float | None
  monthly_rental_gross: float | None = None
  initial_payment: float | None = None
  total_cost: float | None = None
  maintenance_included: bool = False
  supplier_name: str | None = None
  quote_reference: str | None = None
  additional_info: dict[str, Any] = field(default_factory=dict)
  fetched_at: datetime | None = None


@dataclass
class JobRecord:
  """Represents a persisted quote job row."""

  job_id: str
  status: JobStatus
  vehicles: list[dict[str, Any]]
  config: dict[str, Any]
  created_at: datetime | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None
  vehicle_count: int | None = None
  success_count: int = 0
  failure_count: int = 0
  duration_seconds: int | None = None
  error_details: dict[str, Any] | None = None


@dataclass(frozen=True)
class JobFinalization:
  """Terminal state written back to a job row."""

  status: JobStatus
  success_count: int
  failure_count: int
  duration_seconds: int
  error_details: dict[str, Any] | None = None
