"""Contract every quote provider integration implements."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from lease_engine.jobs.models import QuoteRequest, QuoteResult, Vehicle


@dataclass(frozen=True)
class VendorCredentials:
  username: str | None
  password: str | None

  @property
  def complete(self) -> bool:
    return bool(self.username and self.password)


@dataclass
class VendorSession:
  """Opaque authentication state held for the process lifetime."""

  cookies: dict[str, str] = field(default_factory=dict)
  token: str | None = None
  user_name: str | None = None
  established_at: datetime = field(default_factory=lambda: datetime.now(UTC))
  expires_at: datetime | None = None

  def is_expired(self, now: datetime | None = None) -> bool:
    if self.expires_at is None:
      return False
    return (now or datetime.now(UTC)) >= self.expires_at

  @classmethod
  def with_ttl(cls, ttl_seconds: int, **kwargs: Any) -> VendorSession:
    established_at = datetime.now(UTC)
    return cls(established_at=established_at, expires_at=established_at + timedelta(seconds=ttl_seconds), **kwargs)


@dataclass(frozen=True)
class ResolvedVehicle:
  """Vendor-internal identifiers for a vehicle."""

  make_code: str
  model_code: str
  variant_code: str
  name: str
  attributes: dict[str, Any] = field(default_factory=dict)

  @classmethod
  def from_codes(cls, vehicle: Vehicle) -> ResolvedVehicle:
    """Build a handle from codes already carried by the vehicle."""
    if not vehicle.has_vendor_codes:
      raise ValueError(f"Vehicle {vehicle.label!r} does not carry vendor codes.")
    return cls(make_code=str(vehicle.make_code), model_code=str(vehicle.model_code), variant_code=str(vehicle.variant_code), name=vehicle.variant or vehicle.label)


class VendorSessionClient(Protocol):
  """Authenticate with and query one external quote provider."""

  name: str

  async def establish_session(self, credentials: VendorCredentials) -> VendorSession:
    """Log in; raise AuthenticationError on rejection."""

  async def is_session_valid(self, session: VendorSession) -> bool:
    """Cheap local or lightweight remote validity check."""

  async def resolve_vehicle(self, session: VendorSession, vehicle: Vehicle) -> ResolvedVehicle:
    """Map free-text vehicle fields to vendor ids; raise VehicleResolutionError when unmatched."""

  async def calculate_quote(self, session: VendorSession, vehicle: ResolvedVehicle, request: QuoteRequest) -> QuoteResult:
    """Price one request; raise QuoteError subclasses on failure."""

  async def aclose(self) -> None:
    """Release transport resources."""
