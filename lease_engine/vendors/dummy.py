"""Deterministic offline vendor used for local runs and tests."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import UTC, datetime

from lease_engine.jobs.models import QuoteRequest, QuoteResult, Vehicle
from lease_engine.vendors.errors import AuthenticationError, VehicleResolutionError
from lease_engine.vendors.interface import ResolvedVehicle, VendorCredentials, VendorSession


def _stable_code(text: str) -> str:
  return hashlib.sha1(text.lower().encode("utf-8")).hexdigest()[:8].upper()


class DummyVendorClient:
  """Prices quotes from a fixed formula without any network access."""

  name = "dummy"

  def __init__(self, *, session_ttl_seconds: int = 1800, unknown_vehicles: Iterable[str] = ()) -> None:
    self._session_ttl_seconds = session_ttl_seconds
    self._unknown = {label.lower() for label in unknown_vehicles}
    self.sessions_established = 0

  async def establish_session(self, credentials: VendorCredentials) -> VendorSession:
    if not credentials.complete:
      raise AuthenticationError("Missing vendor username/password.")
    self.sessions_established += 1
    return VendorSession.with_ttl(self._session_ttl_seconds, token=f"dummy-{self.sessions_established}", user_name=str(credentials.username))

  async def is_session_valid(self, session: VendorSession) -> bool:
    return not session.is_expired()

  async def resolve_vehicle(self, session: VendorSession, vehicle: Vehicle) -> ResolvedVehicle:
    if not vehicle.manufacturer or vehicle.label.lower() in self._unknown:
      raise VehicleResolutionError(f"Vehicle not found: {vehicle.label}")
    return ResolvedVehicle(
      make_code=_stable_code(vehicle.manufacturer),
      model_code=_stable_code(f"{vehicle.manufacturer}/{vehicle.model}"),
      variant_code=_stable_code(vehicle.label),
      name=vehicle.variant or vehicle.label,
    )

  async def calculate_quote(self, session: VendorSession, vehicle: ResolvedVehicle, request: QuoteRequest) -> QuoteResult:
    # Longer terms lower the rental; higher mileage and maintenance raise it.
    base = 250.0 + int(vehicle.variant_code[:2], 16)
    monthly = base * (36 / request.term) ** 0.5 + request.mileage / 500 + (45.0 if request.maintenance else 0.0)
    monthly = max(monthly - request.deposit / request.term, 1.0)
    monthly = round(monthly, 2)
    gross = round(monthly * 1.2, 2)
    return QuoteResult(
      vehicle=request.vehicle,
      term=request.term,
      mileage=request.mileage,
      monthly_rental=monthly,
      monthly_rental_gross=gross,
      initial_payment=request.deposit,
      total_cost=round(monthly * request.term + request.deposit, 2),
      maintenance_included=request.maintenance,
      supplier_name="Dummy",
      quote_reference=vehicle.variant_code,
      additional_info={"gross_monthly": gross},
      fetched_at=datetime.now(UTC),
    )

  async def aclose(self) -> None:
    return None
