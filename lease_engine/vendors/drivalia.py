"""Drivalia quoting API client over httpx."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from lease_engine.jobs.models import QuoteRequest, QuoteResult, Vehicle
from lease_engine.vendors.errors import AuthenticationError, PermanentQuoteError, TransientQuoteError, VehicleResolutionError
from lease_engine.vendors.interface import ResolvedVehicle, VendorCredentials, VendorSession

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
  "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
  "Accept": "application/json, text/plain, */*",
}
_CONTRACT_HIRE_PRODUCT_ID = 2104
_AUTH_STATUSES = {401, 403}


def _is_html(response: httpx.Response) -> bool:
  return "text/html" in (response.headers.get("content-type") or "").lower()


def _amount(payload: Any, *keys: str) -> float | None:
  """Walk nested dict keys and coerce the leaf to float."""
  current = payload
  for key in keys:
    if not isinstance(current, dict):
      return None
    current = current.get(key)
  if current is None:
    return None
  try:
    return float(current)
  except (TypeError, ValueError):
    return None


def _match_by_name(items: Any, needle: str) -> dict[str, Any] | None:
  """First catalog entry whose name contains the needle, case-insensitively."""
  if not isinstance(items, list):
    return None
  lowered = needle.strip().lower()
  if not lowered:
    return None
  for item in items:
    if isinstance(item, dict) and lowered in str(item.get("name") or "").lower():
      return item
  return None


class DrivaliaApiClient:
  """Cookie-session client for the Drivalia broker quoting API."""

  name = "drivalia"

  def __init__(self, *, base_url: str, timeout_seconds: float = 60.0, session_ttl_seconds: int = 1800, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._base_url = base_url.rstrip("/")
    self._session_ttl_seconds = session_ttl_seconds
    # Never trust environment proxy variables for vendor traffic.
    self._client = httpx.AsyncClient(base_url=self._base_url, timeout=timeout_seconds, headers=_DEFAULT_HEADERS, transport=transport, trust_env=False)

  async def aclose(self) -> None:
    await self._client.aclose()

  async def establish_session(self, credentials: VendorCredentials) -> VendorSession:
    """Prime cookies, post credentials, then confirm the session resolves to a user."""
    if not credentials.complete:
      raise AuthenticationError("Missing vendor username/password.")

    self._client.cookies.clear()
    try:
      # The login endpoint rejects requests that did not first receive the actuator cookie.
      await self._client.get("/actuator/info")
      response = await self._client.post(
        "/login",
        data={"username": str(credentials.username), "password": str(credentials.password)},
        headers={"Origin": self._origin(), "Referer": f"{self._origin()}/WebApp/"},
      )
    except httpx.HTTPError as exc:
      raise AuthenticationError(f"Login request failed: {exc}") from exc

    if _is_html(response):
      raise AuthenticationError("Login failed: vendor returned an HTML page instead of JSON.")
    if response.status_code >= 400:
      raise AuthenticationError(f"Login failed with status {response.status_code}.")

    session = VendorSession.with_ttl(self._session_ttl_seconds, cookies=dict(self._client.cookies))
    user_name = await self._fetch_session_user(session)
    if not user_name:
      raise AuthenticationError("Login failed: no valid session returned.")
    session.user_name = user_name
    logger.info("Drivalia session established for %s", user_name)
    return session

  async def is_session_valid(self, session: VendorSession) -> bool:
    if session.is_expired():
      return False
    try:
      return bool(await self._fetch_session_user(session))
    except AuthenticationError:
      return False

  async def resolve_vehicle(self, session: VendorSession, vehicle: Vehicle) -> ResolvedVehicle:
    """Walk make → model → variant catalogs with substring matching."""
    makes = await self._catalog_get(session, "/catalog/makes", {"sortBy": "make"})
    make = _match_by_name(makes, vehicle.manufacturer)
    if make is None:
      raise VehicleResolutionError(f"Make not found: {vehicle.manufacturer}")

    models = await self._catalog_get(session, "/catalog/models", {"makeCode": make.get("code"), "sortBy": "model"})
    model = _match_by_name(models, vehicle.model)
    if model is None:
      raise VehicleResolutionError(f"Model not found: {vehicle.model} for make {make.get('name')}")

    variants = await self._catalog_get(session, "/catalog/variant", {"makeCode": make.get("code"), "modelCode": model.get("code"), "sortBy": "variant"})
    variant = _match_by_name(variants, vehicle.variant)
    if variant is None:
      raise VehicleResolutionError(f"Variant not found: {vehicle.variant} for {make.get('name')} {model.get('name')}")

    return ResolvedVehicle(
      make_code=str(make.get("code")),
      model_code=str(model.get("code")),
      variant_code=str(variant.get("variantCode") or variant.get("xrefCode")),
      name=str(variant.get("name") or vehicle.variant),
      attributes=variant,
    )

  async def calculate_quote(self, session: VendorSession, vehicle: ResolvedVehicle, request: QuoteRequest) -> QuoteResult:
    body = self._build_calculation_body(vehicle, request)
    self._client.cookies.update(session.cookies)
    try:
      response = await self._client.post("/asset/calculate", json=body)
    except httpx.TimeoutException as exc:
      raise TransientQuoteError(f"Quote request timed out: {exc}") from exc
    except httpx.TransportError as exc:
      raise TransientQuoteError(f"Quote transport error: {exc}") from exc

    self._raise_for_quote_status(response)
    try:
      payload = response.json()
    except ValueError as exc:
      raise PermanentQuoteError("Quote response was not valid JSON.") from exc

    monthly_net = _amount(payload, "rentalPayment", "rentalNet")
    if monthly_net is None:
      raise PermanentQuoteError("Quote response missing rentalPayment.rentalNet.")
    monthly_gross = _amount(payload, "rentalPayment", "rentalGross")
    initial_payment = _amount(payload, "payment", "inAdvance", "net")
    attributes = vehicle.attributes
    return QuoteResult(
      vehicle=request.vehicle,
      term=request.term,
      mileage=request.mileage,
      monthly_rental=monthly_net,
      monthly_rental_gross=monthly_gross,
      initial_payment=initial_payment if initial_payment is not None else request.deposit,
      total_cost=_amount(payload, "totalCharge", "net"),
      maintenance_included=request.maintenance,
      supplier_name="Drivalia",
      quote_reference=attributes.get("xrefCode") or vehicle.variant_code,
      additional_info={
        "gross_monthly": monthly_gross,
        "vat": (monthly_gross - monthly_net) if monthly_gross is not None else None,
        "gross_total": _amount(payload, "totalCharge", "gross"),
        "residual_value": {"net": _amount(payload, "residualValue", "net"), "gross": _amount(payload, "residualValue", "gross")},
        "p11d": _amount(payload, "p11d") or _amount(attributes, "p11d"),
        "co2": _amount(payload, "co2Emission") or _amount(attributes, "co2"),
      },
      fetched_at=datetime.now(UTC),
    )

  def _origin(self) -> str:
    url = httpx.URL(self._base_url)
    return f"{url.scheme}://{url.host}"

  def _build_calculation_body(self, vehicle: ResolvedVehicle, request: QuoteRequest) -> dict[str, Any]:
    attributes = vehicle.attributes
    return {
      "asset": {
        "xrefCode": attributes.get("xrefCode") or vehicle.variant_code,
        "displayIdentifier": vehicle.name,
        "name": vehicle.name,
        "makeCode": vehicle.make_code,
        "modelCode": vehicle.model_code,
        "variantCode": vehicle.variant_code,
        "transmission": attributes.get("transmission"),
        "fuel": attributes.get("fuel"),
        "co2Emission": attributes.get("co2"),
        "doors": attributes.get("doors"),
        "cataloguePrice": attributes.get("p11d"),
        "vatExempt": False,
        "capId": attributes.get("capId"),
      },
      "product": {
        "quoteItem": {
          "id": _CONTRACT_HIRE_PRODUCT_ID,
          "name": "Contract Hire",
          "type": "LEASE",
          "productCode": "CH",
          "family": "Lease",
          "funderId": 1,
          "basisOfCharge": "RENTALS_BASED_ON_TIME",
          "capitalContribution": True,
        }
      },
      "proposal": {
        "term": request.term,
        "assetMeterUsage": {"type": "MI", "multiplier": 1000, "multiplicandMeterUsage": request.mileage / 1000, "meterUsage": request.mileage},
        "initialCapitalReduction": request.deposit,
        "maintenanceTerms": request.term if request.maintenance else 0,
        "lossOfUseEnabled": False,
        "tyreReplacementEnabled": False,
        "vatRegistered": True,
        "margin": 8.7,
        "baseRate": 8.7,
        "commissionTypeId": 3,
      },
    }

  def _raise_for_quote_status(self, response: httpx.Response) -> None:
    status = response.status_code
    if status in _AUTH_STATUSES:
      raise AuthenticationError(f"Session rejected while quoting (status {status}).")
    if status == 429 or status >= 500:
      raise TransientQuoteError(f"Vendor returned {status} {response.reason_phrase}")
    if status >= 400:
      raise PermanentQuoteError(f"Vendor rejected quote: {status} {response.text[:200]}")
    if _is_html(response):
      raise PermanentQuoteError("Quote endpoint returned an HTML page.")

  async def _fetch_session_user(self, session: VendorSession) -> str | None:
    self._client.cookies.update(session.cookies)
    try:
      response = await self._client.get("/user/data/session")
    except httpx.HTTPError as exc:
      raise AuthenticationError(f"Session check failed: {exc}") from exc
    if response.status_code >= 400 or _is_html(response):
      return None
    try:
      payload = response.json()
    except ValueError:
      return None
    if not isinstance(payload, dict):
      return None
    user_name = payload.get("userName")
    return str(user_name) if user_name else None

  async def _catalog_get(self, session: VendorSession, path: str, params: dict[str, Any]) -> Any:
    self._client.cookies.update(session.cookies)
    try:
      response = await self._client.get(path, params=params)
    except httpx.HTTPError as exc:
      raise VehicleResolutionError(f"Catalog lookup {path} failed: {exc}") from exc
    if response.status_code in _AUTH_STATUSES:
      raise AuthenticationError(f"Session rejected during catalog lookup (status {response.status_code}).")
    if response.status_code >= 400:
      raise VehicleResolutionError(f"Catalog lookup {path} returned {response.status_code}.")
    try:
      return response.json()
    except ValueError as exc:
      raise VehicleResolutionError(f"Catalog lookup {path} returned invalid JSON.") from exc
