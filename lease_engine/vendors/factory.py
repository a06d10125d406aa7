from __future__ import annotations

from lease_engine.config import Settings
from lease_engine.vendors.drivalia import DrivaliaApiClient
from lease_engine.vendors.dummy import DummyVendorClient
from lease_engine.vendors.interface import VendorCredentials, VendorSessionClient


def get_vendor_client(settings: Settings) -> VendorSessionClient:
  """Factory to get the configured quote provider client."""
  if settings.vendor_provider == "dummy":
    return DummyVendorClient(session_ttl_seconds=settings.vendor_session_ttl_seconds)
  return DrivaliaApiClient(base_url=settings.vendor_base_url, timeout_seconds=settings.vendor_timeout_seconds, session_ttl_seconds=settings.vendor_session_ttl_seconds)


def get_vendor_credentials(settings: Settings) -> VendorCredentials:
  return VendorCredentials(username=settings.vendor_username, password=settings.vendor_password)
