"""Failure classes surfaced by vendor session clients."""

from __future__ import annotations


class VendorError(Exception):
  """Base class for errors raised while talking to a quote provider."""


class AuthenticationError(VendorError):
  """Session could not be established or was rejected mid-job."""


class VehicleResolutionError(VendorError):
  """Free-text vehicle could not be mapped to vendor identifiers."""


class QuoteError(VendorError):
  """Quote calculation failed."""

  transient = False


class TransientQuoteError(QuoteError):
  """Timeout or throttle signal; worth one more attempt."""

  transient = True


class PermanentQuoteError(QuoteError):
  """Malformed response or rejected request; retrying will not help."""
