"""Vendor session lifecycle shared by all jobs in one worker process."""

from __future__ import annotations

import asyncio
import logging

from lease_engine.vendors.errors import AuthenticationError
from lease_engine.vendors.interface import VendorCredentials, VendorSession, VendorSessionClient

logger = logging.getLogger(__name__)


class VendorSessionManager:
  """Establishes, validates, reuses, and discards the vendor session."""

  def __init__(self, *, client: VendorSessionClient, credentials: VendorCredentials) -> None:
    self._client = client
    self._credentials = credentials
    self._session: VendorSession | None = None
    # Concurrent jobs must not race two logins; some vendors allow one live session per account.
    self._lock = asyncio.Lock()

  @property
  def current(self) -> VendorSession | None:
    return self._session

  async def ensure_session(self) -> VendorSession:
    """Return a valid session, logging in when absent or invalid."""
    async with self._lock:
      if self._session is not None:
        if await self._client.is_session_valid(self._session):
          return self._session
        logger.info("Vendor session for %s is no longer valid; re-establishing.", self._client.name)
        self._session = None

      try:
        self._session = await self._client.establish_session(self._credentials)
      except AuthenticationError:
        logger.error("Vendor authentication failed for %s.", self._client.name)
        raise
      logger.info("Vendor session established for %s.", self._client.name)
      return self._session

  def invalidate(self) -> None:
    """Drop the cached session so the next job logs in again."""
    if self._session is not None:
      logger.info("Discarding vendor session for %s.", self._client.name)
    self._session = None
