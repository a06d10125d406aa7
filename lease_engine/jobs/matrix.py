"""Expansion of a job's vehicles and config into individual quote requests."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from lease_engine.jobs.models import QuoteConfig, QuoteRequest, Vehicle


def expand_vehicle(vehicle: Vehicle, config: QuoteConfig) -> list[QuoteRequest]:
  """Return the term-major request slice for one vehicle."""
  return [QuoteRequest(vehicle=vehicle, term=term, mileage=mileage, maintenance=config.maintenance, deposit=config.deposit) for term in config.terms for mileage in config.mileages]


def expand_matrix(vehicles: Iterable[Vehicle], config: QuoteConfig) -> list[QuoteRequest]:
  """Return every request for a job, vehicle by vehicle, in submission order."""
  requests: list[QuoteRequest] = []
  for vehicle in vehicles:
    requests.extend(expand_vehicle(vehicle, config))
  return requests


def requests_per_vehicle(config: QuoteConfig) -> int:
  return len(config.terms) * len(config.mileages)


def count_requests(vehicles: Sequence[Vehicle] | Sequence[dict], config: QuoteConfig) -> int:
  """Expected request total without materializing the matrix."""
  return len(vehicles) * requests_per_vehicle(config)
