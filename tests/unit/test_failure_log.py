from lease_engine.jobs.failures import MAX_ERROR_MESSAGE_CHARS, FailureLog, truncate_message
from lease_engine.jobs.models import QuoteRequest, Vehicle
from lease_engine.vendors.errors import AuthenticationError, PermanentQuoteError, VehicleResolutionError

VEHICLE = Vehicle(manufacturer="Kia", model="Niro", variant="EV 4", vehicle_id="v-1")


def test_no_failures_and_no_abort_gives_no_details():
  assert FailureLog().to_error_details() is None


def test_request_failure_sample_shape():
  log = FailureLog()
  log.record_request(QuoteRequest(vehicle=VEHICLE, term=48, mileage=8000, maintenance=False, deposit=0), PermanentQuoteError("rejected"))

  details = log.to_error_details()

  assert details == {
    "failures": [{"vehicle": "Kia Niro EV 4", "vehicle_id": "v-1", "type": "PermanentQuoteError", "message": "rejected", "term": 48, "mileage": 8000}],
    "truncated": False,
  }


def test_vehicle_failure_counts_every_request_in_one_sample():
  log = FailureLog()
  log.record(VEHICLE, VehicleResolutionError("Make not found: Kia"), count=8)

  assert log.total == 8
  assert len(log.samples) == 1
  assert log.samples[0]["requests"] == 8


def test_samples_are_capped_but_total_keeps_counting():
  log = FailureLog(sample_limit=3)
  for _ in range(5):
    log.record(VEHICLE, PermanentQuoteError("nope"))

  details = log.to_error_details()

  assert log.total == 5
  assert len(details["failures"]) == 3
  assert details["truncated"] is True


def test_abort_adds_type_and_message():
  details = FailureLog().to_error_details(abort=AuthenticationError("Login failed with status 401."))

  assert details["type"] == "AuthenticationError"
  assert details["message"] == "Login failed with status 401."
  assert details["failures"] == []


def test_long_messages_are_truncated():
  message = truncate_message("x" * 2000)

  assert len(message) == MAX_ERROR_MESSAGE_CHARS
  assert message.endswith("...")
