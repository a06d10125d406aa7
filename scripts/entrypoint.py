import logging
import os
import sys

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")

_ROLES = {
  "worker": [sys.executable, "-m", "lease_engine.worker"],
  "api": ["uvicorn", "lease_engine.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8002"), "--no-server-header"],
}


def main() -> None:
  """Launch the quote worker or the status API; migrations run in the deploy pipeline."""
  role = (sys.argv[1] if len(sys.argv) > 1 else os.getenv("LEASE_ROLE", "worker")).strip().lower()
  if role not in _ROLES:
    raise SystemExit(f"Unknown role {role!r}; expected one of: {', '.join(sorted(_ROLES))}")
  logger.info("Starting %s (run alembic upgrade head in deploy pipeline)...", role)
  args = _ROLES[role]
  # Replace the current process so SIGTERM reaches the worker or uvicorn directly.
  os.execvp(args[0], args)


if __name__ == "__main__":
  main()
