import logging
import sys

from lease_engine.core.logging import TruncatedFormatter, _build_handlers, _rotated_name


def test_rotated_backups_keep_log_extension_first():
  assert _rotated_name("/var/log/lease_worker.log.1") == "/var/log/lease_worker.log-1"
  assert _rotated_name("/var/log/lease_worker.log") == "/var/log/lease_worker.log"


def test_handlers_write_into_configured_directory(tmp_path, make_settings):
  stream, file_handler, log_path = _build_handlers(make_settings(log_dir=str(tmp_path / "logs")), label="worker")
  try:
    assert log_path.parent == (tmp_path / "logs").resolve()
    assert log_path.name.startswith("lease_worker_")
    assert log_path.exists()
    assert file_handler.maxBytes == 1024 * 1024
  finally:
    file_handler.close()


def test_truncated_formatter_keeps_tail_of_deep_tracebacks():
  def recurse(depth: int) -> None:
    if depth == 0:
      raise RuntimeError("vendor exploded")
    recurse(depth - 1)

  try:
    recurse(10)
  except RuntimeError:
    record = logging.LogRecord("lease_engine", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

  text = TruncatedFormatter("%(message)s").format(record)

  assert "    ...\n" in text
  assert text.rstrip().endswith("RuntimeError: vendor exploded")
