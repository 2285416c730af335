from __future__ import annotations

import logging

from pulse.infra.logging import setup_logging


def test_setup_logging_writes_to_rotating_file(tmp_path) -> None:
    log_file = setup_logging("debug", tmp_path)

    logging.getLogger("pulse.test").info("hello")
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.flush()
        root.removeHandler(handler)
        handler.close()

    assert log_file == tmp_path / "pulse.log"
    assert "hello" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
