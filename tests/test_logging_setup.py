"""Unit tests for log configuration (pingsnap.logging_setup)."""
import logging
import re
from logging.handlers import TimedRotatingFileHandler

import pytest

from pingsnap.logging_setup import (
    DATE_FORMAT,
    LOG_FORMAT,
    log_file_name,
    resolve_log_file,
    setup_logging,
)


@pytest.fixture
def restore_root_handlers():
    root = logging.getLogger()
    saved = list(root.handlers)
    level = root.level
    asyncio_level = logging.getLogger("asyncio").level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in saved:
        root.addHandler(h)
    root.setLevel(level)
    logging.getLogger("asyncio").setLevel(asyncio_level)


def _flush():
    for h in logging.getLogger().handlers:
        h.flush()


@pytest.mark.parametrize(
    "target, name",
    [
        (None, "pingsnap.log"),
        ("", "pingsnap.log"),
        ("8.8.8.8", "pingsnap-8.8.8.8.log"),
        ("example.com", "pingsnap-example.com.log"),
        ("fe80::1%eth0", "pingsnap-fe80_1_eth0.log"),
        ("../../etc/passwd", "pingsnap-etc_passwd.log"),
        ("///", "pingsnap-target.log"),
    ],
)
def test_log_file_name(target, name):
    assert log_file_name(target) == name


def test_resolve_log_file(tmp_path):
    assert resolve_log_file(str(tmp_path), "1.1.1.1") == tmp_path / "pingsnap-1.1.1.1.log"
    explicit = tmp_path / "run.log"
    assert resolve_log_file(str(explicit), "1.1.1.1") == explicit


def test_setup_logging_writes_daily_file(tmp_path, restore_root_handlers):
    logger = setup_logging(str(tmp_path / "logs"), target="8.8.8.8")
    assert logger.name == "pingsnap"
    file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, TimedRotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].when == "MIDNIGHT"

    logging.getLogger("pingsnap.monitor").info("sample line")
    _flush()
    text = (tmp_path / "logs" / "pingsnap-8.8.8.8.log").read_text(encoding="utf-8")
    record = logging.LogRecord("pingsnap.monitor", logging.INFO, __file__, 0, "sample line", None, None)
    expected = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT).format(record)
    # everything after the timestamp
    assert expected.split(" | ", 1)[1] in text
    assert re.search(r"^\d{4}-\d\d-\d\d \d\d:\d\d:\d\d \| INFO \| pingsnap\.monitor \| sample line$", text, re.M)


def test_targets_get_separate_files(tmp_path, restore_root_handlers):
    setup_logging(str(tmp_path), target="1.1.1.1")
    logging.getLogger("pingsnap").info("first")
    setup_logging(str(tmp_path), target="9.9.9.9")
    logging.getLogger("pingsnap").info("second")
    _flush()
    first = (tmp_path / "pingsnap-1.1.1.1.log").read_text(encoding="utf-8")
    second = (tmp_path / "pingsnap-9.9.9.9.log").read_text(encoding="utf-8")
    assert "first" in first and "second" not in first
    assert "second" in second and "first" not in second


def test_verbose_console(tmp_path, restore_root_handlers):
    setup_logging(str(tmp_path), verbose=True)
    console = [
        h for h in logging.getLogger().handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, TimedRotatingFileHandler)
    ]
    assert console[0].level == logging.DEBUG
    assert logging.getLogger("asyncio").level == logging.WARNING
