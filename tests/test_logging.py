import json
import logging
import tempfile
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler

import pytest
from starlette.testclient import TestClient

from wa_leads.app_logging import APP_LOGGER_NAME, JsonFormatter, init_logging


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


@pytest.fixture
def log_dir(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        monkeypatch.setenv("LOG_DIR", tmpdir)
        yield Path(tmpdir)


def test_timed_rotating_handler_configuration(log_dir, monkeypatch):
    monkeypatch.setenv("LOG_RETENTION_DAYS", "5")
    app_logger = _clear_handlers(APP_LOGGER_NAME)
    access_logger = _clear_handlers("uvicorn.access")

    init_logging()

    app_handler = next(
        h for h in app_logger.handlers if isinstance(h, TimedRotatingFileHandler)
    )
    assert app_handler.when == "MIDNIGHT"
    assert app_handler.backupCount == 5

    access_handler = next(
        h for h in access_logger.handlers if isinstance(h, TimedRotatingFileHandler)
    )
    assert access_handler.when == "MIDNIGHT"
    assert access_handler.backupCount == 5

    app_logger.handlers.clear()
    access_logger.handlers.clear()


def test_log_files_and_redaction(log_dir, app_factory):
    _clear_handlers(APP_LOGGER_NAME)
    _clear_handlers("uvicorn.access")
    app = app_factory(log_dir, log_request_bodies=True)

    module_logger = logging.getLogger("wa_leads.conversations.service")
    module_logger.info("hello leads")

    with TestClient(app) as client:
        resp = client.post(
            "/echo",
            json={"access_token": "secret", "verify_token": "v", "value": 1},
            headers={
                "Authorization": "Bearer secret",
                "X-Hub-Signature-256": "sha256=abc",
            },
        )
        assert resp.status_code == 200

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    for logger in (app_logger, logging.getLogger("uvicorn.access")):
        for handler in logger.handlers:
            handler.flush()

    app_log = log_dir / "app.log"
    access_log = log_dir / "access.log"

    assert "hello leads" in app_log.read_text()

    access_line = access_log.read_text().splitlines()[-1]
    payload = access_line.split(": ", 1)[1]
    data = json.loads(payload)
    assert data["headers"]["authorization"] == "***"
    assert data["headers"]["x-hub-signature-256"] == "***"
    assert data["body"]["access_token"] == "***"
    assert data["body"]["verify_token"] == "***"
    assert data["body"]["value"] == 1

    app_logger.handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()


def test_json_formatter_includes_logger_name():
    record = logging.LogRecord(
        "wa_leads.routers.whatsapp", logging.WARNING, __file__, 1, "hola %s", ("Ana",), None
    )

    data = json.loads(JsonFormatter().format(record))

    assert data["level"] == "WARNING"
    assert data["logger"] == "wa_leads.routers.whatsapp"
    assert data["message"] == "hola Ana"
