# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import hashlib
import hmac
import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from opentelemetry.sdk.trace import TracerProvider

from coreason_keycloak.utils.logger import anonymize, configure_logging, logger


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    yield
    monkeypatch.delenv("COREASON_KEYCLOAK_LOG_LEVEL", raising=False)
    monkeypatch.delenv("COREASON_KEYCLOAK_LOG_JSON", raising=False)
    monkeypatch.delenv("COREASON_KEYCLOAK_LOG_FILE", raising=False)
    configure_logging()


def test_anonymize_is_keyed_hmac() -> None:
    expected = hmac.new(b"salt", b"user-1", hashlib.sha256).hexdigest()
    assert anonymize("user-1", "salt") == expected
    assert anonymize("user-1", "other-salt") != expected
    assert "user-1" not in anonymize("user-1", "salt")


def test_json_logging_to_stdout(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("COREASON_KEYCLOAK_LOG_JSON", "true")
    configure_logging()

    logger.info("signing keys loaded")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["record"]["message"] == "signing keys loaded"
    assert record["record"]["level"]["name"] == "INFO"


def test_level_from_environment(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("COREASON_KEYCLOAK_LOG_LEVEL", "warning")
    configure_logging()

    logger.info("hidden")
    logger.warning("shown")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "shown" in err


def test_invalid_level_falls_back_to_info(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("COREASON_KEYCLOAK_LOG_LEVEL", "LOUD")
    configure_logging()

    logger.debug("debug message")
    logger.info("info message")

    err = capsys.readouterr().err
    assert "debug message" not in err
    assert "info message" in err


def test_file_sink(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    log_file = tmp_path / "keycloak.log"
    monkeypatch.setenv("COREASON_KEYCLOAK_LOG_FILE", str(log_file))
    configure_logging()

    logger.info("written to file")
    logger.complete()

    lines = log_file.read_text().strip().splitlines()
    assert json.loads(lines[-1])["record"]["message"] == "written to file"


def test_standard_logging_is_intercepted(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging()
    logging.getLogger("httpx").info("HTTP Request: GET https://auth.coreason.ai")
    assert "HTTP Request: GET https://auth.coreason.ai" in capsys.readouterr().err


def test_trace_ids_are_injected() -> None:
    configure_logging()
    records: list[dict[str, Any]] = []
    sink_id = logger.add(lambda message: records.append(message.record), level="INFO")
    tracer = TracerProvider().get_tracer("test_tracer")
    try:
        with tracer.start_as_current_span("keycloak.verify_token") as span:
            logger.info("inside span")
        logger.info("outside span")
    finally:
        logger.remove(sink_id)

    inside, outside = records
    assert inside["extra"]["trace_id"] == format(span.get_span_context().trace_id, "032x")
    assert "trace_id" not in outside["extra"]
