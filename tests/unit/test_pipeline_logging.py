"""Unit tests for structured lifecycle logging."""

import logging

import pytest

from backend.app.utils.logging import PipelineLogger


def test_transition_carries_structured_fields(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="backend.app.utils.logging")

    PipelineLogger().log_transition(
        owner_id="u1",
        document_id="d1",
        status="READY",
        location="incoming/u1/d1/report.csv",
        extra_fields={"ingestion_job_id": "job-1"},
    )

    record = caplog.records[-1]
    assert record.levelno == logging.INFO
    assert record.getMessage() == "Document d1 -> READY"
    assert record.structured == {
        "owner_id": "u1",
        "document_id": "d1",
        "status": "READY",
        "location": "incoming/u1/d1/report.csv",
        "ingestion_job_id": "job-1",
    }


def test_failed_transition_is_a_warning(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="backend.app.utils.logging")

    PipelineLogger().log_transition(
        owner_id="u1",
        document_id="d1",
        status="FAILED",
        location="incoming/u1/d1/book.xls",
        error_reason="NormalizationError: unreadable workbook",
    )

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.structured["error_reason"] == "NormalizationError: unreadable workbook"


def test_skip_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="backend.app.utils.logging")

    PipelineLogger().log_skip(location="other/file.csv", reason="outside incoming prefix")

    assert "Skipping notification for other/file.csv" in caplog.text
