"""Tests for settings, logging and error serialization."""

import io
import json
import logging
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest

from payroll_ledger.config import DocumentPolicy, PfRates, Settings, get_settings
from payroll_ledger.exceptions import GatewayFailureError, InvalidStateError, NotEligibleError
from payroll_ledger.logging_config import LogContext, configure_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "DATABASE_URL",
        "EMPLOYEE_PF_RATE",
        "EMPLOYER_PF_RATE",
        "GATEWAY_TIMEOUT_SECONDS",
        "DOCUMENT_STORAGE_DIR",
        "MAX_DOCUMENT_BYTES",
        "DOCUMENT_REMOVAL_STATUSES",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Test environment-driven settings."""

    def test_defaults(self):
        """Test defaults when nothing is set."""
        settings = Settings.from_env()

        assert settings.database_url.startswith("sqlite+aiosqlite")
        assert settings.pf_rates == PfRates(Decimal("0.12"), Decimal("0.12"))
        assert settings.gateway_timeout_seconds == 10.0
        assert settings.document_policy.removal_statuses == {"PENDING_APPROVAL", "APPROVED"}
        assert settings.log_format == "text"

    def test_overrides(self, monkeypatch, tmp_path):
        """Test environment variables override defaults."""
        monkeypatch.setenv("EMPLOYEE_PF_RATE", "0.10")
        monkeypatch.setenv("EMPLOYER_PF_RATE", "0.1361")
        monkeypatch.setenv("GATEWAY_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("DOCUMENT_STORAGE_DIR", str(tmp_path))
        monkeypatch.setenv("DOCUMENT_REMOVAL_STATUSES", "draft, approved")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = get_settings()

        assert settings.employee_pf_rate == Decimal("0.10")
        assert settings.employer_pf_rate == Decimal("0.1361")
        assert settings.gateway_timeout_seconds == 2.5
        assert settings.document_storage_dir == Path(tmp_path)
        assert settings.document_removal_statuses == {"DRAFT", "APPROVED"}
        assert settings.log_level == "DEBUG"

    def test_bad_rate(self, monkeypatch):
        """Test a non-numeric rate fails loudly."""
        monkeypatch.setenv("EMPLOYEE_PF_RATE", "twelve")

        with pytest.raises(ValueError):
            Settings.from_env()

    def test_rate_bounds(self):
        """Test PfRates validates type and range."""
        with pytest.raises(ValueError):
            PfRates(employee_rate=Decimal("1.2"))
        with pytest.raises(TypeError):
            PfRates(employee_rate=0.12)

    def test_document_policy(self):
        """Test policy removal check and size validation."""
        policy = DocumentPolicy()

        assert policy.allows_removal("APPROVED") is True
        assert policy.allows_removal("PAID") is False
        with pytest.raises(ValueError):
            DocumentPolicy(max_document_bytes=0)


class TestErrors:
    """Test error payloads."""

    def test_invalid_state_payload(self):
        """Test InvalidStateError names payment, status and operation."""
        pid = uuid4()
        data = InvalidStateError(pid, "PAID", "cancel").to_dict()

        assert data["code"] == "INVALID_STATE"
        assert data["payment_id"] == str(pid)
        assert data["status"] == "PAID"
        assert data["message"] == "Cannot cancel a payment in status 'PAID'"

    def test_not_eligible_payload(self):
        """Test NotEligibleError names the failed predicate."""
        data = NotEligibleError(uuid4(), "unpaid").to_dict()

        assert data["code"] == "NOT_ELIGIBLE"
        assert data["predicate"] == "unpaid"

    def test_gateway_failure_payload(self):
        """Test GatewayFailureError lists rolled back assignments."""
        aid = uuid4()
        data = GatewayFailureError("reserve", "down", rolled_back=[aid]).to_dict()

        assert data["rolled_back"] == [str(aid)]
        assert data["uncompensated"] == []


class TestLogging:
    """Test log rendering."""

    def test_json_format_includes_context(self):
        """Test JSON lines carry bound actor and payment id."""
        stream = io.StringIO()
        configure_logging("INFO", "json", stream=stream)
        pid = uuid4()

        with LogContext.bind(actor="clerk", payment_id=pid):
            logging.getLogger("payroll_ledger.services").info("Submitted %d items", 3)

        record = json.loads(stream.getvalue().strip())
        assert record["message"] == "Submitted 3 items"
        assert record["actor"] == "clerk"
        assert record["payment_id"] == str(pid)
        assert record["level"] == "INFO"

    def test_json_format_includes_error_payload(self):
        """Test logged ledger errors include their structured payload."""
        stream = io.StringIO()
        configure_logging("INFO", "json", stream=stream)

        try:
            raise NotEligibleError(uuid4(), "completed")
        except NotEligibleError:
            logging.getLogger("payroll_ledger").exception("Attach failed")

        record = json.loads(stream.getvalue().strip())
        assert record["error"]["code"] == "NOT_ELIGIBLE"

    def test_context_is_reset(self):
        """Test bound fields do not leak past the block."""
        with LogContext.bind(actor="clerk"):
            assert LogContext.get_all() == {"actor": "clerk"}

        assert LogContext.get_all() == {}

    def test_text_format(self):
        """Test text lines include context fields."""
        stream = io.StringIO()
        configure_logging("DEBUG", "text", stream=stream)

        with LogContext.bind(actor="ops"):
            logging.getLogger("payroll_ledger.cli").debug("hello")

        assert "hello actor=ops" in stream.getvalue()

    def test_unknown_format(self):
        """Test an unknown format is rejected."""
        with pytest.raises(ValueError):
            configure_logging("INFO", "xml")
