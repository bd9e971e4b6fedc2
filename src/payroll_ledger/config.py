"""Configuration management for the payroll ledger."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_EMPLOYEE_PF_RATE = Decimal("0.12")
DEFAULT_EMPLOYER_PF_RATE = Decimal("0.12")
DEFAULT_MAX_DOCUMENT_BYTES = 10 * 1024 * 1024
DEFAULT_DOCUMENT_REMOVAL_STATUSES = ("PENDING_APPROVAL", "APPROVED")


@dataclass(frozen=True)
class PfRates:
    """Provident Fund contribution rates.

    Rates are fractions of gross pay, e.g. Decimal("0.12") for 12%.
    """

    employee_rate: Decimal = DEFAULT_EMPLOYEE_PF_RATE
    employer_rate: Decimal = DEFAULT_EMPLOYER_PF_RATE

    def __post_init__(self) -> None:
        for name in ("employee_rate", "employer_rate"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                raise TypeError(f"{name} must be a Decimal")
            if value < 0 or value > 1:
                raise ValueError(f"{name} must be between 0 and 1")


@dataclass(frozen=True)
class DocumentPolicy:
    """Which payment statuses allow an attached document to be removed."""

    removal_statuses: frozenset[str] = frozenset(DEFAULT_DOCUMENT_REMOVAL_STATUSES)
    max_document_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES

    def __post_init__(self) -> None:
        if self.max_document_bytes <= 0:
            raise ValueError("max_document_bytes must be positive")

    def allows_removal(self, status: str) -> bool:
        return status in self.removal_statuses


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    employee_pf_rate: Decimal
    employer_pf_rate: Decimal
    gateway_timeout_seconds: float
    document_storage_dir: Path
    max_document_bytes: int
    document_removal_statuses: frozenset[str]
    log_level: str
    log_format: str

    @property
    def pf_rates(self) -> PfRates:
        return PfRates(
            employee_rate=self.employee_pf_rate,
            employer_rate=self.employer_pf_rate,
        )

    @property
    def document_policy(self) -> DocumentPolicy:
        return DocumentPolicy(
            removal_statuses=self.document_removal_statuses,
            max_document_bytes=self.max_document_bytes,
        )

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite+aiosqlite:///./payroll_ledger.db",
            ),
            employee_pf_rate=_decimal_env("EMPLOYEE_PF_RATE", DEFAULT_EMPLOYEE_PF_RATE),
            employer_pf_rate=_decimal_env("EMPLOYER_PF_RATE", DEFAULT_EMPLOYER_PF_RATE),
            gateway_timeout_seconds=float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10")),
            document_storage_dir=Path(
                os.getenv("DOCUMENT_STORAGE_DIR", "./payment_documents")
            ),
            max_document_bytes=int(
                os.getenv("MAX_DOCUMENT_BYTES", str(DEFAULT_MAX_DOCUMENT_BYTES))
            ),
            document_removal_statuses=_status_set_env(
                "DOCUMENT_REMOVAL_STATUSES", DEFAULT_DOCUMENT_REMOVAL_STATUSES
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
        )


def _decimal_env(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from exc


def _status_set_env(name: str, default: tuple[str, ...]) -> frozenset[str]:
    raw = os.getenv(name)
    if raw is None:
        return frozenset(default)
    return frozenset(s.strip().upper() for s in raw.split(",") if s.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
