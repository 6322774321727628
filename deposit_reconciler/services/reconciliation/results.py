"""Run statistics collected by the batch coordinator."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


@dataclass
class SettlementOutcome:
    """What processing one settlement produced."""

    external_id: str
    matched: int = 0
    unmatched: int = 0
    matched_amount: Decimal = Decimal("0")
    deposit_reference: Optional[str] = None


@dataclass
class ConfigurationRunResult:
    """Statistics and errors for one configuration within a run."""

    configuration_id: uuid.UUID
    name: str
    notification_email: Optional[str] = None
    send_email: bool = False
    settlements_found: int = 0
    settlements_processed: int = 0
    settlements_skipped: int = 0
    deposits_created: int = 0
    transactions_matched: int = 0
    transactions_unmatched: int = 0
    total_amount: Decimal = Decimal("0")
    errors: list[str] = field(default_factory=list)
    failed: bool = False

    @classmethod
    def for_configuration(cls, configuration) -> "ConfigurationRunResult":
        return cls(
            configuration_id=configuration.id,
            name=configuration.name,
            notification_email=configuration.notification_email,
            send_email=bool(configuration.send_email),
        )

    def absorb(self, outcome: SettlementOutcome) -> None:
        self.settlements_processed += 1
        self.transactions_matched += outcome.matched
        self.transactions_unmatched += outcome.unmatched
        self.total_amount += outcome.matched_amount
        if outcome.deposit_reference:
            self.deposits_created += 1

    def status_line(self) -> str:
        """Last-run status stored on the configuration."""
        if self.failed:
            return f"Error: {self.errors[-1] if self.errors else 'unknown error'}"
        return (
            f"Success: {self.settlements_processed} settlements processed, "
            f"{self.transactions_matched} matched, "
            f"{self.transactions_unmatched} unmatched"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "configuration_id": self.configuration_id,
            "name": self.name,
            "settlements_found": self.settlements_found,
            "settlements_processed": self.settlements_processed,
            "settlements_skipped": self.settlements_skipped,
            "deposits_created": self.deposits_created,
            "transactions_matched": self.transactions_matched,
            "transactions_unmatched": self.transactions_unmatched,
            "total_amount": self.total_amount,
            "errors": list(self.errors),
        }


def _total(results: list[ConfigurationRunResult], attr: str) -> Any:
    return sum(getattr(r, attr) for r in results)


@dataclass
class RunSummary:
    """Aggregate of every configuration that ran, plus run-level errors."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    configurations: list[ConfigurationRunResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def settlements_found(self) -> int:
        return _total(self.configurations, "settlements_found")

    @property
    def settlements_processed(self) -> int:
        return _total(self.configurations, "settlements_processed")

    @property
    def settlements_skipped(self) -> int:
        return _total(self.configurations, "settlements_skipped")

    @property
    def deposits_created(self) -> int:
        return _total(self.configurations, "deposits_created")

    @property
    def transactions_matched(self) -> int:
        return _total(self.configurations, "transactions_matched")

    @property
    def transactions_unmatched(self) -> int:
        return _total(self.configurations, "transactions_unmatched")

    @property
    def total_amount(self) -> Decimal:
        return sum((r.total_amount for r in self.configurations), Decimal("0"))

    def all_errors(self) -> list[str]:
        """Run-level errors followed by each configuration's, prefixed by name."""
        errors = list(self.errors)
        for result in self.configurations:
            errors += [f"{result.name}: {error}" for error in result.errors]
        return errors

    def recipients(self) -> list[str]:
        """Distinct notification addresses of configurations that ran."""
        seen: list[str] = []
        for result in self.configurations:
            address = (result.notification_email or "").strip()
            if result.send_email and address and address.lower() not in (
                s.lower() for s in seen
            ):
                seen.append(address)
        return seen

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "configurations_processed": len(self.configurations),
            "settlements_found": self.settlements_found,
            "settlements_processed": self.settlements_processed,
            "settlements_skipped": self.settlements_skipped,
            "deposits_created": self.deposits_created,
            "transactions_matched": self.transactions_matched,
            "transactions_unmatched": self.transactions_unmatched,
            "total_amount": self.total_amount,
            "stopped_early": self.stopped_early,
            "errors": self.all_errors(),
            "configurations": [r.to_dict() for r in self.configurations],
        }
