"""Repository interfaces for AML state, with in-memory implementations.

Each component receives the repositories it needs. Repositories own their
concurrency control: per-sender locks for the transaction history, atomic
compare-and-swap for alert and report status, and atomic per-subject
updates for risk profiles. A database-backed implementation replaces the
in-memory one without touching the components.
"""

import bisect
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable, Collection
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from src.shared.locks import KeyedLocks

from .models import (
    AlertStatus,
    AMLAlert,
    CustomerRiskProfile,
    MonitoredTransaction,
    STRStatus,
    SuspiciousTransactionReport,
    TravelRuleRecord,
)

AlertTransform = Callable[[AMLAlert], AMLAlert]
ProfileTransform = Callable[[CustomerRiskProfile], CustomerRiskProfile]
ReportTransform = Callable[[SuspiciousTransactionReport], SuspiciousTransactionReport]


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class TransactionHistoryRepository(ABC):
    """Append-only, time-ordered history of monitored transactions."""

    @abstractmethod
    def lock_sender(self, sender_id: str) -> AbstractAsyncContextManager[None]:
        """Serialize read-evaluate-append for one sender."""

    @abstractmethod
    async def append(self, transaction: MonitoredTransaction) -> None: ...

    @abstractmethod
    async def get(self, transaction_id: str) -> MonitoredTransaction | None: ...

    @abstractmethod
    async def get_many(self, transaction_ids: Collection[str]) -> list[MonitoredTransaction]: ...

    @abstractmethod
    async def for_sender(
        self, sender_id: str, since: datetime, until: datetime
    ) -> list[MonitoredTransaction]:
        """Sender's transactions with ``since < timestamp <= until``, oldest first."""

    @abstractmethod
    async def count(self) -> int: ...


class AlertRepository(ABC):
    @abstractmethod
    async def add(self, alert: AMLAlert) -> None: ...

    @abstractmethod
    async def get(self, alert_id: str) -> AMLAlert | None: ...

    @abstractmethod
    async def list(self) -> list[AMLAlert]: ...

    @abstractmethod
    async def compare_and_swap(
        self,
        alert_id: str,
        expected: Collection[AlertStatus],
        transform: AlertTransform,
    ) -> AMLAlert | None:
        """Replace the alert with ``transform(alert)`` if its status is in ``expected``.

        Returns the new version, or None when the alert is missing or in
        another status. Nothing changes in that case.
        """


class RiskProfileRepository(ABC):
    @abstractmethod
    async def get(self, customer_id: str) -> CustomerRiskProfile | None: ...

    @abstractmethod
    async def get_or_create(
        self, customer_id: str, factory: Callable[[], CustomerRiskProfile]
    ) -> tuple[CustomerRiskProfile, bool]:
        """Return ``(profile, created)``."""

    @abstractmethod
    async def update(
        self, customer_id: str, transform: ProfileTransform
    ) -> CustomerRiskProfile | None:
        """Apply ``transform`` atomically; None if the profile does not exist."""

    @abstractmethod
    async def list(self) -> list[CustomerRiskProfile]: ...


class ReportRepository(ABC):
    @abstractmethod
    def lock_report(self, report_id: str) -> AbstractAsyncContextManager[None]: ...

    @abstractmethod
    async def add(self, report: SuspiciousTransactionReport) -> None: ...

    @abstractmethod
    async def get(self, report_id: str) -> SuspiciousTransactionReport | None: ...

    @abstractmethod
    async def list(self) -> list[SuspiciousTransactionReport]: ...

    @abstractmethod
    async def compare_and_swap(
        self,
        report_id: str,
        expected: Collection[STRStatus],
        transform: ReportTransform,
    ) -> SuspiciousTransactionReport | None: ...


class TravelRuleRepository(ABC):
    @abstractmethod
    async def add(self, record: TravelRuleRecord) -> None: ...

    @abstractmethod
    async def get(self, record_id: str) -> TravelRuleRecord | None: ...

    @abstractmethod
    async def for_transaction(self, transaction_id: str) -> list[TravelRuleRecord]: ...

    @abstractmethod
    async def list(self) -> list[TravelRuleRecord]: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryTransactionHistory(TransactionHistoryRepository):
    def __init__(self) -> None:
        self._by_id: dict[str, MonitoredTransaction] = {}
        # {sender_id: [(timestamp, transaction_id)]} kept sorted
        self._by_sender: dict[str, list[tuple[datetime, str]]] = defaultdict(list)
        self._locks = KeyedLocks()

    def lock_sender(self, sender_id: str) -> AbstractAsyncContextManager[None]:
        return self._locks.hold(sender_id)

    async def append(self, transaction: MonitoredTransaction) -> None:
        if transaction.transaction_id in self._by_id:
            raise ValueError(f"Transaction {transaction.transaction_id} already recorded")
        self._by_id[transaction.transaction_id] = transaction
        bisect.insort(
            self._by_sender[transaction.sender_id],
            (transaction.timestamp, transaction.transaction_id),
        )

    async def get(self, transaction_id: str) -> MonitoredTransaction | None:
        return self._by_id.get(transaction_id)

    async def get_many(self, transaction_ids: Collection[str]) -> list[MonitoredTransaction]:
        return [self._by_id[tid] for tid in transaction_ids if tid in self._by_id]

    async def for_sender(
        self, sender_id: str, since: datetime, until: datetime
    ) -> list[MonitoredTransaction]:
        entries = self._by_sender.get(sender_id, [])
        return [self._by_id[tid] for ts, tid in entries if since < ts <= until]

    async def count(self) -> int:
        return len(self._by_id)


class InMemoryAlertRepository(AlertRepository):
    def __init__(self) -> None:
        self._alerts: dict[str, AMLAlert] = {}
        self._locks = KeyedLocks()

    async def add(self, alert: AMLAlert) -> None:
        self._alerts[alert.alert_id] = alert

    async def get(self, alert_id: str) -> AMLAlert | None:
        return self._alerts.get(alert_id)

    async def list(self) -> list[AMLAlert]:
        return list(self._alerts.values())

    async def compare_and_swap(
        self,
        alert_id: str,
        expected: Collection[AlertStatus],
        transform: AlertTransform,
    ) -> AMLAlert | None:
        async with self._locks.hold(alert_id):
            current = self._alerts.get(alert_id)
            if current is None or current.status not in expected:
                return None
            updated = transform(current)
            self._alerts[alert_id] = updated
            return updated


class InMemoryRiskProfileRepository(RiskProfileRepository):
    def __init__(self) -> None:
        self._profiles: dict[str, CustomerRiskProfile] = {}
        self._locks = KeyedLocks()

    async def get(self, customer_id: str) -> CustomerRiskProfile | None:
        return self._profiles.get(customer_id)

    async def get_or_create(
        self, customer_id: str, factory: Callable[[], CustomerRiskProfile]
    ) -> tuple[CustomerRiskProfile, bool]:
        async with self._locks.hold(customer_id):
            existing = self._profiles.get(customer_id)
            if existing is not None:
                return existing, False
            profile = factory()
            self._profiles[customer_id] = profile
            return profile, True

    async def update(
        self, customer_id: str, transform: ProfileTransform
    ) -> CustomerRiskProfile | None:
        async with self._locks.hold(customer_id):
            current = self._profiles.get(customer_id)
            if current is None:
                return None
            updated = transform(current)
            self._profiles[customer_id] = updated
            return updated

    async def list(self) -> list[CustomerRiskProfile]:
        return list(self._profiles.values())


class InMemoryReportRepository(ReportRepository):
    def __init__(self) -> None:
        self._reports: dict[str, SuspiciousTransactionReport] = {}
        self._submission_locks = KeyedLocks()
        self._swap_locks = KeyedLocks()

    def lock_report(self, report_id: str) -> AbstractAsyncContextManager[None]:
        return self._submission_locks.hold(report_id)

    async def add(self, report: SuspiciousTransactionReport) -> None:
        self._reports[report.report_id] = report

    async def get(self, report_id: str) -> SuspiciousTransactionReport | None:
        return self._reports.get(report_id)

    async def list(self) -> list[SuspiciousTransactionReport]:
        return list(self._reports.values())

    async def compare_and_swap(
        self,
        report_id: str,
        expected: Collection[STRStatus],
        transform: ReportTransform,
    ) -> SuspiciousTransactionReport | None:
        async with self._swap_locks.hold(report_id):
            current = self._reports.get(report_id)
            if current is None or current.status not in expected:
                return None
            updated = transform(current)
            self._reports[report_id] = updated
            return updated


class InMemoryTravelRuleRepository(TravelRuleRepository):
    def __init__(self) -> None:
        self._records: dict[str, TravelRuleRecord] = {}

    async def add(self, record: TravelRuleRecord) -> None:
        self._records[record.record_id] = record

    async def get(self, record_id: str) -> TravelRuleRecord | None:
        return self._records.get(record_id)

    async def for_transaction(self, transaction_id: str) -> list[TravelRuleRecord]:
        return [r for r in self._records.values() if r.transaction_id == transaction_id]

    async def list(self) -> list[TravelRuleRecord]:
        return list(self._records.values())
