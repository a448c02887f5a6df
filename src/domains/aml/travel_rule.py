"""Travel-rule records (FATF Recommendation 16).

A record is created for every transaction at or above the travel-rule
threshold. It is COMPLIANT when the beneficiary VASP is known at creation
time and PENDING otherwise. Moving PENDING records to COMPLIANT once the
counterparty VASP responds happens outside this module.
"""

import uuid
from datetime import UTC, datetime

import structlog

from .config import AMLConfig, default_config
from .models import (
    Beneficiary,
    MonitoredTransaction,
    Originator,
    TravelRuleRecord,
    TravelRuleStatus,
    VASPInfo,
)
from .repositories import TravelRuleRepository

logger = structlog.get_logger()


class TravelRuleRecorder:
    def __init__(
        self,
        records: TravelRuleRepository,
        config: AMLConfig | None = None,
    ) -> None:
        self.config = config or default_config
        self._records = records

    @property
    def originator_vasp(self) -> VASPInfo:
        tc = self.config.travel_rule
        return VASPInfo(
            name=tc.originator_vasp_name,
            lei_code=tc.originator_vasp_lei,
            country=tc.originator_vasp_country,
        )

    async def record(
        self,
        transaction_id: str,
        amount: float,
        originator: Originator,
        beneficiary: Beneficiary,
        originator_vasp: VASPInfo,
        beneficiary_vasp: VASPInfo | None = None,
        timestamp: datetime | None = None,
    ) -> TravelRuleRecord:
        status = TravelRuleStatus.COMPLIANT if beneficiary_vasp else TravelRuleStatus.PENDING
        record = TravelRuleRecord(
            record_id=f"TR-{uuid.uuid4().hex[:16]}",
            transaction_id=transaction_id,
            amount=amount,
            originator=originator,
            beneficiary=beneficiary,
            originator_vasp=originator_vasp,
            beneficiary_vasp=beneficiary_vasp,
            timestamp=timestamp or datetime.now(UTC),
            compliance_status=status,
        )
        await self._records.add(record)
        logger.info(
            "travel_rule_recorded",
            record_id=record.record_id,
            transaction_id=transaction_id,
            amount=amount,
            compliance_status=status.value,
        )
        return record

    async def record_for_transaction(self, transaction: MonitoredTransaction) -> TravelRuleRecord:
        """Build the record from a monitored transaction's parties."""
        vasp = transaction.beneficiary_vasp
        return await self.record(
            transaction_id=transaction.transaction_id,
            amount=transaction.amount,
            originator=Originator(
                name=transaction.sender_name or transaction.sender_id,
                account_id=transaction.sender_id,
            ),
            beneficiary=Beneficiary(
                name=transaction.recipient_name or transaction.recipient_id,
                account_id=transaction.recipient_id,
                vasp_id=(vasp.lei_code or vasp.name) if vasp else None,
            ),
            originator_vasp=self.originator_vasp,
            beneficiary_vasp=vasp,
            timestamp=transaction.timestamp,
        )

    async def get_record(self, record_id: str) -> TravelRuleRecord | None:
        return await self._records.get(record_id)

    async def get_for_transaction(self, transaction_id: str) -> list[TravelRuleRecord]:
        return await self._records.for_transaction(transaction_id)
