"""Shared test fixtures."""

import os

import pytest

from src.domains.aml.collaborators import AnchorReceipt, LocalHashAnchoring, StaticSanctionsList
from src.services import compose
from src.shared.audit import AuditLogSink

os.environ.setdefault("AUDIT_SINK", "log")
os.environ.setdefault("ANCHORING_URL", "")
os.environ.setdefault("SANCTIONS_LIST", "SANCTIONED-1")

SANCTIONED_ID = "SANCTIONED-1"


class RecordingAuditSink(AuditLogSink):
    """Keeps audit events in memory for assertions."""

    def __init__(self) -> None:
        self.events: list[dict] = []

    async def log(self, action, actor_id, actor_type, target_type, target_id, metadata) -> None:
        self.events.append(
            {
                "action": action,
                "actor_id": actor_id,
                "actor_type": actor_type,
                "target_type": target_type,
                "target_id": target_id,
                "metadata": metadata,
            }
        )

    def actions(self) -> list[str]:
        return [e["action"] for e in self.events]


class CountingAnchoring(LocalHashAnchoring):
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def anchor(self, record_id: str, record_type: str, payload: dict) -> AnchorReceipt:
        self.calls.append(record_id)
        return await super().anchor(record_id, record_type, payload)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def anchoring() -> CountingAnchoring:
    return CountingAnchoring()


@pytest.fixture
def sanctions() -> StaticSanctionsList:
    return StaticSanctionsList([SANCTIONED_ID])


@pytest.fixture
def services(audit_sink, anchoring, sanctions):
    """Fully wired components over empty in-memory stores."""
    return compose(audit_sink, anchoring, sanctions)
