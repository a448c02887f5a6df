"""External collaborators consumed by the AML core.

Blockchain anchoring service and sanctions lookup. Each is an interface
with a default implementation; production wiring picks the implementation
from settings (see ``src/services.py``).
"""

import hashlib
import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import UTC, datetime

import httpx
import structlog
from pydantic import BaseModel

logger = structlog.get_logger()


class AnchoringError(RuntimeError):
    """The anchoring service did not return a hash."""


class AnchorReceipt(BaseModel):
    record_id: str
    record_type: str
    hash: str
    anchored_at: datetime


# ---------------------------------------------------------------------------
# Blockchain anchoring
# ---------------------------------------------------------------------------


def canonical_payload(payload: dict) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


class AnchoringService(ABC):
    @abstractmethod
    async def anchor(self, record_id: str, record_type: str, payload: dict) -> AnchorReceipt: ...


class LocalHashAnchoring(AnchoringService):
    """SHA-256 content hash without an external ledger."""

    async def anchor(self, record_id: str, record_type: str, payload: dict) -> AnchorReceipt:
        digest = hashlib.sha256(
            canonical_payload({"record_id": record_id, "record_type": record_type, **payload})
        ).hexdigest()
        return AnchorReceipt(
            record_id=record_id,
            record_type=record_type,
            hash=f"0x{digest}",
            anchored_at=datetime.now(UTC),
        )


class HttpAnchoringClient(AnchoringService):
    """Client for the blockchain anchoring service.

    POSTs ``{record_id, record_type, payload}`` to ``<base_url>/anchors`` and
    expects ``{"hash": ...}`` back. Transport and HTTP errors surface as
    ``AnchoringError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(timeout_seconds)
        )

    async def anchor(self, record_id: str, record_type: str, payload: dict) -> AnchorReceipt:
        body = {
            "record_id": record_id,
            "record_type": record_type,
            "payload": json.loads(canonical_payload(payload)),
        }
        try:
            response = await self._client.post("/anchors", json=body)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AnchoringError(f"Anchoring request for {record_id} failed: {exc}") from exc

        anchor_hash = data.get("hash") if isinstance(data, dict) else None
        if not anchor_hash:
            raise AnchoringError(f"Anchoring response for {record_id} carried no hash")

        return AnchorReceipt(
            record_id=record_id,
            record_type=record_type,
            hash=anchor_hash,
            anchored_at=datetime.now(UTC),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Sanctions lookup
# ---------------------------------------------------------------------------


class SanctionsLookup(ABC):
    @abstractmethod
    def is_sanctioned(self, identity_id: str) -> bool: ...


class StaticSanctionsList(SanctionsLookup):
    """Set-backed sanctions list, seeded from configuration."""

    def __init__(self, identities: Iterable[str] = ()) -> None:
        self._identities = set(identities)

    def is_sanctioned(self, identity_id: str) -> bool:
        return identity_id in self._identities

    def add(self, identity_id: str) -> None:
        self._identities.add(identity_id)

    def __len__(self) -> int:
        return len(self._identities)
