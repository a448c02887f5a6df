"""Anti-money-laundering domain."""

from .cases import CaseManager
from .collaborators import (
    AnchoringError,
    AnchoringService,
    HttpAnchoringClient,
    LocalHashAnchoring,
    SanctionsLookup,
    StaticSanctionsList,
)
from .config import AMLConfig
from .models import AMLAlert, MonitoringResult, TransactionEvent
from .monitoring import TransactionMonitor
from .reports import STRGenerator
from .risk_profiles import RiskProfileManager
from .travel_rule import TravelRuleRecorder

__all__ = [
    "AMLAlert",
    "AMLConfig",
    "AnchoringError",
    "AnchoringService",
    "CaseManager",
    "HttpAnchoringClient",
    "LocalHashAnchoring",
    "MonitoringResult",
    "RiskProfileManager",
    "STRGenerator",
    "SanctionsLookup",
    "StaticSanctionsList",
    "TransactionEvent",
    "TransactionMonitor",
    "TravelRuleRecorder",
]
