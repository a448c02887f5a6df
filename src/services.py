"""Service composition.

Builds every component once, wired to shared repositories and
collaborators, and hands them to the API through ``app.state``.
"""

from dataclasses import dataclass, field

import structlog
from fastapi import Request

from src.config import Settings
from src.domains.aml.cases import CaseManager
from src.domains.aml.collaborators import (
    AnchoringService,
    HttpAnchoringClient,
    LocalHashAnchoring,
    StaticSanctionsList,
)
from src.domains.aml.config import AMLConfig
from src.domains.aml.monitoring import TransactionMonitor
from src.domains.aml.reports import STRGenerator
from src.domains.aml.repositories import (
    InMemoryAlertRepository,
    InMemoryReportRepository,
    InMemoryRiskProfileRepository,
    InMemoryTransactionHistory,
    InMemoryTravelRuleRepository,
)
from src.domains.aml.risk_profiles import RiskProfileManager
from src.domains.aml.travel_rule import TravelRuleRecorder
from src.domains.gateway import PaymentAuthorizer
from src.domains.policy.config import PolicyConfig
from src.domains.policy.engine import PolicyEngine
from src.domains.policy.repositories import (
    InMemoryMerchantDirectory,
    InMemoryPolicyRepository,
    InMemoryUsageLedger,
)
from src.shared.audit import AuditLogSink, KafkaAuditSink, StructlogAuditSink
from src.shared.kafka_utils import create_producer

logger = structlog.get_logger()


@dataclass
class Services:
    monitor: TransactionMonitor
    profiles: RiskProfileManager
    cases: CaseManager
    reports: STRGenerator
    travel_rule: TravelRuleRecorder
    policies: PolicyEngine
    payments: PaymentAuthorizer
    sanctions: StaticSanctionsList
    _closers: list = field(default_factory=list)

    async def aclose(self) -> None:
        for close in self._closers:
            await close()


def build_aml_config(settings: Settings) -> AMLConfig:
    config = AMLConfig.from_env()
    config.travel_rule.originator_vasp_name = settings.vasp_name
    config.travel_rule.originator_vasp_lei = settings.vasp_lei
    config.travel_rule.originator_vasp_country = settings.vasp_country
    return config


def build_policy_config(settings: Settings) -> PolicyConfig:
    config = PolicyConfig.from_env()
    config.timezone = settings.policy_timezone
    return config


def compose(
    audit: AuditLogSink,
    anchoring: AnchoringService,
    sanctions: StaticSanctionsList,
    aml_config: AMLConfig | None = None,
    policy_config: PolicyConfig | None = None,
) -> Services:
    """Wire components over fresh in-memory repositories."""
    history = InMemoryTransactionHistory()
    alerts = InMemoryAlertRepository()
    reports = InMemoryReportRepository()

    profiles = RiskProfileManager(InMemoryRiskProfileRepository(), aml_config)
    travel_rule = TravelRuleRecorder(InMemoryTravelRuleRepository(), aml_config)
    monitor = TransactionMonitor(
        history=history,
        alerts=alerts,
        profiles=profiles,
        sanctions=sanctions,
        audit=audit,
        travel_rule=travel_rule,
        config=aml_config,
    )
    cases = CaseManager(alerts, profiles, history, reports, audit)
    generator = STRGenerator(reports, alerts, history, cases, anchoring, audit)
    policies = PolicyEngine(
        InMemoryPolicyRepository(),
        InMemoryMerchantDirectory(),
        InMemoryUsageLedger(),
        audit,
        policy_config,
    )
    return Services(
        monitor=monitor,
        profiles=profiles,
        cases=cases,
        reports=generator,
        travel_rule=travel_rule,
        policies=policies,
        payments=PaymentAuthorizer(monitor, policies),
        sanctions=sanctions,
    )


async def build_services(settings: Settings) -> Services:
    closers = []

    audit: AuditLogSink
    if settings.audit_sink == "kafka":
        producer = await create_producer(settings.kafka_bootstrap_servers, settings.app_name)
        audit = KafkaAuditSink(producer, settings.audit_topic)
        closers.append(producer.stop)
    elif settings.audit_sink == "log":
        audit = StructlogAuditSink()
    else:
        raise ValueError(f"Unknown audit sink: {settings.audit_sink}")

    anchoring: AnchoringService
    if settings.anchoring_url:
        client = HttpAnchoringClient(settings.anchoring_url, settings.anchoring_timeout_seconds)
        anchoring = client
        closers.append(client.aclose)
    else:
        anchoring = LocalHashAnchoring()

    sanctions = StaticSanctionsList(settings.sanctioned_ids)
    services = compose(
        audit,
        anchoring,
        sanctions,
        build_aml_config(settings),
        build_policy_config(settings),
    )
    services._closers.extend(closers)

    logger.info(
        "services_built",
        audit_sink=settings.audit_sink,
        anchoring="http" if settings.anchoring_url else "local",
        sanctioned_ids=len(sanctions),
    )
    return services


def get_services(request: Request) -> Services:
    return request.app.state.services
