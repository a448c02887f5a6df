"""AML monitoring, case management and STR endpoints.

``/monitor`` is caller-facing and returns the public view of the decision.
Everything else is the compliance officer's surface and returns full
records.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.domains.aml.models import (
    AlertType,
    KYCStatus,
    PartyType,
    ResolutionDecision,
    RiskFactor,
    TransactionEvent,
)
from src.services import Services, get_services

router = APIRouter(prefix="/api/v1/aml", tags=["aml"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ReviewRequest(BaseModel):
    reviewer: str = Field(min_length=1)


class EscalateRequest(BaseModel):
    actor: str = Field(min_length=1)
    reason: str = ""


class ClearRequest(BaseModel):
    actor: str = Field(min_length=1)


class ResolveRequest(BaseModel):
    decision: ResolutionDecision
    notes: str = ""
    resolver: str = Field(min_length=1)


class ProfileCreateRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    customer_type: PartyType = PartyType.INDIVIDUAL
    risk_factors: list[RiskFactor] = Field(default_factory=list)


class KYCUpdateRequest(BaseModel):
    kyc_status: KYCStatus


class STRCreateRequest(BaseModel):
    subject_id: str = Field(min_length=1)
    subject_type: PartyType = PartyType.INDIVIDUAL
    alert_ids: list[str] = Field(min_length=1)
    suspicion_type: str = Field(min_length=1)
    description: str = ""
    created_by: str = Field(min_length=1)


class AcknowledgeRequest(BaseModel):
    fiu_reference: str = Field(min_length=1)


def _not_found(kind: str, key: str) -> LookupError:
    return LookupError(f"{kind} {key} not found")


# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------


@router.post("/monitor")
async def monitor_transaction(
    event: TransactionEvent, services: Services = Depends(get_services)
) -> dict:
    result = await services.monitor.monitor(event)
    return result.public_view()


@router.get("/thresholds")
async def get_thresholds(services: Services = Depends(get_services)) -> dict:
    return services.monitor.get_thresholds()


@router.get("/stats")
async def get_stats(services: Services = Depends(get_services)) -> dict:
    return await services.cases.get_compliance_stats()


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


@router.get("/alerts")
async def list_open_alerts(
    alert_type: AlertType | None = None,
    subject_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    services: Services = Depends(get_services),
) -> dict:
    """OPEN and UNDER_REVIEW alerts, newest first."""
    items = await services.cases.get_open_alerts()
    if alert_type:
        items = [a for a in items if a.alert_type == alert_type]
    if subject_id:
        items = [a for a in items if a.subject_id == subject_id]

    total = len(items)
    items = items[offset : offset + limit]
    return {
        "items": [a.model_dump(mode="json") for a in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/alerts/{alert_id}")
async def get_alert(alert_id: str, services: Services = Depends(get_services)) -> dict:
    alert = await services.cases.get_alert(alert_id)
    if alert is None:
        raise _not_found("Alert", alert_id)
    return alert.model_dump(mode="json")


async def _transition_response(services: Services, alert_id: str, updated) -> dict:
    if updated is not None:
        return {"updated": True, "alert": updated.model_dump(mode="json")}
    alert = await services.cases.get_alert(alert_id)
    if alert is None:
        raise _not_found("Alert", alert_id)
    return {"updated": False, "status": alert.status.value}


@router.post("/alerts/{alert_id}/review")
async def start_review(
    alert_id: str, request: ReviewRequest, services: Services = Depends(get_services)
) -> dict:
    updated = await services.cases.start_review(alert_id, request.reviewer)
    return await _transition_response(services, alert_id, updated)


@router.post("/alerts/{alert_id}/escalate")
async def escalate_alert(
    alert_id: str, request: EscalateRequest, services: Services = Depends(get_services)
) -> dict:
    updated = await services.cases.escalate(alert_id, request.actor, request.reason)
    return await _transition_response(services, alert_id, updated)


@router.post("/alerts/{alert_id}/clear")
async def clear_alert(
    alert_id: str, request: ClearRequest, services: Services = Depends(get_services)
) -> dict:
    updated = await services.cases.clear(alert_id, request.actor)
    return await _transition_response(services, alert_id, updated)


@router.post("/alerts/{alert_id}/resolve")
async def resolve_alert(
    alert_id: str, request: ResolveRequest, services: Services = Depends(get_services)
) -> dict:
    resolved = await services.cases.resolve(
        alert_id, request.decision, request.notes, request.resolver
    )
    return {"alert_id": alert_id, "resolved": resolved}


# ---------------------------------------------------------------------------
# Risk profiles
# ---------------------------------------------------------------------------


@router.post("/profiles")
async def create_profile(
    request: ProfileCreateRequest, services: Services = Depends(get_services)
) -> dict:
    profile = await services.profiles.create_risk_profile(
        request.customer_id, request.customer_type, request.risk_factors
    )
    return profile.model_dump(mode="json")


@router.get("/profiles/high-risk")
async def list_high_risk_profiles(services: Services = Depends(get_services)) -> dict:
    items = await services.profiles.get_high_risk_customers()
    return {"items": [p.model_dump(mode="json") for p in items], "total": len(items)}


@router.get("/profiles/{customer_id}")
async def get_profile(customer_id: str, services: Services = Depends(get_services)) -> dict:
    profile = await services.cases.get_risk_profile(customer_id)
    if profile is None:
        raise _not_found("Risk profile", customer_id)
    return profile.model_dump(mode="json")


@router.put("/profiles/{customer_id}/kyc")
async def update_kyc(
    customer_id: str, request: KYCUpdateRequest, services: Services = Depends(get_services)
) -> dict:
    profile = await services.profiles.update_kyc_status(customer_id, request.kyc_status)
    if profile is None:
        raise _not_found("Risk profile", customer_id)
    return profile.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Suspicious transaction reports
# ---------------------------------------------------------------------------


@router.post("/reports")
async def generate_report(
    request: STRCreateRequest, services: Services = Depends(get_services)
) -> dict:
    report = await services.reports.generate_str(
        subject_id=request.subject_id,
        subject_type=request.subject_type,
        alert_ids=request.alert_ids,
        suspicion_type=request.suspicion_type,
        description=request.description,
        created_by=request.created_by,
    )
    return report.model_dump(mode="json")


@router.get("/reports")
async def list_reports(services: Services = Depends(get_services)) -> dict:
    items = await services.reports.list_reports()
    return {"items": [r.model_dump(mode="json") for r in items], "total": len(items)}


@router.get("/reports/{report_id}")
async def get_report(report_id: str, services: Services = Depends(get_services)) -> dict:
    report = await services.reports.get_report(report_id)
    if report is None:
        raise _not_found("Report", report_id)
    return report.model_dump(mode="json")


@router.post("/reports/{report_id}/submit")
async def submit_report(report_id: str, services: Services = Depends(get_services)) -> dict:
    submitted = await services.reports.submit_str(report_id)
    report = await services.reports.get_report(report_id)
    return {
        "report_id": report_id,
        "submitted": submitted,
        "blockchain_hash": report.blockchain_hash if report else None,
    }


@router.post("/reports/{report_id}/acknowledge")
async def acknowledge_report(
    report_id: str, request: AcknowledgeRequest, services: Services = Depends(get_services)
) -> dict:
    acknowledged = await services.reports.acknowledge_str(report_id, request.fiu_reference)
    return {"report_id": report_id, "acknowledged": acknowledged}


# ---------------------------------------------------------------------------
# Travel rule
# ---------------------------------------------------------------------------


@router.get("/travel-rule/{transaction_id}")
async def get_travel_rule_records(
    transaction_id: str, services: Services = Depends(get_services)
) -> dict:
    items = await services.travel_rule.get_for_transaction(transaction_id)
    return {"items": [r.model_dump(mode="json") for r in items], "total": len(items)}
