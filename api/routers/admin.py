"""
Admin API Endpoints.

Mediation on stuck or disputed trades, bulk operations, audit log and
reports. Every endpoint requires `X-User-Role: admin`.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_engine, get_principal
from api.models import (
    AdminCancelRequest,
    AuditPageResponse,
    BulkFailureResponse,
    BulkRequest,
    BulkResponse,
    DailyRollupResponse,
    DashboardResponse,
    DeleteOfferRequest,
    DisputeRequest,
    ForceCompleteRequest,
    OfferPageResponse,
    OfferResponse,
    RefundRequest,
    ResolveDisputeRequest,
    StuckOfferResponse,
    SweepResponse,
    TransferResponse,
    UpdateStatusRequest,
)
from domain.audit import AuditAction
from domain.offer import OfferStatus
from services import admin_service, report_service
from services.admin_service import BulkResult
from services.context import EngineContext, Principal, require_admin
from services.expiry_service import sweep_expired

router = APIRouter(prefix="/admin")


def _offer(offer, principal: Principal, engine: EngineContext) -> OfferResponse:
    return OfferResponse.from_offer(offer, principal.user_id, engine.now())


def _bulk(result: BulkResult) -> BulkResponse:
    return BulkResponse(
        batch_id=result.batch_id,
        succeeded=result.succeeded,
        failed=[BulkFailureResponse(offer_id=f.offer_id, error=f.error, code=f.code) for f in result.failed],
    )


# ============================================================================
# Reports
# ============================================================================

@router.get("/dashboard", response_model=DashboardResponse, summary="Admin Dashboard")
def dashboard(engine: EngineContext = Depends(get_engine), principal: Principal = Depends(get_principal)):
    """Totals by status, value by currency and the current stuck set."""
    return DashboardResponse.model_validate(report_service.dashboard(engine, principal), from_attributes=True)


@router.get("/reports/daily", response_model=List[DailyRollupResponse], summary="Daily Report")
def daily(
    start: date = Query(..., description="First UTC day (inclusive)"),
    end: date = Query(..., description="Last UTC day (inclusive)"),
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    rollups = report_service.daily_report(engine, principal, start, end)
    return [DailyRollupResponse.model_validate(rollup, from_attributes=True) for rollup in rollups]


@router.get("/offers", response_model=OfferPageResponse, summary="All Offers")
def offers(
    status: Optional[OfferStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    result = admin_service.all_offers(engine, principal, status=status, page=page, limit=limit)
    return OfferPageResponse(
        items=[_offer(offer, principal, engine) for offer in result.items],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get("/offers/stuck", response_model=List[StuckOfferResponse], summary="Stuck Offers")
def stuck(
    hours: Optional[int] = Query(None, ge=1, description="Defaults to STUCK_THRESHOLD_HOURS"),
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    threshold = timedelta(hours=hours) if hours else None
    return [
        StuckOfferResponse.model_validate(item, from_attributes=True)
        for item in report_service.list_stuck(engine, principal, threshold)
    ]


@router.get("/audit", response_model=AuditPageResponse, summary="Audit Log")
def audit(
    offer_id: Optional[str] = Query(None),
    admin_id: Optional[str] = Query(None),
    action: Optional[AuditAction] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    result = admin_service.audit_log(
        engine,
        principal,
        offer_id=offer_id,
        admin_id=admin_id,
        action=action,
        since=since,
        until=until,
        page=page,
        limit=limit,
    )
    return AuditPageResponse(
        items=result.items,
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


# ============================================================================
# Mediation
# ============================================================================

@router.post("/offers/{offer_id}/force-complete", response_model=TransferResponse, summary="Force-Complete Offer")
def force_complete(
    offer_id: str,
    request: ForceCompleteRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """
    Settle an offer stuck in payment without the seller's confirmation.

    Shares still move through the normal settlement path, so the seller must
    be able to cover the trade.
    """
    transfer = admin_service.force_complete(
        engine, principal, offer_id, request.reason, notes=request.notes, proof=request.proof
    )
    return TransferResponse.from_record(transfer, principal.user_id)


@router.post("/offers/{offer_id}/cancel", response_model=OfferResponse, summary="Cancel Offer")
def cancel(
    offer_id: str,
    request: AdminCancelRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    offer = admin_service.cancel_offer(
        engine,
        principal,
        offer_id,
        request.reason,
        refund_buyer=request.refund_buyer,
        refund_amount=request.refund_amount,
    )
    return _offer(offer, principal, engine)


@router.post("/offers/{offer_id}/delete", status_code=204, summary="Delete Offer")
def delete(
    offer_id: str,
    request: DeleteOfferRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """Only cancelled or failed offers; the audit entry is written first."""
    admin_service.delete_offer(engine, principal, offer_id, confirm=request.confirm, reason=request.reason)


@router.post("/offers/{offer_id}/refund", response_model=OfferResponse, summary="Record Refund")
def refund(
    offer_id: str,
    request: RefundRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    offer = admin_service.refund_offer(
        engine, principal, offer_id, request.reason, amount=request.amount, method=request.method
    )
    return _offer(offer, principal, engine)


@router.post("/offers/{offer_id}/flag", response_model=OfferResponse, summary="Flag Stuck Offer")
def flag(
    offer_id: str,
    request: DisputeRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    offer = admin_service.flag_stuck(engine, principal, offer_id, request.reason, request.notes)
    return _offer(offer, principal, engine)


@router.post("/offers/{offer_id}/dispute", response_model=OfferResponse, summary="Open Dispute")
def dispute(
    offer_id: str,
    request: DisputeRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    offer = admin_service.create_dispute(engine, principal, offer_id, request.reason, request.notes)
    return _offer(offer, principal, engine)


@router.post("/offers/{offer_id}/resolve", response_model=OfferResponse, summary="Resolve Dispute")
def resolve(
    offer_id: str,
    request: ResolveDisputeRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """
    **Decisions:**
    - `award_seller`: shares move as a force-complete
    - `mediation`: shares move; half the total is recorded as refunded
    - `award_buyer` / `refund`: offer cancelled with a full refund record
    """
    offer = admin_service.resolve_dispute(
        engine, principal, offer_id, request.decision, notes=request.notes, reason=request.reason
    )
    return _offer(offer, principal, engine)


@router.post("/offers/{offer_id}/status", response_model=OfferResponse, summary="Update Offer Status")
def update_status(
    offer_id: str,
    request: UpdateStatusRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    offer = admin_service.update_status(engine, principal, offer_id, request.status, request.reason)
    return _offer(offer, principal, engine)


@router.post("/offers/bulk-complete", response_model=BulkResponse, summary="Bulk Force-Complete")
def bulk_complete(
    request: BulkRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """Each offer settles in its own transaction; failures do not undo successes."""
    return _bulk(admin_service.bulk_complete(engine, principal, request.offer_ids, request.reason))


@router.post("/offers/bulk-cancel", response_model=BulkResponse, summary="Bulk Cancel")
def bulk_cancel(
    request: BulkRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    return _bulk(admin_service.bulk_cancel(engine, principal, request.offer_ids, request.reason))


@router.post("/sweep", response_model=SweepResponse, summary="Run Expiry Sweep")
def sweep(engine: EngineContext = Depends(get_engine), principal: Principal = Depends(get_principal)):
    """Cancel stale offers and expire old listings now instead of waiting for the scheduled job."""
    require_admin(principal)
    result = sweep_expired(engine)
    return SweepResponse(
        offers_expired=result.offers_expired,
        payments_lapsed=result.payments_lapsed,
        listings_expired=result.listings_expired,
        failed=result.failed,
    )
