"""
Transfers and Balances API Endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_engine, get_principal
from api.models import BalanceResponse, TierResponse, TransferPageResponse, TransferResponse
from domain.transfer import TransferStatus
from services.context import EngineContext, Principal
from services.csv_export_service import generate_transfer_statement
from services.inventory_service import balance_summary
from services.settlement_service import get_transfer_for, transfer_history

router = APIRouter()


@router.get("/transfers", response_model=TransferPageResponse, summary="Transfer History")
def history(
    status: Optional[TransferStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    result = transfer_history(engine, principal, status=status, page=page, limit=limit)
    return TransferPageResponse(
        items=[TransferResponse.from_record(record, principal.user_id) for record in result.items],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get(
    "/transfers/statement",
    summary="Download Transfer Statement CSV",
    response_class=Response,
)
def download_statement(
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """
    CSV of the caller's completed transfers.

    **Security:**
    - Only the caller's own transfers are included
    - CSV injection prevention (dangerous characters stripped)
    """
    csv_content = generate_transfer_statement(engine, principal)
    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=share_transfers_{principal.user_id}.csv"},
    )


@router.get("/transfers/{transfer_id}", response_model=TransferResponse, summary="Get Transfer")
def get_transfer(
    transfer_id: str,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    return TransferResponse.from_record(get_transfer_for(engine, principal, transfer_id), principal.user_id)


@router.get("/balances", response_model=List[BalanceResponse], summary="My Share Balances")
def balances(
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """Available, listed and sellable shares per class and tier."""
    return [BalanceResponse.from_summary(summary) for summary in balance_summary(engine, principal.user_id)]


@router.get("/tiers", response_model=List[TierResponse], summary="Share Tiers")
def tiers(engine: EngineContext = Depends(get_engine)):
    return [TierResponse.from_tier(info) for info in engine.tiers.all()]
