"""
Offers API Endpoints.

The trade protocol: offer, accept/decline, submit payment, confirm.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_engine, get_principal
from api.models import (
    CreateOfferRequest,
    DeclineRequest,
    NoteRequest,
    OfferPageResponse,
    OfferResponse,
    SubmitPaymentRequest,
    TransferResponse,
)
from domain.offer import OfferStatus
from services.context import EngineContext, Principal
from services.offer_service import (
    OfferRequest,
    PaymentSubmission,
    ProofUpload,
    accept_offer,
    create_offer,
    decline_offer,
    get_offer_for,
    list_offers,
    submit_payment,
)
from services.settlement_service import confirm_payment

router = APIRouter()


def _respond(offer, principal: Principal, engine: EngineContext) -> OfferResponse:
    return OfferResponse.from_offer(offer, principal.user_id, engine.now())


@router.post(
    "/offers",
    response_model=OfferResponse,
    status_code=201,
    summary="Make Offer",
)
def make_offer(
    request: CreateOfferRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """
    Offer to buy shares from a listing.

    For percentage listings the size may be given as `percentage` of the
    listing instead of `shares`. The seller has OFFER_TTL_HOURS to accept.
    """
    offer = create_offer(
        engine,
        principal,
        OfferRequest(
            listing_id=request.listing_id,
            payment_method=request.payment_method,
            shares=request.shares,
            percentage=request.percentage,
            buyer_note=request.buyer_note,
        ),
    )
    return _respond(offer, principal, engine)


@router.get(
    "/offers",
    response_model=OfferPageResponse,
    summary="My Offers",
)
def my_offers(
    type: str = Query("all", description="'sent', 'received' or 'all'"),
    status: Optional[OfferStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    result = list_offers(engine, principal, role=type, status=status, page=page, limit=limit)
    return OfferPageResponse(
        items=[_respond(offer, principal, engine) for offer in result.items],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get("/offers/{offer_id}", response_model=OfferResponse, summary="Get Offer")
def get_offer(
    offer_id: str,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    return _respond(get_offer_for(engine, principal, offer_id), principal, engine)


@router.post("/offers/{offer_id}/accept", response_model=OfferResponse, summary="Accept Offer")
def accept(
    offer_id: str,
    request: Optional[NoteRequest] = None,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """Seller accepts; the buyer then has PAYMENT_WINDOW_HOURS to pay."""
    offer = accept_offer(engine, principal, offer_id, request.note if request else None)
    return _respond(offer, principal, engine)


@router.post("/offers/{offer_id}/decline", response_model=OfferResponse, summary="Decline Offer")
def decline(
    offer_id: str,
    request: Optional[DeclineRequest] = None,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    offer = decline_offer(engine, principal, offer_id, request.reason if request else None)
    return _respond(offer, principal, engine)


@router.post("/offers/{offer_id}/payment", response_model=OfferResponse, summary="Submit Payment")
def submit(
    offer_id: str,
    request: SubmitPaymentRequest,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """
    Buyer reports an off-platform payment with its reference, method-specific
    details and an optional base64-encoded proof document.
    """
    proof = None
    if request.proof is not None:
        proof = ProofUpload(
            content=request.proof.content,
            content_type=request.proof.content_type,
            filename=request.proof.filename,
        )
    offer = submit_payment(
        engine,
        principal,
        PaymentSubmission(
            offer_id=offer_id,
            transaction_reference=request.transaction_reference,
            details=request.payment_details,
            proof=proof,
        ),
    )
    return _respond(offer, principal, engine)


@router.post("/offers/{offer_id}/confirm", response_model=TransferResponse, summary="Confirm Payment")
def confirm(
    offer_id: str,
    request: Optional[NoteRequest] = None,
    engine: EngineContext = Depends(get_engine),
    principal: Principal = Depends(get_principal),
):
    """
    Seller confirms the funds arrived. Shares move from seller to buyer in one
    transaction and the transfer record is returned.
    """
    transfer = confirm_payment(engine, principal, offer_id, request.note if request else None)
    return TransferResponse.from_record(transfer, principal.user_id)
