"""
Terms API - custom terms, sending terms for review, and the Terms Ledger.

Two routers: the authenticated console router under /api/crm/products/terms
and the public review router that recipients reach through their token link.
"""
from dataclasses import asdict
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, Field

from ..services.base import parse_bool_param
from ..services.session_service import Session
from .deps import require_session, service_error
from .state import Services, get_services

router = APIRouter(prefix="/api/crm/products/terms", tags=["terms"])
review_router = APIRouter(prefix="/api/terms/review", tags=["terms-review"])


class TermsCreate(BaseModel):
    """Request model for creating terms."""
    name: str
    content: str
    description: Optional[str] = None
    is_default: bool = False
    account_ids: list[str] = Field(default_factory=list)
    is_active: bool = True


class TermsUpdate(BaseModel):
    name: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None
    is_default: Optional[bool] = None
    account_ids: Optional[list[str]] = None
    is_active: Optional[bool] = None


class TermsResponse(BaseModel):
    id: str
    name: str
    content: str
    description: Optional[str]
    is_default: bool
    account_ids: list[str]
    is_active: bool
    created_at: Optional[str]
    updated_at: Optional[str]


class SendForReviewRequest(BaseModel):
    recipient_email: str
    recipient_name: Optional[str] = None
    account_id: Optional[str] = None
    contact_id: Optional[str] = None
    custom_message: Optional[str] = None


class ReviewRequestResponse(BaseModel):
    """A review request as shown in the ledger."""
    id: str
    terms_id: str
    terms_name: str
    account_id: Optional[str]
    contact_id: Optional[str]
    recipient_email: str
    recipient_name: Optional[str]
    sender_id: Optional[str]
    sender_email: Optional[str]
    sender_name: Optional[str]
    status: str
    custom_message: Optional[str]
    sent_at: Optional[str]
    viewed_at: Optional[str]
    responded_at: Optional[str]
    response_notes: Optional[str]
    signer_name: Optional[str]


class SendForReviewResponse(BaseModel):
    review_request: ReviewRequestResponse
    review_url: str


class PublicReviewResponse(BaseModel):
    """What the recipient sees: the terms and the request state."""
    terms_name: str
    terms_content: str
    recipient_name: Optional[str]
    sender_name: Optional[str]
    custom_message: Optional[str]
    status: str
    sent_at: Optional[str]
    viewed_at: Optional[str]
    responded_at: Optional[str]


class RespondRequest(BaseModel):
    action: Literal['approve', 'reject']
    notes: Optional[str] = None
    signer_name: Optional[str] = None


def _review(request) -> ReviewRequestResponse:
    return ReviewRequestResponse(**{
        k: v for k, v in asdict(request).items() if k in ReviewRequestResponse.model_fields
    })


# ===== LEDGER =====

@router.get("/ledger", response_model=list[ReviewRequestResponse])
async def terms_ledger(
    q: Optional[str] = None,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    dir: Optional[str] = None,
    services: Services = Depends(get_services),
    session: Session = Depends(require_session),
):
    """Every terms review request, filtered and sorted."""
    rows = services.terms.ledger(q=q, status=status, sort=sort, direction=dir)
    return [_review(r) for r in rows]


@router.get("/ledger/export")
async def export_terms_ledger(
    q: Optional[str] = None,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    dir: Optional[str] = None,
    services: Services = Depends(get_services),
    session: Session = Depends(require_session),
):
    """The ledger as a CSV download, with the same filters as the list."""
    rows = services.terms.ledger(q=q, status=status, sort=sort, direction=dir)
    filename = f"terms-ledger-{datetime.now().strftime('%Y-%m-%d')}.csv"
    return Response(
        content=services.terms.ledger_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ===== TERMS =====

@router.get("", response_model=list[TermsResponse])
async def list_terms(
    q: Optional[str] = None,
    is_active: Optional[str] = None,
    sort: Optional[str] = None,
    dir: Optional[str] = None,
    services: Services = Depends(get_services),
):
    terms = services.terms.list_terms(q=q, is_active=parse_bool_param(is_active), sort=sort, direction=dir)
    return [TermsResponse(**t.to_record()) for t in terms]


@router.get("/{terms_id}", response_model=TermsResponse)
async def get_terms(terms_id: str, services: Services = Depends(get_services)):
    try:
        return TermsResponse(**services.terms.get_terms(terms_id).to_record())
    except ValueError as e:
        raise service_error(e)


@router.post("", response_model=TermsResponse, status_code=201)
async def create_terms(terms_data: TermsCreate, services: Services = Depends(get_services)):
    """Create terms. Marking them default clears the flag everywhere else."""
    try:
        return TermsResponse(**services.terms.create_terms(terms_data.model_dump()).to_record())
    except ValueError as e:
        raise service_error(e)


@router.put("/{terms_id}", response_model=TermsResponse)
async def update_terms(terms_id: str, updates: TermsUpdate, services: Services = Depends(get_services)):
    try:
        terms = services.terms.update_terms(terms_id, updates.model_dump(exclude_unset=True))
        return TermsResponse(**terms.to_record())
    except ValueError as e:
        raise service_error(e)


@router.delete("/{terms_id}")
async def delete_terms(terms_id: str, services: Services = Depends(get_services)):
    try:
        services.terms.delete_terms(terms_id)
        return {"success": True, "message": f"Terms '{terms_id}' deleted"}
    except ValueError as e:
        raise service_error(e)


@router.post("/{terms_id}/send-for-review", response_model=SendForReviewResponse)
async def send_for_review(
    terms_id: str,
    body: SendForReviewRequest,
    services: Services = Depends(get_services),
    session: Session = Depends(require_session),
):
    """Send terms to a recipient; the sender comes from the caller's session."""
    try:
        request = services.terms.send_for_review(
            terms_id,
            recipient_email=body.recipient_email,
            recipient_name=body.recipient_name,
            account_id=body.account_id,
            contact_id=body.contact_id,
            custom_message=body.custom_message,
            sender_id=session.user_id,
            sender_email=session.email,
            sender_name=session.name,
        )
    except ValueError as e:
        raise service_error(e)
    return SendForReviewResponse(
        review_request=_review(request),
        review_url=services.terms.review_url(request.review_token),
    )


# ===== PUBLIC REVIEW =====

@review_router.get("/{token}", response_model=PublicReviewResponse)
async def open_review(token: str, services: Services = Depends(get_services)):
    """Recipient view of a review request. The first open marks it viewed."""
    try:
        request, terms = services.terms.open_review(token)
    except ValueError as e:
        raise service_error(e)
    return PublicReviewResponse(
        terms_name=terms.name,
        terms_content=terms.content,
        recipient_name=request.recipient_name,
        sender_name=request.sender_name,
        custom_message=request.custom_message,
        status=request.status,
        sent_at=request.sent_at,
        viewed_at=request.viewed_at,
        responded_at=request.responded_at,
    )


@review_router.post("/{token}/respond")
async def respond_to_review(token: str, body: RespondRequest, services: Services = Depends(get_services)):
    try:
        request = services.terms.respond(token, body.action, notes=body.notes, signer_name=body.signer_name)
    except ValueError as e:
        raise service_error(e)
    return {"success": True, "status": request.status, "responded_at": request.responded_at}
