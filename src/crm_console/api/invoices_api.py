"""
Invoices API - invoices plus payments, refunds, subscriptions and dunning.
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..services.invoice_service import Invoice
from ..services.session_service import Session
from .deps import optional_session, service_error
from .state import Services, get_services

router = APIRouter(prefix="/api/crm/invoices", tags=["invoices"])


class InvoiceCreate(BaseModel):
    title: str
    account_id: str
    items: list[dict] = Field(default_factory=list)
    subtotal: float = 0.0
    tax: float = 0.0
    total: Optional[float] = None
    currency: Optional[str] = None
    status: str = "draft"
    due_date: Optional[str] = None
    issued_at: Optional[str] = None


class InvoiceUpdate(BaseModel):
    title: Optional[str] = None
    account_id: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[str] = None
    issued_at: Optional[str] = None
    items: Optional[list[dict]] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None


class InvoiceResponse(BaseModel):
    id: str
    invoice_number: Optional[int]
    title: str
    account_id: str
    items: list[dict]
    subtotal: float
    tax: float
    total: float
    balance: float
    currency: str
    status: str
    due_date: Optional[str]
    issued_at: Optional[str]
    paid_at: Optional[str]
    payments: list[dict]
    refunds: list[dict]
    subscription: Optional[dict]
    dunning_state: str
    created_at: Optional[str]
    updated_at: Optional[str]


class PaymentRequest(BaseModel):
    amount: float
    method: Optional[str] = None
    paid_at: Optional[str] = None


class RefundRequest(BaseModel):
    amount: float
    reason: Optional[str] = None
    refunded_at: Optional[str] = None


class SubscribeRequest(BaseModel):
    interval: Literal['monthly', 'annual'] = 'monthly'
    start_at: Optional[str] = None


class DunningRequest(BaseModel):
    state: str = 'none'


def _response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(**{
        k: v for k, v in invoice.to_record().items() if k in InvoiceResponse.model_fields
    })


def _actor(session: Optional[Session]) -> Optional[dict]:
    return session.actor if session else None


@router.get("", response_model=list[InvoiceResponse])
async def list_invoices(
    q: Optional[str] = None,
    sort: Optional[str] = None,
    dir: Optional[str] = None,
    services: Services = Depends(get_services),
):
    return [_response(i) for i in services.invoices.list_invoices(q=q, sort=sort, direction=dir)]


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: str, services: Services = Depends(get_services)):
    try:
        return _response(services.invoices.get_invoice(invoice_id))
    except ValueError as e:
        raise service_error(e)


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    invoice_data: InvoiceCreate,
    services: Services = Depends(get_services),
    session: Optional[Session] = Depends(optional_session),
):
    try:
        invoice = services.invoices.create_invoice(invoice_data.model_dump(), actor=_actor(session))
        return _response(invoice)
    except ValueError as e:
        raise service_error(e)


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: str,
    updates: InvoiceUpdate,
    services: Services = Depends(get_services),
    session: Optional[Session] = Depends(optional_session),
):
    try:
        invoice = services.invoices.update_invoice(
            invoice_id, updates.model_dump(exclude_unset=True), actor=_actor(session),
        )
        return _response(invoice)
    except ValueError as e:
        raise service_error(e)


@router.delete("/{invoice_id}")
async def delete_invoice(invoice_id: str, services: Services = Depends(get_services)):
    try:
        services.invoices.delete_invoice(invoice_id)
        return {"success": True, "message": f"Invoice '{invoice_id}' deleted"}
    except ValueError as e:
        raise service_error(e)


@router.post("/{invoice_id}/payments", response_model=InvoiceResponse)
async def record_payment(
    invoice_id: str,
    body: PaymentRequest,
    services: Services = Depends(get_services),
    session: Optional[Session] = Depends(optional_session),
):
    try:
        invoice = services.invoices.record_payment(
            invoice_id, body.amount, method=body.method, paid_at=body.paid_at, actor=_actor(session),
        )
        return _response(invoice)
    except ValueError as e:
        raise service_error(e)


@router.post("/{invoice_id}/refunds", response_model=InvoiceResponse)
async def record_refund(
    invoice_id: str,
    body: RefundRequest,
    services: Services = Depends(get_services),
    session: Optional[Session] = Depends(optional_session),
):
    try:
        invoice = services.invoices.record_refund(
            invoice_id, body.amount, reason=body.reason, refunded_at=body.refunded_at, actor=_actor(session),
        )
        return _response(invoice)
    except ValueError as e:
        raise service_error(e)


@router.post("/{invoice_id}/subscribe", response_model=InvoiceResponse)
async def subscribe(
    invoice_id: str,
    body: SubscribeRequest,
    services: Services = Depends(get_services),
    session: Optional[Session] = Depends(optional_session),
):
    try:
        invoice = services.invoices.subscribe(
            invoice_id, interval=body.interval, start_at=body.start_at, actor=_actor(session),
        )
        return _response(invoice)
    except ValueError as e:
        raise service_error(e)


@router.post("/{invoice_id}/cancel-subscription", response_model=InvoiceResponse)
async def cancel_subscription(
    invoice_id: str,
    services: Services = Depends(get_services),
    session: Optional[Session] = Depends(optional_session),
):
    try:
        return _response(services.invoices.cancel_subscription(invoice_id, actor=_actor(session)))
    except ValueError as e:
        raise service_error(e)


@router.post("/{invoice_id}/dunning", response_model=InvoiceResponse)
async def set_dunning(
    invoice_id: str,
    body: DunningRequest,
    services: Services = Depends(get_services),
    session: Optional[Session] = Depends(optional_session),
):
    try:
        return _response(services.invoices.set_dunning(invoice_id, body.state, actor=_actor(session)))
    except ValueError as e:
        raise service_error(e)


@router.get("/{invoice_id}/history")
async def invoice_history(invoice_id: str, services: Services = Depends(get_services)):
    """History entries (newest first) alongside the raw payments and refunds."""
    try:
        invoice = services.invoices.get_invoice(invoice_id)
        history = services.invoices.history(invoice_id)
    except ValueError as e:
        raise service_error(e)
    return {"history": history, "payments": invoice.payments, "refunds": invoice.refunds}
