"""
Invoice Service - invoices, payments, refunds, subscriptions and dunning.

Every change that matters to a customer conversation (status, title, due
date, totals, money movement, subscription, dunning) leaves an entry in
the invoice history collection.
"""
import logging
from dataclasses import dataclass, asdict, field
from typing import Optional

import pandas as pd

from ..storage.document_store import DocumentStore
from .base import RecordNotFound, ValidationFailed, clean_str, search, sort_docs, now_iso

logger = logging.getLogger(__name__)

INVOICE_STATUSES = ('draft', 'open', 'paid', 'void', 'uncollectible')
SUBSCRIPTION_INTERVALS = ('monthly', 'annual')
DUNNING_STATES = ('none', 'first_notice', 'second_notice', 'final_notice', 'collections')
HISTORY_EVENTS = (
    'created', 'updated', 'status_changed', 'payment_received', 'refund_issued',
    'total_changed', 'field_changed', 'subscription_started', 'subscription_canceled',
    'dunning_state_changed',
)


@dataclass
class Invoice:
    """An invoice issued to an account."""
    title: str
    account_id: str
    id: str = ''
    invoice_number: Optional[int] = None
    items: list[dict] = field(default_factory=list)
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    balance: float = 0.0
    currency: str = 'USD'
    status: str = 'draft'
    due_date: Optional[str] = None
    issued_at: Optional[str] = None
    paid_at: Optional[str] = None
    payments: list[dict] = field(default_factory=list)
    refunds: list[dict] = field(default_factory=list)
    subscription: Optional[dict] = None
    dunning_state: str = 'none'
    last_dunning_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def amount_paid(self) -> float:
        return sum(float(p.get('amount') or 0) for p in self.payments)

    @property
    def amount_refunded(self) -> float:
        return sum(float(r.get('amount') or 0) for r in self.refunds)

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def from_record(cls, doc: dict) -> 'Invoice':
        return cls(**{k: doc[k] for k in cls.__dataclass_fields__ if k in doc})


def _money(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _add_interval(start: str, interval: str) -> str:
    offset = pd.DateOffset(months=1) if interval == 'monthly' else pd.DateOffset(years=1)
    return (pd.Timestamp(start) + offset).isoformat()


class InvoiceService:
    """Service for invoices and their history."""

    COLLECTION = 'invoices'
    HISTORY = 'invoice_history'
    SEARCH_FIELDS = ('title', 'status')
    SORT_FIELDS = {'updated_at', 'created_at', 'invoice_number', 'total', 'status', 'due_date'}

    def __init__(
        self,
        store: DocumentStore,
        list_limit: int = 200,
        number_start: int = 700000,
        default_currency: str = 'USD',
    ):
        self.store = store
        self.list_limit = list_limit
        self.number_start = number_start
        self.default_currency = default_currency

    def list_invoices(
        self,
        q: Optional[str] = None,
        sort: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> list[Invoice]:
        docs = search(self.store.list(self.COLLECTION), q, self.SEARCH_FIELDS)
        docs = sort_docs(docs, sort, direction, self.SORT_FIELDS, 'updated_at')
        return [Invoice.from_record(d) for d in docs[:self.list_limit]]

    def get_invoice(self, invoice_id: str) -> Invoice:
        doc = self.store.get(self.COLLECTION, invoice_id)
        if not doc:
            raise RecordNotFound(f"Invoice '{invoice_id}' not found")
        return Invoice.from_record(doc)

    def create_invoice(self, data: dict, actor: Optional[dict] = None) -> Invoice:
        """Create an invoice. total defaults to subtotal + tax; balance starts at total."""
        errors = []
        title = clean_str(data.get('title'))
        account_id = clean_str(data.get('account_id'))
        if not title:
            errors.append("Title is required")
        if not account_id:
            errors.append("Account is required")
        status = data.get('status') or 'draft'
        if status not in INVOICE_STATUSES:
            errors.append(f"Status must be one of: {', '.join(INVOICE_STATUSES)}")
        if errors:
            raise ValidationFailed(errors)

        now = now_iso()
        subtotal = _money(data.get('subtotal'))
        tax = _money(data.get('tax'))
        total = _money(data.get('total')) or subtotal + tax

        invoice = Invoice(
            title=title,
            account_id=account_id,
            items=list(data.get('items') or []),
            subtotal=subtotal,
            tax=tax,
            total=total,
            balance=total,
            currency=data.get('currency') or self.default_currency,
            status=status,
            due_date=clean_str(data.get('due_date')),
            issued_at=clean_str(data.get('issued_at')) or now,
            created_at=now,
            updated_at=now,
        )
        invoice.invoice_number = self.store.next_sequence('invoice_number', start=self.number_start)
        invoice.id = self.store.insert(self.COLLECTION, invoice.to_record())["id"]

        self._add_history(invoice.id, 'created', f"Invoice created: {title}", actor)
        logger.info("Created invoice #%s for account %s", invoice.invoice_number, account_id)
        return invoice

    def update_invoice(self, invoice_id: str, updates: dict, actor: Optional[dict] = None) -> Invoice:
        """
        Apply a partial update.

        Status, title, due date and item/total changes are each recorded in
        history; anything else gets a generic "updated" entry.
        """
        current = self.get_invoice(invoice_id)
        fields = {}
        tracked = False

        errors = []
        status = updates.get('status')
        if status is not None and status not in INVOICE_STATUSES:
            errors.append(f"Status must be one of: {', '.join(INVOICE_STATUSES)}")
        if updates.get('title') is not None and not clean_str(updates['title']):
            errors.append("Title is required")
        if errors:
            raise ValidationFailed(errors)

        if status is not None and status != current.status:
            fields['status'] = status
            tracked = True
            self._add_history(
                invoice_id, 'status_changed',
                f'Status changed from "{current.status}" to "{status}"',
                actor, old_value=current.status, new_value=status,
            )

        if 'title' in updates and updates['title'] is not None:
            title = clean_str(updates['title'])
            if title != current.title:
                fields['title'] = title
                tracked = True
                self._add_history(
                    invoice_id, 'field_changed',
                    f'Title changed from "{current.title}" to "{title}"',
                    actor, old_value=current.title, new_value=title,
                )

        if 'due_date' in updates:
            due_date = clean_str(updates['due_date'])
            tracked = True
            if due_date != current.due_date:
                fields['due_date'] = due_date
                was = f" from {current.due_date[:10]}" if current.due_date else ''
                self._add_history(
                    invoice_id, 'field_changed',
                    f"Due date changed{was} to {due_date[:10] if due_date else 'removed'}",
                    actor, old_value=current.due_date, new_value=due_date,
                )

        if 'issued_at' in updates:
            fields['issued_at'] = clean_str(updates['issued_at'])

        if 'account_id' in updates and clean_str(updates['account_id']):
            fields['account_id'] = clean_str(updates['account_id'])

        if isinstance(updates.get('items'), list):
            tracked = True
            subtotal = _money(updates.get('subtotal'))
            tax = _money(updates.get('tax'))
            total = _money(updates.get('total')) or subtotal + tax
            fields.update({
                'items': updates['items'],
                'subtotal': subtotal,
                'tax': tax,
                'total': total,
                'balance': max(0.0, total - current.amount_paid + current.amount_refunded),
            })
            if total != current.total:
                self._add_history(
                    invoice_id, 'total_changed',
                    f"Total changed from ${current.total:.2f} to ${total:.2f}",
                    actor, old_value=current.total, new_value=total,
                )

        if not tracked:
            self._add_history(invoice_id, 'updated', "Invoice updated", actor)

        fields['updated_at'] = now_iso()
        doc = self.store.update(self.COLLECTION, invoice_id, fields)
        return Invoice.from_record(doc)

    def delete_invoice(self, invoice_id: str) -> bool:
        if not self.store.delete(self.COLLECTION, invoice_id):
            raise RecordNotFound(f"Invoice '{invoice_id}' not found")
        self.store.delete_many(self.HISTORY, lambda h: h.get('invoice_id') == invoice_id)
        logger.info("Deleted invoice %s", invoice_id)
        return True

    # ===== MONEY MOVEMENT =====

    def record_payment(
        self,
        invoice_id: str,
        amount,
        method: Optional[str] = None,
        paid_at: Optional[str] = None,
        actor: Optional[dict] = None,
    ) -> Invoice:
        """Apply a payment. The balance never goes below zero; reaching zero sets paid_at."""
        amount = _money(amount)
        if not amount > 0:
            raise ValidationFailed(["Payment amount must be greater than zero"])

        invoice = self.get_invoice(invoice_id)
        method = clean_str(method) or 'card'
        paid_at = clean_str(paid_at) or now_iso()

        old_balance = invoice.balance
        new_balance = round(max(0.0, old_balance - amount), 2)
        payment = {'amount': amount, 'method': method, 'paid_at': paid_at}

        invoice.payments.append(payment)
        invoice.balance = new_balance
        if new_balance == 0:
            invoice.paid_at = paid_at
        invoice.updated_at = now_iso()
        self.store.replace(self.COLLECTION, invoice.to_record())

        self._add_history(
            invoice_id, 'payment_received',
            f"Payment received: ${amount:.2f} via {method}. "
            f"Balance: ${old_balance:.2f} → ${new_balance:.2f}",
            actor, old_value=old_balance, new_value=new_balance, metadata=payment,
        )
        logger.info("Payment of %.2f on invoice %s, balance now %.2f", amount, invoice_id, new_balance)
        return invoice

    def record_refund(
        self,
        invoice_id: str,
        amount,
        reason: Optional[str] = None,
        refunded_at: Optional[str] = None,
        actor: Optional[dict] = None,
    ) -> Invoice:
        """Issue a refund. Refunds add back to the balance."""
        amount = _money(amount)
        if not amount > 0:
            raise ValidationFailed(["Refund amount must be greater than zero"])

        invoice = self.get_invoice(invoice_id)
        reason = clean_str(reason) or 'refund'
        refunded_at = clean_str(refunded_at) or now_iso()

        old_balance = invoice.balance
        new_balance = round(old_balance + amount, 2)
        refund = {'amount': amount, 'reason': reason, 'refunded_at': refunded_at}

        invoice.refunds.append(refund)
        invoice.balance = new_balance
        invoice.updated_at = now_iso()
        self.store.replace(self.COLLECTION, invoice.to_record())

        self._add_history(
            invoice_id, 'refund_issued',
            f"Refund issued: ${amount:.2f}{_reason_suffix(reason)}. "
            f"Balance: ${old_balance:.2f} → ${new_balance:.2f}",
            actor, old_value=old_balance, new_value=new_balance, metadata=refund,
        )
        return invoice

    # ===== SUBSCRIPTION & DUNNING =====

    def subscribe(
        self,
        invoice_id: str,
        interval: str = 'monthly',
        start_at: Optional[str] = None,
        actor: Optional[dict] = None,
    ) -> Invoice:
        if interval not in SUBSCRIPTION_INTERVALS:
            raise ValidationFailed([f"Interval must be one of: {', '.join(SUBSCRIPTION_INTERVALS)}"])
        self.get_invoice(invoice_id)

        start_at = clean_str(start_at) or now_iso()
        subscription = {
            'interval': interval,
            'active': True,
            'started_at': start_at,
            'next_invoice_at': _add_interval(start_at, interval),
        }
        doc = self.store.update(self.COLLECTION, invoice_id, {
            'subscription': subscription,
            'updated_at': now_iso(),
        })
        self._add_history(
            invoice_id, 'subscription_started',
            f"Subscription started: {interval} billing",
            actor, new_value=subscription,
        )
        return Invoice.from_record(doc)

    def cancel_subscription(self, invoice_id: str, actor: Optional[dict] = None) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if not invoice.subscription:
            raise ValidationFailed(["Invoice has no subscription"])

        subscription = dict(invoice.subscription, active=False, canceled_at=now_iso())
        doc = self.store.update(self.COLLECTION, invoice_id, {
            'subscription': subscription,
            'updated_at': now_iso(),
        })
        self._add_history(invoice_id, 'subscription_canceled', "Subscription canceled", actor)
        return Invoice.from_record(doc)

    def set_dunning(self, invoice_id: str, state: str, actor: Optional[dict] = None) -> Invoice:
        if state not in DUNNING_STATES:
            raise ValidationFailed([f"Dunning state must be one of: {', '.join(DUNNING_STATES)}"])
        invoice = self.get_invoice(invoice_id)

        now = now_iso()
        doc = self.store.update(self.COLLECTION, invoice_id, {
            'dunning_state': state,
            'last_dunning_at': now,
            'updated_at': now,
        })
        if state != invoice.dunning_state:
            self._add_history(
                invoice_id, 'dunning_state_changed',
                f'Dunning state changed from "{invoice.dunning_state}" to "{state}"',
                actor, old_value=invoice.dunning_state, new_value=state,
            )
        return Invoice.from_record(doc)

    # ===== HISTORY =====

    def history(self, invoice_id: str) -> list[dict]:
        """
        Invoice history, newest first.

        Payments and refunds without a matching history entry (e.g. imported
        data) are folded in as synthetic events.
        """
        invoice = self.get_invoice(invoice_id)
        entries = [h for h in self.store.list(self.HISTORY) if h.get('invoice_id') == invoice_id]

        def tracked(event_type, when_key, item):
            return any(
                h.get('event_type') == event_type
                and (h.get('metadata') or {}).get(when_key) == item.get(when_key)
                and (h.get('metadata') or {}).get('amount') == item.get('amount')
                for h in entries
            )

        for payment in invoice.payments:
            if not tracked('payment_received', 'paid_at', payment):
                entries.append({
                    'invoice_id': invoice_id,
                    'event_type': 'payment_received',
                    'description': f"Payment received: ${_money(payment.get('amount')):.2f} via {payment.get('method')}",
                    'metadata': payment,
                    'created_at': payment.get('paid_at'),
                })

        for refund in invoice.refunds:
            if not tracked('refund_issued', 'refunded_at', refund):
                entries.append({
                    'invoice_id': invoice_id,
                    'event_type': 'refund_issued',
                    'description': f"Refund issued: ${_money(refund.get('amount')):.2f}{_reason_suffix(refund.get('reason'))}",
                    'metadata': refund,
                    'created_at': refund.get('refunded_at'),
                })

        entries.sort(key=lambda h: h.get('created_at') or '', reverse=True)
        return entries

    def _add_history(
        self,
        invoice_id: str,
        event_type: str,
        description: str,
        actor: Optional[dict] = None,
        old_value=None,
        new_value=None,
        metadata: Optional[dict] = None,
    ):
        if event_type not in HISTORY_EVENTS:
            raise ValueError(f"Unknown invoice history event '{event_type}'")
        actor = actor or {}
        self.store.insert(self.HISTORY, {
            'invoice_id': invoice_id,
            'event_type': event_type,
            'description': description,
            'user_id': actor.get('user_id'),
            'user_name': actor.get('name'),
            'user_email': actor.get('email'),
            'old_value': old_value,
            'new_value': new_value,
            'metadata': metadata,
            'created_at': now_iso(),
        })


def _reason_suffix(reason: Optional[str]) -> str:
    return f" ({reason})" if reason and reason != 'refund' else ''
