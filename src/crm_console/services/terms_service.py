"""
Terms Service - custom contract terms and the review ledger.

Terms documents can be sent to external recipients for review. Each send
creates a review request that moves pending → viewed → approved/rejected;
the ledger lists those requests.
"""
import csv
import io
import logging
import secrets
from dataclasses import dataclass, asdict, field
from typing import Optional

from ..storage.document_store import DocumentStore
from .base import (
    RecordNotFound, ValidationFailed, ValidationResult,
    clean_str, search, sort_docs, now_iso,
)

logger = logging.getLogger(__name__)

REVIEW_STATUSES = ('pending', 'viewed', 'approved', 'rejected')
REVIEW_ACTIONS = {'approve': 'approved', 'reject': 'rejected'}


@dataclass
class CustomTerms:
    """A terms & conditions document."""
    name: str
    content: str
    id: str = ''
    description: Optional[str] = None
    is_default: bool = False
    account_ids: list[str] = field(default_factory=list)
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def from_record(cls, doc: dict) -> 'CustomTerms':
        return cls(
            id=doc.get('id', ''),
            name=doc.get('name', ''),
            content=doc.get('content', ''),
            description=doc.get('description'),
            is_default=bool(doc.get('is_default', False)),
            account_ids=list(doc.get('account_ids') or []),
            is_active=bool(doc.get('is_active', True)),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at'),
        )


@dataclass
class TermsReviewRequest:
    """A terms document sent to a recipient for review."""
    terms_id: str
    terms_name: str
    recipient_email: str
    review_token: str
    id: str = ''
    account_id: Optional[str] = None
    contact_id: Optional[str] = None
    recipient_name: Optional[str] = None
    sender_id: Optional[str] = None
    sender_email: Optional[str] = None
    sender_name: Optional[str] = None
    status: str = 'pending'
    custom_message: Optional[str] = None
    sent_at: Optional[str] = None
    viewed_at: Optional[str] = None
    responded_at: Optional[str] = None
    response_notes: Optional[str] = None
    signer_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def from_record(cls, doc: dict) -> 'TermsReviewRequest':
        return cls(**{k: doc.get(k) for k in cls.__dataclass_fields__ if k in doc})


class TermsService:
    """Service for custom terms and their review requests."""

    COLLECTION = 'custom_terms'
    REVIEWS = 'terms_review_requests'
    SEARCH_FIELDS = ('name', 'description', 'content')
    SORT_FIELDS = {'name', 'is_default', 'created_at', 'updated_at'}
    LEDGER_SEARCH_FIELDS = ('recipient_email', 'recipient_name', 'terms_name', 'sender_name', 'sender_email')
    LEDGER_SORT_FIELDS = {'sent_at', 'viewed_at', 'responded_at', 'status', 'recipient_email', 'terms_name'}
    LEDGER_CSV_HEADERS = [
        'Terms', 'Recipient Email', 'Recipient Name', 'Sender', 'Status',
        'Sent', 'Viewed', 'Responded', 'Response Notes',
    ]

    def __init__(self, store: DocumentStore, review_base_url: str, list_limit: int = 500):
        self.store = store
        self.review_base_url = review_base_url.rstrip('/')
        self.list_limit = list_limit

    # ===== TERMS =====

    def list_terms(
        self,
        q: Optional[str] = None,
        is_active: Optional[bool] = None,
        sort: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> list[CustomTerms]:
        docs = search(self.store.list(self.COLLECTION), q, self.SEARCH_FIELDS)
        if is_active is not None:
            docs = [d for d in docs if bool(d.get('is_active', True)) == is_active]
        docs = sort_docs(docs, sort, direction, self.SORT_FIELDS, 'updated_at')
        return [CustomTerms.from_record(d) for d in docs[:self.list_limit]]

    def get_terms(self, terms_id: str) -> CustomTerms:
        doc = self.store.get(self.COLLECTION, terms_id)
        if not doc:
            raise RecordNotFound(f"Terms '{terms_id}' not found")
        return CustomTerms.from_record(doc)

    def default_terms(self) -> Optional[CustomTerms]:
        doc = self.store.find_one(self.COLLECTION, is_default=True)
        return CustomTerms.from_record(doc) if doc else None

    def create_terms(self, data: dict) -> CustomTerms:
        fields = self._normalize(data, partial=False)
        result = self.validate_terms(fields)
        if not result.valid:
            raise ValidationFailed(result.errors)

        now = now_iso()
        terms = CustomTerms(**fields)
        terms.created_at = now
        terms.updated_at = now

        if terms.is_default:
            self._clear_default()
        terms.id = self.store.insert(self.COLLECTION, terms.to_record())["id"]
        logger.info("Created terms %s (%s)", terms.id, terms.name)
        return terms

    def update_terms(self, terms_id: str, updates: dict) -> CustomTerms:
        current = self.get_terms(terms_id)
        fields = self._normalize(updates, partial=True)

        merged = current.to_record()
        merged.update(fields)
        result = self.validate_terms(merged)
        if not result.valid:
            raise ValidationFailed(result.errors)

        if fields.get('is_default'):
            self._clear_default(exclude_id=terms_id)
        fields['updated_at'] = now_iso()
        doc = self.store.update(self.COLLECTION, terms_id, fields)
        return CustomTerms.from_record(doc)

    def delete_terms(self, terms_id: str) -> bool:
        if not self.store.delete(self.COLLECTION, terms_id):
            raise RecordNotFound(f"Terms '{terms_id}' not found")
        logger.info("Deleted terms %s", terms_id)
        return True

    def validate_terms(self, fields: dict) -> ValidationResult:
        result = ValidationResult(valid=True)
        if not fields.get('name'):
            result.add_error("Name is required")
        if not fields.get('content'):
            result.add_error("Content is required")
        return result

    def _clear_default(self, exclude_id: Optional[str] = None):
        cleared = self.store.update_many(
            self.COLLECTION,
            lambda d: d.get('is_default') and d.get('id') != exclude_id,
            {'is_default': False},
        )
        if cleared:
            logger.info("Cleared default flag on %d terms", cleared)

    def _normalize(self, raw: dict, partial: bool) -> dict:
        out = {}

        def present(key):
            return key in raw if partial else True

        if present('name'):
            out['name'] = clean_str(raw.get('name')) or ''
        if present('description'):
            out['description'] = clean_str(raw.get('description'))
        if present('content'):
            out['content'] = clean_str(raw.get('content')) or ''
        if present('is_default'):
            out['is_default'] = bool(raw.get('is_default'))
        if present('account_ids'):
            ids = raw.get('account_ids')
            out['account_ids'] = [str(i).strip() for i in ids if str(i).strip()] if isinstance(ids, list) else []
        if present('is_active'):
            out['is_active'] = bool(raw['is_active']) if raw.get('is_active') is not None else True
        return out

    # ===== REVIEW REQUESTS =====

    def review_url(self, token: str) -> str:
        return f"{self.review_base_url}/terms/review/{token}"

    def send_for_review(
        self,
        terms_id: str,
        recipient_email: str,
        sender_id: Optional[str] = None,
        sender_email: Optional[str] = None,
        sender_name: Optional[str] = None,
        recipient_name: Optional[str] = None,
        account_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        custom_message: Optional[str] = None,
    ) -> TermsReviewRequest:
        """Create a pending review request for a terms document."""
        recipient_email = (recipient_email or '').strip().lower()
        if not recipient_email or '@' not in recipient_email:
            raise ValidationFailed(["A valid recipient email is required"])

        terms = self.get_terms(terms_id)

        now = now_iso()
        request = TermsReviewRequest(
            terms_id=terms.id,
            terms_name=terms.name,
            recipient_email=recipient_email,
            recipient_name=clean_str(recipient_name),
            review_token=secrets.token_urlsafe(24),
            account_id=clean_str(account_id),
            contact_id=clean_str(contact_id),
            sender_id=sender_id,
            sender_email=sender_email,
            sender_name=sender_name,
            custom_message=clean_str(custom_message),
            status='pending',
            sent_at=now,
            created_at=now,
            updated_at=now,
        )
        request.id = self.store.insert(self.REVIEWS, request.to_record())["id"]
        logger.info(
            "Terms '%s' sent for review to %s: %s",
            terms.name, recipient_email, self.review_url(request.review_token),
        )
        return request

    def _get_by_token(self, token: str) -> TermsReviewRequest:
        doc = self.store.find_one(self.REVIEWS, review_token=token)
        if not doc:
            raise RecordNotFound("Review request not found")
        return TermsReviewRequest.from_record(doc)

    def open_review(self, token: str) -> tuple[TermsReviewRequest, CustomTerms]:
        """Fetch a review by token, marking it viewed on first open."""
        request = self._get_by_token(token)
        terms = self.get_terms(request.terms_id)

        if request.status == 'pending':
            now = now_iso()
            request.status = 'viewed'
            request.viewed_at = now
            request.updated_at = now
            self.store.update(self.REVIEWS, request.id, {
                'status': 'viewed', 'viewed_at': now, 'updated_at': now,
            })
        return request, terms

    def respond(
        self,
        token: str,
        action: str,
        notes: Optional[str] = None,
        signer_name: Optional[str] = None,
    ) -> TermsReviewRequest:
        """Approve or reject a review request. A request can be answered once."""
        if action not in REVIEW_ACTIONS:
            raise ValidationFailed([f"Action must be one of: {', '.join(REVIEW_ACTIONS)}"])

        request = self._get_by_token(token)
        if request.status in ('approved', 'rejected'):
            raise ValidationFailed(["Review request has already been responded to"])

        now = now_iso()
        fields = {
            'status': REVIEW_ACTIONS[action],
            'responded_at': now,
            'response_notes': clean_str(notes),
            'signer_name': clean_str(signer_name),
            'updated_at': now,
        }
        doc = self.store.update(self.REVIEWS, request.id, fields)
        logger.info(
            "Terms review %s %s by %s",
            request.id, fields['status'], signer_name or request.recipient_name or request.recipient_email,
        )
        return TermsReviewRequest.from_record(doc)

    def ledger(
        self,
        q: Optional[str] = None,
        status: Optional[str] = None,
        sort: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> list[TermsReviewRequest]:
        """All review requests, filtered and sorted (default: newest sent first)."""
        docs = search(self.store.list(self.REVIEWS), q, self.LEDGER_SEARCH_FIELDS)
        if status:
            docs = [d for d in docs if d.get('status') == status]
        docs = sort_docs(docs, sort, direction, self.LEDGER_SORT_FIELDS, 'sent_at')
        return [TermsReviewRequest.from_record(d) for d in docs[:self.list_limit]]

    def ledger_csv(self, rows: list[TermsReviewRequest]) -> str:
        """Render ledger rows as CSV with every cell quoted."""
        out = io.StringIO()
        writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator='\n')
        writer.writerow(self.LEDGER_CSV_HEADERS)
        for r in rows:
            writer.writerow([
                r.terms_name or '',
                r.recipient_email or '',
                r.recipient_name or '',
                r.sender_name or r.sender_email or '',
                r.status or '',
                r.sent_at or '',
                r.viewed_at or '',
                r.responded_at or '',
                r.response_notes or '',
            ])
        return out.getvalue()
