"""
Session Service - login sessions and per-user preferences.

Sessions are keyed by their token id (jti). A revoked or unknown jti never
authenticates.
"""
import logging
import secrets
from dataclasses import dataclass, asdict
from typing import Literal, Optional

from pydantic import BaseModel, ValidationError

from ..storage.document_store import DocumentStore
from .base import ValidationFailed, clean_str, now_iso

logger = logging.getLogger(__name__)


@dataclass
class Session:
    jti: str
    user_id: str
    email: str
    id: str = ''
    name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[str] = None
    last_used_at: Optional[str] = None
    revoked: bool = False

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def from_record(cls, doc: dict) -> 'Session':
        return cls(**{k: doc[k] for k in cls.__dataclass_fields__ if k in doc})

    @property
    def actor(self) -> dict:
        """Who is acting, for audit fields."""
        return {'user_id': self.user_id, 'email': self.email, 'name': self.name}


class Preferences(BaseModel):
    """User interface preferences. Every field is optional."""
    theme: Optional[Literal['light', 'dark']] = None
    layout: Optional[Literal['default', 'compact']] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None
    date_format: Optional[Literal['MM/DD/YYYY', 'DD/MM/YYYY', 'YYYY-MM-DD']] = None
    time_format: Optional[Literal['12h', '24h']] = None
    email_notifications: Optional[bool] = None


class SessionService:
    """Service for sessions and preferences."""

    COLLECTION = 'sessions'
    PREFERENCES = 'preferences'

    def __init__(self, store: DocumentStore):
        self.store = store

    # ===== SESSIONS =====

    def create_session(
        self,
        user_id: str,
        email: str,
        name: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        jti: Optional[str] = None,
    ) -> Session:
        if not clean_str(user_id) or not clean_str(email):
            raise ValidationFailed(["User id and email are required"])

        now = now_iso()
        session = Session(
            jti=jti or secrets.token_urlsafe(32),
            user_id=user_id,
            email=email.strip().lower(),
            name=clean_str(name),
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
            last_used_at=now,
        )
        session.id = self.store.insert(self.COLLECTION, session.to_record())["id"]
        logger.info("Created session for %s", session.email)
        return session

    def get_session(self, jti: str) -> Optional[Session]:
        doc = self.store.find_one(self.COLLECTION, jti=jti)
        return Session.from_record(doc) if doc else None

    def touch(self, jti: str) -> bool:
        """Bump last_used_at on an active session."""
        return bool(self.store.update_many(
            self.COLLECTION,
            lambda d: d.get('jti') == jti and not d.get('revoked'),
            {'last_used_at': now_iso()},
        ))

    def revoke(self, jti: str, user_id: str) -> bool:
        """Revoke one of the user's own sessions. False when nothing was revoked."""
        revoked = self.store.update_many(
            self.COLLECTION,
            lambda d: d.get('jti') == jti and d.get('user_id') == user_id and not d.get('revoked'),
            {'revoked': True},
        )
        if revoked:
            logger.info("Revoked session for user %s", user_id)
        return bool(revoked)

    def revoke_all(self, user_id: str, exclude_jti: Optional[str] = None) -> int:
        """Revoke every active session of a user, optionally keeping one."""
        count = self.store.update_many(
            self.COLLECTION,
            lambda d: (
                d.get('user_id') == user_id
                and not d.get('revoked')
                and (exclude_jti is None or d.get('jti') != exclude_jti)
            ),
            {'revoked': True},
        )
        logger.info("Revoked %d sessions for user %s", count, user_id)
        return count

    def list_user_sessions(self, user_id: str) -> list[Session]:
        docs = [
            d for d in self.store.list(self.COLLECTION)
            if d.get('user_id') == user_id and not d.get('revoked')
        ]
        docs.sort(key=lambda d: d.get('last_used_at') or '', reverse=True)
        return [Session.from_record(d) for d in docs]

    def is_revoked(self, jti: str) -> bool:
        session = self.get_session(jti)
        return session is None or session.revoked

    # ===== PREFERENCES =====

    def get_preferences(self, user_id: str) -> dict:
        doc = self.store.find_one(self.PREFERENCES, user_id=user_id)
        return dict(doc.get('data') or {}) if doc else {}

    def save_preferences(self, user_id: str, data: dict) -> dict:
        """Validate and store a user's preferences, replacing what was there."""
        try:
            prefs = Preferences.model_validate(data or {})
        except ValidationError as e:
            raise ValidationFailed([
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]) from e

        values = prefs.model_dump(exclude_none=True)
        now = now_iso()
        existing = self.store.find_one(self.PREFERENCES, user_id=user_id)
        if existing:
            self.store.update(self.PREFERENCES, existing['id'], {'data': values, 'updated_at': now})
        else:
            self.store.insert(self.PREFERENCES, {
                'user_id': user_id, 'data': values, 'created_at': now, 'updated_at': now,
            })
        return values
