from __future__ import annotations

from ..core.exceptions import NotFoundError, ValidationError
from ..tokens.service import QrTokenService, is_pin_token, pin_from_token
from .model import Subject
from .repository import SubjectRepository


class SubjectService:
    def __init__(self, subjects: SubjectRepository, tokens: QrTokenService):
        self._subjects = subjects
        self._tokens = tokens

    def get(self, *, tenant_id: str, user_id: str) -> Subject:
        subject = self._subjects.get(tenant_id=tenant_id, user_id=user_id)
        if not subject or not subject.is_active:
            raise NotFoundError(f"Unknown subject {user_id}")
        return subject

    def resolve_token(self, *, tenant_id: str, token: str) -> Subject:
        """Identify the subject behind a scanned QR token or PIN entry."""
        if is_pin_token(token):
            digest = self._tokens.pin_digest(pin_from_token(token))
            subject = self._subjects.get_by_pin_digest(tenant_id=tenant_id, pin_digest=digest)
            if not subject:
                raise ValidationError("Unknown PIN")
            return subject

        user_id = self._tokens.verify(token, tenant_id=tenant_id)
        subject = self._subjects.get(tenant_id=tenant_id, user_id=user_id)
        if not subject or not subject.is_active:
            raise ValidationError("QR token does not match an active learner or staff member")
        return subject

    def badge_png(self, *, tenant_id: str, user_id: str) -> bytes:
        subject = self.get(tenant_id=tenant_id, user_id=user_id)
        return self._tokens.render_png(self._tokens.issue(subject.user_id, tenant_id=tenant_id))
