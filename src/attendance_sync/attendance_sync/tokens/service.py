from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import io
from typing import Optional

import qrcode

from ..core.constants import PIN_MAX_DIGITS, PIN_MIN_DIGITS, PIN_TOKEN_PREFIX
from ..core.exceptions import ValidationError


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def is_pin_token(token: str) -> bool:
    return (token or "").startswith(PIN_TOKEN_PREFIX)


def pin_from_token(token: str) -> str:
    digits = token[len(PIN_TOKEN_PREFIX):]
    if not digits.isdigit() or not (PIN_MIN_DIGITS <= len(digits) <= PIN_MAX_DIGITS):
        raise ValidationError("Invalid PIN")
    return digits


def peek_subject(token: str) -> Optional[str]:
    """Subject id carried by a QR token, read WITHOUT verifying the signature.

    Offline kiosks use this to label queued events; the server verifies on push.
    """
    if not token or is_pin_token(token):
        return None
    try:
        payload = _b64url_decode(token).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    user_id, sep, _ = payload.rpartition(":")
    return user_id if sep and user_id else None


class QrTokenService:
    """HMAC-signed learner badge tokens: ``base64url("<user_id>:<b64url(hmac_sha256)>")``.

    The signature covers ``<tenant_id>:<user_id>``, so a badge issued by one tenant
    never verifies under another even when user ids collide.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("QR token secret must not be empty")
        self._secret = secret.encode("utf-8")

    def _sign(self, message: str) -> str:
        return _b64url_encode(hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).digest())

    @staticmethod
    def _message(tenant_id: str, user_id: str) -> str:
        return f"{tenant_id}:{user_id}"

    def issue(self, user_id: str, *, tenant_id: str) -> str:
        payload = f"{user_id}:{self._sign(self._message(tenant_id, str(user_id)))}"
        return _b64url_encode(payload.encode("utf-8"))

    def verify(self, token: str, *, tenant_id: str) -> str:
        """Return the subject id of a valid token; raise ValidationError otherwise."""
        try:
            payload = _b64url_decode((token or "").strip()).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            raise ValidationError("Invalid QR token")

        user_id, sep, signature = payload.rpartition(":")
        if not sep or not user_id or not signature:
            raise ValidationError("Invalid QR token")
        if not hmac.compare_digest(signature, self._sign(self._message(tenant_id, user_id))):
            raise ValidationError("Invalid or expired QR token")
        return user_id

    def pin_digest(self, pin: str) -> str:
        return hmac.new(self._secret, f"pin:{pin}".encode("utf-8"), hashlib.sha256).hexdigest()

    def render_png(self, token: str) -> bytes:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=2,
        )
        qr.add_data(token)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
