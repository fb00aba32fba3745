"""
VAPID signing identity used to authorize requests to push services.
"""

import logging
import threading
from dataclasses import dataclass, field

from pickup_push.errors import NotConfiguredError
from pickup_push.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SigningIdentity:
    """Application key pair plus the VAPID subject claim."""

    public_key: str
    private_key: str = field(repr=False)
    subject: str = "mailto:notifications@pickup.app"

    @property
    def claims(self) -> dict[str, str]:
        """Fresh claims dict per call; pywebpush adds aud/exp to what it gets."""
        return {"sub": self.subject}


def _normalize_subject(subject: str) -> str:
    subject = (subject or "").strip()
    if subject.startswith(("mailto:", "https://")):
        return subject
    return f"mailto:{subject}"


class KeyManager:
    """Builds the signing identity once from settings and hands it out.

    A missing key pair is a valid, degraded state: get_public_key() returns
    None and require_identity() raises NotConfiguredError.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._lock = threading.Lock()
        self._loaded = False
        self._identity: SigningIdentity | None = None

    def _build(self) -> SigningIdentity | None:
        public_key = (self._settings.vapid_public_key or "").strip()
        private_key = (self._settings.vapid_private_key or "").strip()
        if not public_key or not private_key:
            logger.warning("Push notifications disabled - VAPID keys not configured")
            return None
        logger.info("Push notifications enabled - VAPID keys configured")
        return SigningIdentity(
            public_key=public_key,
            private_key=private_key,
            subject=_normalize_subject(self._settings.vapid_subject),
        )

    @property
    def identity(self) -> SigningIdentity | None:
        if not self._loaded:
            with self._lock:
                if not self._loaded:
                    self._identity = self._build()
                    self._loaded = True
        return self._identity

    @property
    def configured(self) -> bool:
        return self.identity is not None

    def get_public_key(self) -> str | None:
        identity = self.identity
        return identity.public_key if identity else None

    def require_identity(self) -> SigningIdentity:
        identity = self.identity
        if identity is None:
            raise NotConfiguredError()
        return identity
