# biovote/authentication/challenge_ledger.py

# One-time WebAuthn challenges with a fixed five minute lifetime.

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import delete
from webauthn.helpers import bytes_to_base64url

from biovote import db
from biovote.database.models import WebAuthnChallenge
from biovote.errors import NoValidChallenge, ValidationError

logger = logging.getLogger(__name__)

REGISTRATION = "registration"
AUTHENTICATION = "authentication"
CEREMONY_TYPES = (REGISTRATION, AUTHENTICATION)


class ChallengeLedger:
    def __init__(self, ttl_minutes=5, challenge_bytes=32):
        """
        ttl_minutes: lifetime of an issued challenge
        challenge_bytes: bytes of randomness per challenge (at least 16)
        """
        if challenge_bytes < 16:
            raise ValueError("Challenges need at least 16 bytes of randomness")
        self.ttl = timedelta(minutes=ttl_minutes)
        self.challenge_bytes = challenge_bytes

    def _now(self):
        # extracted for easier monkeypatching in tests
        return datetime.utcnow()

    def _check_type(self, ceremony_type):
        if ceremony_type not in CEREMONY_TYPES:
            raise ValidationError(f"Unknown ceremony type: {ceremony_type}")

    def issue(self, user_id, ceremony_type):
        self._check_type(ceremony_type)
        now = self._now()
        challenge = WebAuthnChallenge(
            challenge=bytes_to_base64url(secrets.token_bytes(self.challenge_bytes)),
            user_id=user_id,
            type=ceremony_type,
            created_at=now,
            expires_at=now + self.ttl,
        )
        db.session.add(challenge)
        db.session.commit()
        logger.debug("Issued %s challenge %s for %s", ceremony_type, challenge.id, user_id)
        return challenge

    def consume(self, user_id, ceremony_type):
        """Claim the newest unexpired challenge of ``ceremony_type`` for ``user_id``.

        The row is deleted as part of the claim; a delete that affects no rows
        means a concurrent request claimed it first. Missing and expired
        challenges both raise ``NoValidChallenge``.
        """
        self._check_type(ceremony_type)
        candidate = (
            db.session.query(WebAuthnChallenge)
            .filter(
                WebAuthnChallenge.user_id == user_id,
                WebAuthnChallenge.type == ceremony_type,
                WebAuthnChallenge.expires_at > self._now(),
            )
            .order_by(WebAuthnChallenge.created_at.desc(), WebAuthnChallenge.id.desc())
            .first()
        )
        if candidate is None:
            db.session.rollback()
            raise NoValidChallenge()

        # Detach first so the returned record keeps its loaded values after commit
        db.session.expunge(candidate)
        result = db.session.execute(
            delete(WebAuthnChallenge)
            .where(WebAuthnChallenge.id == candidate.id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise NoValidChallenge()
        db.session.commit()
        return candidate

    def purge_expired(self):
        result = db.session.execute(
            delete(WebAuthnChallenge)
            .where(WebAuthnChallenge.expires_at <= self._now())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        logger.info("Purged %d expired challenges", result.rowcount)
        return result.rowcount
