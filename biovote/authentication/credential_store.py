# biovote/authentication/credential_store.py

# Persistence of voter identities and their WebAuthn authenticators.

import logging

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from biovote import db
from biovote.database.models import Authenticator, Voter
from biovote.errors import (
    CounterReuseDetected,
    DuplicateCredential,
    DuplicateFingerprint,
    NotFound,
    VoterNotFound,
)

logger = logging.getLogger(__name__)


class CredentialStore:
    def get_voter(self, voter_id):
        voter = db.session.get(Voter, voter_id)
        if voter is None:
            raise VoterNotFound()
        return voter

    def find_voter_by_fingerprint(self, fingerprint_id):
        voter = db.session.query(Voter).filter_by(fingerprint_id=fingerprint_id).first()
        if voter is None:
            raise VoterNotFound()
        return voter

    def register_voter(self, name, fingerprint_id, email=None):
        if db.session.query(Voter.id).filter_by(fingerprint_id=fingerprint_id).first():
            raise DuplicateFingerprint()
        voter = Voter(name=name, fingerprint_id=fingerprint_id, email=email)
        db.session.add(voter)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration of the same fingerprint
            db.session.rollback()
            raise DuplicateFingerprint()
        logger.info("Registered voter %s", voter.id)
        return voter

    def get_authenticators(self, user_id):
        return (
            db.session.query(Authenticator)
            .filter_by(voter_id=user_id)
            .order_by(Authenticator.created_at)
            .all()
        )

    def find_authenticator(self, user_id, credential_id):
        return (
            db.session.query(Authenticator)
            .filter_by(voter_id=user_id, credential_id=credential_id)
            .first()
        )

    def add_authenticator(self, user_id, credential_id, public_key, counter, transports):
        if db.session.query(Authenticator.id).filter_by(credential_id=credential_id).first():
            raise DuplicateCredential()
        authenticator = Authenticator(
            voter_id=user_id,
            credential_id=credential_id,
            credential_public_key=public_key,
            counter=counter,
            transports=list(transports or []),
        )
        db.session.add(authenticator)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateCredential()
        logger.info("Stored authenticator %s for voter %s", authenticator.id, user_id)
        return authenticator

    def update_counter(self, authenticator_id, new_counter):
        """Advance the stored signature counter.

        The update only applies while the stored value is still lower than
        ``new_counter`` (or both are the non-tracking value 0), so two
        assertions racing on the same authenticator cannot both succeed.
        """
        advances = Authenticator.counter < new_counter
        if new_counter == 0:
            advances = or_(advances, Authenticator.counter == 0)
        result = db.session.execute(
            update(Authenticator)
            .where(Authenticator.id == authenticator_id)
            .where(advances)
            .values(counter=new_counter)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            db.session.commit()
            authenticator = db.session.get(Authenticator, authenticator_id)
            db.session.refresh(authenticator)
            return authenticator

        db.session.rollback()
        if db.session.get(Authenticator, authenticator_id) is None:
            raise NotFound("Authenticator not found")
        raise CounterReuseDetected()
