import os
import tempfile

# The application reads its configuration at import time
_TMP_DIR = tempfile.mkdtemp(prefix="biovote-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(_TMP_DIR, "biovote.db"))
os.environ.setdefault("AUDIT_LOG_DIR", os.path.join(_TMP_DIR, "logs"))
os.environ.setdefault("RATELIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-with-enough-length")
os.environ.setdefault("WEBAUTHN_RP_ID", "localhost")
os.environ.setdefault("WEBAUTHN_ORIGIN", "http://localhost:3000")
os.environ.pop("RISK_SCORING_URL", None)

import hashlib
import json
import secrets
import struct
from datetime import datetime, timedelta

import cbor2
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from webauthn.helpers import bytes_to_base64url

from biovote import app as flask_app
from biovote import db
from biovote.authentication.ceremony import CeremonyEngine, RelyingParty
from biovote.authentication.challenge_ledger import ChallengeLedger
from biovote.authentication.credential_store import CredentialStore
from biovote.database.models import Candidate, Election
from biovote.risk.annotation_sink import RiskAnnotationSink
from biovote.risk.scorers import RiskAssessment, RiskScorer

RP_ID = "localhost"
ORIGIN = "http://localhost:3000"

FLAG_UP = 0x01
FLAG_UV = 0x04
FLAG_AT = 0x40


class SoftAuthenticator:
    """A software platform authenticator producing genuinely signed WebAuthn responses."""

    def __init__(self, rp_id=RP_ID, origin=ORIGIN, sign_count=0):
        self.rp_id = rp_id
        self.origin = origin
        self.sign_count = sign_count
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.credential_id = secrets.token_bytes(16)

    @property
    def credential_id_b64(self):
        return bytes_to_base64url(self.credential_id)

    def cose_public_key(self):
        numbers = self.private_key.public_key().public_numbers()
        return cbor2.dumps({
            1: 2,    # kty: EC2
            3: -7,   # alg: ES256
            -1: 1,   # crv: P-256
            -2: numbers.x.to_bytes(32, "big"),
            -3: numbers.y.to_bytes(32, "big"),
        })

    def _authenticator_data(self, flags, counter, attested=b"", rp_id=None):
        rp_id_hash = hashlib.sha256((rp_id or self.rp_id).encode()).digest()
        return rp_id_hash + bytes([flags]) + struct.pack(">I", counter) + attested

    def _client_data(self, ceremony, challenge, origin=None):
        return json.dumps({
            "type": ceremony,
            "challenge": challenge,
            "origin": origin or self.origin,
            "crossOrigin": False,
        }).encode()

    def create(self, options, origin=None, rp_id=None, flags=FLAG_UP | FLAG_UV | FLAG_AT):
        client_data = self._client_data("webauthn.create", options["challenge"], origin)
        attested = (
            b"\x00" * 16
            + struct.pack(">H", len(self.credential_id))
            + self.credential_id
            + self.cose_public_key()
        )
        auth_data = self._authenticator_data(flags, self.sign_count, attested, rp_id)
        attestation_object = cbor2.dumps({"fmt": "none", "attStmt": {}, "authData": auth_data})
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "attestationObject": bytes_to_base64url(attestation_object),
                "transports": ["internal", "hybrid"],
            },
            "clientExtensionResults": {},
            "authenticatorAttachment": "platform",
        }

    def get(self, options, counter=None, origin=None, rp_id=None, flags=FLAG_UP | FLAG_UV):
        if counter is None:
            self.sign_count += 1
            counter = self.sign_count
        client_data = self._client_data("webauthn.get", options["challenge"], origin)
        auth_data = self._authenticator_data(flags, counter, rp_id=rp_id)
        signature = self.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(),
            ec.ECDSA(hashes.SHA256()),
        )
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "authenticatorData": bytes_to_base64url(auth_data),
                "signature": bytes_to_base64url(signature),
            },
            "clientExtensionResults": {},
            "authenticatorAttachment": "platform",
        }


class FixedRiskScorer(RiskScorer):
    def __init__(self, risk_level="low", confidence=92, risk_factors=None):
        self.risk_level = risk_level
        self.confidence = confidence
        self.risk_factors = risk_factors or []
        self.requests = []

    def score(self, verification_request):
        self.requests.append(verification_request)
        return RiskAssessment(
            risk_level=self.risk_level,
            confidence=self.confidence,
            risk_factors=list(self.risk_factors),
            recommendation="Allow",
            ai_analysis="Consistent device and timing",
        )


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def credential_store(app):
    return CredentialStore()


@pytest.fixture
def challenge_ledger(app):
    return ChallengeLedger()


@pytest.fixture
def risk_scorer():
    return FixedRiskScorer()


@pytest.fixture
def risk_sink(app, risk_scorer):
    return RiskAnnotationSink(scorer=risk_scorer)


@pytest.fixture
def engine(credential_store, challenge_ledger, risk_sink):
    return CeremonyEngine(
        credential_store,
        challenge_ledger,
        risk_sink,
        relying_party=RelyingParty(name="Test Voting", id=RP_ID, origin=ORIGIN),
    )


@pytest.fixture
def soft_authenticator():
    return SoftAuthenticator


@pytest.fixture
def voter(credential_store):
    return credential_store.register_voter("Ada Lovelace", "fp-ada-0001", "ada@example.com")


@pytest.fixture
def registered(engine, voter):
    """A voter with one registered soft authenticator (counter 5)."""
    authenticator = SoftAuthenticator(sign_count=5)
    options = engine.begin_registration(voter, [])
    engine.complete_registration(voter.id, authenticator.create(options))
    return voter, authenticator


@pytest.fixture
def election_factory(app):
    def make(title="General Election", active=False, candidates=("Grace Hopper", "Alan Turing")):
        now = datetime.utcnow()
        election = Election(
            title=title,
            description="Test election",
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=1),
            is_active=active,
        )
        db.session.add(election)
        db.session.flush()
        made = []
        for name in candidates:
            candidate = Candidate(name=name, party="Independent", position="President", election_id=election.id)
            db.session.add(candidate)
            made.append(candidate)
        db.session.commit()
        return election, made
    return make
