# biovote/authentication/ceremony.py

# WebAuthn registration and authentication ceremonies.
#
#   begin_*    -> options issued, challenge stored in the ledger
#   complete_* -> challenge consumed, response verified, store updated,
#                 outcome forwarded to the risk annotation sink
#
# Signature and attestation checks are delegated to py_webauthn; relying
# party matching and the signature counter policy are enforced here so each
# failure surfaces as its own error type.

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import (
    base64url_to_bytes,
    bytes_to_base64url,
    parse_attestation_object,
    parse_authenticator_data,
)
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from biovote.authentication.challenge_ledger import AUTHENTICATION, REGISTRATION
from biovote.errors import (
    BioVoteError,
    ChallengeExpiredOrMissing,
    CounterReuseDetected,
    DuplicateCredential,
    NoCredentialsRegistered,
    OriginMismatch,
    SignatureInvalid,
    UnknownCredential,
    VoterNotFound,
)
from biovote.risk.annotation_sink import AUTHENTICATION_METHOD, REGISTRATION_METHOD
from biovote.schemas import RequestContext

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = [
    COSEAlgorithmIdentifier.ECDSA_SHA_256,
    COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
]

# Anything py_webauthn raises for a malformed or forged response
VERIFICATION_ERRORS = (
    WebAuthnException,
    ValueError,
    KeyError,
    TypeError,
)

FAILURE_REASONS = {
    VoterNotFound: "voter_not_found",
    ChallengeExpiredOrMissing: "challenge_expired_or_missing",
    UnknownCredential: "unknown_credential",
    OriginMismatch: "origin_mismatch",
    SignatureInvalid: "signature_invalid",
    CounterReuseDetected: "counter_reuse",
    DuplicateCredential: "duplicate_credential",
}


def failure_reason(error):
    for error_type, reason in FAILURE_REASONS.items():
        if isinstance(error, error_type):
            return reason
    return type(error).__name__


def counter_advanced(stored_counter, new_counter):
    """True when ``new_counter`` is acceptable after ``stored_counter``.

    Authenticators that do not track usage report 0 every time; 0 after 0 is
    the only non-increasing sequence allowed.
    """
    if new_counter == 0 and stored_counter == 0:
        return True
    return new_counter > stored_counter


@dataclass(frozen=True)
class RelyingParty:
    name: str
    id: str
    origin: str
    timeout: int = 60000

    @classmethod
    def from_config(cls, config):
        return cls(
            name=config['WEBAUTHN_RP_NAME'],
            id=config['WEBAUTHN_RP_ID'],
            origin=config['WEBAUTHN_ORIGIN'],
            timeout=config.get('WEBAUTHN_TIMEOUT_MS', 60000),
        )


@dataclass
class CeremonyResult:
    verified: bool
    voter: object
    authenticator: object
    ai_verification: Optional[object] = None

    def to_dict(self):
        body = {"success": True, "verified": self.verified}
        if self.ai_verification is not None:
            body["aiVerification"] = self.ai_verification.to_dict()
        return body


def _descriptor(authenticator):
    transports = []
    for value in authenticator.transports or []:
        try:
            transports.append(AuthenticatorTransport(value))
        except ValueError:
            logger.debug("Skipping unknown transport %r", value)
    return PublicKeyCredentialDescriptor(
        id=base64url_to_bytes(authenticator.credential_id),
        transports=transports or None,
    )


def _response_transports(response):
    transports = (response.get("response") or {}).get("transports")
    if isinstance(transports, list):
        transports = [t for t in transports if isinstance(t, str)]
    return transports or ["internal"]


class CeremonyEngine:
    def __init__(self, credential_store, challenge_ledger, risk_sink, relying_party=None):
        self.credential_store = credential_store
        self.challenge_ledger = challenge_ledger
        self.risk_sink = risk_sink
        self._relying_party = relying_party

    @property
    def relying_party(self):
        return self._relying_party or RelyingParty.from_config(current_app.config)

    # Registration

    def begin_registration(self, voter, existing_authenticators=None):
        if existing_authenticators is None:
            existing_authenticators = self.credential_store.get_authenticators(voter.id)
        rp = self.relying_party
        challenge = self.challenge_ledger.issue(voter.id, REGISTRATION)
        options = generate_registration_options(
            rp_id=rp.id,
            rp_name=rp.name,
            user_id=voter.id.encode(),
            user_name=voter.name,
            user_display_name=voter.name,
            challenge=base64url_to_bytes(challenge.challenge),
            timeout=rp.timeout,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment.PLATFORM,
                resident_key=ResidentKeyRequirement.DISCOURAGED,
                user_verification=UserVerificationRequirement.REQUIRED,
            ),
            exclude_credentials=[_descriptor(a) for a in existing_authenticators],
            supported_pub_key_algs=SUPPORTED_ALGORITHMS,
        )
        logger.info("Registration options issued for voter %s", voter.id)
        return json.loads(options_to_json(options))

    def complete_registration(self, voter_id, response, context=None):
        context = context or RequestContext()
        try:
            voter = self.credential_store.get_voter(voter_id)
            challenge = self.challenge_ledger.consume(voter_id, REGISTRATION)
            rp = self.relying_party
            self._check_relying_party(response, rp, registration=True)
            try:
                verification = verify_registration_response(
                    credential=response,
                    expected_challenge=base64url_to_bytes(challenge.challenge),
                    expected_origin=rp.origin,
                    expected_rp_id=rp.id,
                    require_user_verification=True,
                    supported_pub_key_algs=SUPPORTED_ALGORITHMS,
                )
            except VERIFICATION_ERRORS as e:
                logger.info("Registration response rejected for voter %s: %s", voter_id, e)
                raise SignatureInvalid("Registration verification failed")

            credential_id = bytes_to_base64url(verification.credential_id)
            authenticator = self.credential_store.add_authenticator(
                voter_id,
                credential_id,
                verification.credential_public_key,
                verification.sign_count,
                _response_transports(response),
            )
        except BioVoteError as e:
            self.risk_sink.record_failure(voter_id, REGISTRATION_METHOD, context, failure_reason(e))
            raise
        except Exception:
            logger.exception("Registration ceremony failed for voter %s", voter_id)
            self.risk_sink.record_failure(voter_id, REGISTRATION_METHOD, context, "internal_error")
            raise

        assessment = self.risk_sink.record_success(
            voter_id,
            REGISTRATION_METHOD,
            context,
            {
                "credentialID": credential_id,
                "counter": verification.sign_count,
                "deviceType": "platform",
            },
        )
        return CeremonyResult(True, voter, authenticator, assessment)

    # Authentication

    def begin_authentication(self, voter):
        authenticators = self.credential_store.get_authenticators(voter.id)
        if not authenticators:
            raise NoCredentialsRegistered()
        rp = self.relying_party
        challenge = self.challenge_ledger.issue(voter.id, AUTHENTICATION)
        options = generate_authentication_options(
            rp_id=rp.id,
            challenge=base64url_to_bytes(challenge.challenge),
            timeout=rp.timeout,
            allow_credentials=[_descriptor(a) for a in authenticators],
            user_verification=UserVerificationRequirement.REQUIRED,
        )
        logger.info("Authentication options issued for voter %s", voter.id)
        return json.loads(options_to_json(options))

    def complete_authentication(self, voter_id, response, context=None):
        context = context or RequestContext()
        counter_detail = {}
        try:
            voter = self.credential_store.get_voter(voter_id)
            challenge = self.challenge_ledger.consume(voter_id, AUTHENTICATION)
            # Stored ids are unpadded base64url
            credential_id = str(response.get("id") or "").rstrip("=")
            response = dict(response, id=credential_id)
            authenticator = self.credential_store.find_authenticator(voter_id, credential_id)
            if authenticator is None:
                raise UnknownCredential()

            rp = self.relying_party
            self._check_relying_party(response, rp, registration=False)
            try:
                # The counter policy is applied below, so the library check is neutralised with 0
                verification = verify_authentication_response(
                    credential=response,
                    expected_challenge=base64url_to_bytes(challenge.challenge),
                    expected_rp_id=rp.id,
                    expected_origin=rp.origin,
                    credential_public_key=authenticator.credential_public_key,
                    credential_current_sign_count=0,
                    require_user_verification=True,
                )
            except VERIFICATION_ERRORS as e:
                logger.info("Assertion rejected for voter %s: %s", voter_id, e)
                raise SignatureInvalid("Authentication verification failed")

            new_counter = verification.new_sign_count
            counter_detail = {
                "credentialID": authenticator.credential_id,
                "storedCounter": authenticator.counter,
                "reportedCounter": new_counter,
            }
            if not counter_advanced(authenticator.counter, new_counter):
                raise CounterReuseDetected()
            authenticator = self.credential_store.update_counter(authenticator.id, new_counter)
        except BioVoteError as e:
            self.risk_sink.record_failure(
                voter_id, AUTHENTICATION_METHOD, context, failure_reason(e), detail=counter_detail,
            )
            raise
        except Exception:
            logger.exception("Authentication ceremony failed for voter %s", voter_id)
            self.risk_sink.record_failure(voter_id, AUTHENTICATION_METHOD, context, "internal_error")
            raise

        assessment = self.risk_sink.record_success(
            voter_id,
            AUTHENTICATION_METHOD,
            context,
            {
                "credentialID": authenticator.credential_id,
                "counter": new_counter,
                "deviceType": "platform",
            },
        )
        return CeremonyResult(True, voter, authenticator, assessment)

    def _check_relying_party(self, response, rp, registration):
        payload = response.get("response") or {}
        try:
            client_data = json.loads(base64url_to_bytes(payload["clientDataJSON"]))
            if registration:
                auth_data = parse_attestation_object(base64url_to_bytes(payload["attestationObject"])).auth_data
            else:
                auth_data = parse_authenticator_data(base64url_to_bytes(payload["authenticatorData"]))
        except VERIFICATION_ERRORS as e:
            logger.info("Malformed credential response: %s", e)
            raise SignatureInvalid("Malformed credential response")

        if not isinstance(client_data, dict) or client_data.get("origin") != rp.origin:
            raise OriginMismatch()
        if auth_data.rp_id_hash != hashlib.sha256(rp.id.encode()).digest():
            raise OriginMismatch()
