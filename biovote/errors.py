# biovote/errors.py

# Error taxonomy shared by the ceremony engine, the ledgers and the HTTP layer.
# Every class carries the HTTP status the transport layer renders it with.


class BioVoteError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BioVoteError):
    status_code = 400
    default_message = "Invalid input"


class Unauthorized(BioVoteError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(BioVoteError):
    status_code = 404
    default_message = "Not found"


class Conflict(BioVoteError):
    status_code = 409
    default_message = "Conflict"


class CryptographicVerificationFailure(BioVoteError):
    status_code = 400
    default_message = "Verification failed"


class TransientExternalFailure(BioVoteError):
    status_code = 503
    default_message = "External service unavailable"


# Identity and credential records

class VoterNotFound(NotFound):
    default_message = "Voter not found"


class DuplicateFingerprint(Conflict):
    default_message = "Fingerprint already registered"


class DuplicateCredential(Conflict):
    default_message = "Credential already registered"


class UnknownCredential(NotFound):
    default_message = "Authenticator not found"


class NoCredentialsRegistered(ValidationError):
    default_message = "No authenticators registered for this voter"


# Ceremonies

class ChallengeExpiredOrMissing(NotFound):
    # Never issued and expired are deliberately reported the same way.
    default_message = "No valid challenge found"


NoValidChallenge = ChallengeExpiredOrMissing


class SignatureInvalid(CryptographicVerificationFailure):
    default_message = "Signature verification failed"


class OriginMismatch(CryptographicVerificationFailure):
    default_message = "Origin or relying party mismatch"


class CounterReuseDetected(CryptographicVerificationFailure):
    status_code = 401
    default_message = "Authenticator counter did not increase"


# Voting

class ElectionNotActive(ValidationError):
    default_message = "Election is not active"


class CandidateNotInElection(NotFound):
    default_message = "Candidate not found or does not belong to the specified election"


class AlreadyVoted(Conflict):
    default_message = "You have already voted in this election"
