# biovote/schemas.py

# Typed request payloads. InputValidator builds these from raw JSON bodies,
# so core services never see an unvalidated dict.

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CeremonyBeginRequest:
    voter_id: str


@dataclass(frozen=True)
class CeremonyCompleteRequest:
    voter_id: str
    response: Dict[str, Any]


@dataclass(frozen=True)
class VoteRequest:
    candidate_id: str
    election_id: str


@dataclass(frozen=True)
class VoterRegistrationRequest:
    name: str
    fingerprint_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class VoterLookupRequest:
    fingerprint_id: str


@dataclass(frozen=True)
class SetActiveElectionRequest:
    election_id: str


@dataclass(frozen=True)
class ElectionRequest:
    title: str
    start_date: datetime
    end_date: datetime
    description: Optional[str] = None


@dataclass(frozen=True)
class CandidateRequest:
    name: str
    party: str
    position: str
    bio: Optional[str] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class AdminLoginRequest:
    username: str
    password: str
    totp_code: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    """Client metadata attached to ceremony audit records."""
    ip_address: str = "unknown"
    user_agent: str = "unknown"
