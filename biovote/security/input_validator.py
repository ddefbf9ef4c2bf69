# biovote/security/input_validator.py

import re
import html
import bleach
from datetime import datetime, timezone

from biovote.errors import ValidationError
from biovote.schemas import (
    AdminLoginRequest,
    CandidateRequest,
    CeremonyBeginRequest,
    CeremonyCompleteRequest,
    ElectionRequest,
    SetActiveElectionRequest,
    VoteRequest,
    VoterLookupRequest,
    VoterRegistrationRequest,
)

# Boundary validation: raw JSON bodies in, typed request structs out.
# Free-text fields are escaped and stripped of markup before they reach the database.


class InputValidator:
    def __init__(self):
        self.allowed_html_tags = []
        self.allowed_html_attributes = {}

        self.patterns = {
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'),
            'record_id': re.compile(r'^[A-Za-z0-9_-]{1,64}$'),
            'base64url': re.compile(r'^[A-Za-z0-9_-]+={0,2}$'),
            'username': re.compile(r'^[A-Za-z0-9_.-]{3,64}$'),
            'totp': re.compile(r'^\d{6}$'),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
            'xss_event': re.compile(r'\bon\w+\s*=', re.IGNORECASE)
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise ValidationError("Input must be a string")
        if len(input_str) > max_length:
            input_str = input_str[:max_length]

        sanitized = re.sub(self.patterns['xss_script'], '', input_str)
        sanitized = re.sub(self.patterns['xss_event'], '', sanitized)
        sanitized = bleach.clean(sanitized, tags=self.allowed_html_tags, attributes=self.allowed_html_attributes, strip=True)
        # bleach leaves entities escaped; store plain text
        return html.unescape(sanitized).strip()

    def validate_email(self, email):
        return isinstance(email, str) and bool(self.patterns['email'].match(email))

    def validate_record_id(self, record_id):
        return isinstance(record_id, str) and bool(self.patterns['record_id'].match(record_id))

    # Field helpers

    def _require_object(self, payload):
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        return payload

    def _require_id(self, payload, key, label):
        return self.require_record_id(payload.get(key), label)

    def require_record_id(self, value, label):
        if not value:
            raise ValidationError(f"{label} is required")
        if not self.validate_record_id(value):
            raise ValidationError(f"Invalid {label}")
        return value

    def _require_text(self, payload, key, label, min_length=1, max_length=255):
        value = payload.get(key)
        if not isinstance(value, str):
            raise ValidationError(f"{label} is required")
        value = self.sanitize_string(value, max_length=max_length)
        if len(value) < min_length:
            raise ValidationError(f"{label} must be at least {min_length} characters")
        return value

    def _optional_text(self, payload, key, max_length=2000):
        value = payload.get(key)
        if value is None or value == '':
            return None
        if not isinstance(value, str):
            raise ValidationError(f"Invalid {key}")
        return self.sanitize_string(value, max_length=max_length) or None

    def _require_datetime(self, payload, key, label):
        value = payload.get(key)
        if not isinstance(value, str):
            raise ValidationError(f"{label} is required")
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"Invalid {label} format")
        # Stored as naive UTC
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    # Request structs

    def parse_ceremony_begin(self, payload):
        payload = self._require_object(payload)
        return CeremonyBeginRequest(voter_id=self._require_id(payload, 'voterId', 'Voter ID'))

    def parse_ceremony_complete(self, payload):
        payload = self._require_object(payload)
        voter_id = payload.get('voterId')
        response = payload.get('response')
        if not voter_id or not response:
            raise ValidationError("Voter ID and response are required")
        if not self.validate_record_id(voter_id):
            raise ValidationError("Invalid Voter ID")
        self.validate_credential_response(response)
        return CeremonyCompleteRequest(voter_id=voter_id, response=response)

    def validate_credential_response(self, response):
        if not isinstance(response, dict):
            raise ValidationError("Credential response must be an object")
        for key in ('id', 'rawId'):
            value = response.get(key)
            if not isinstance(value, str) or not self.patterns['base64url'].match(value):
                raise ValidationError(f"Credential response has an invalid {key}")
        if response.get('type') != 'public-key':
            raise ValidationError("Credential response type must be public-key")
        if not isinstance(response.get('response'), dict):
            raise ValidationError("Credential response is missing its response object")
        return response

    def parse_vote(self, payload):
        payload = self._require_object(payload)
        return VoteRequest(
            candidate_id=self._require_id(payload, 'candidateId', 'Candidate ID'),
            election_id=self._require_id(payload, 'electionId', 'Election ID'),
        )

    def parse_voter_registration(self, payload):
        payload = self._require_object(payload)
        name = self._require_text(payload, 'name', 'Name', min_length=2, max_length=100)
        fingerprint_id = payload.get('fingerprintId')
        if not isinstance(fingerprint_id, str) or len(fingerprint_id.strip()) < 5:
            raise ValidationError("Fingerprint ID must be at least 5 characters")
        if len(fingerprint_id) > 128:
            raise ValidationError("Fingerprint ID is too long")
        email = payload.get('email')
        if email in (None, ''):
            email = None
        elif not self.validate_email(email):
            raise ValidationError("Invalid email")
        return VoterRegistrationRequest(name=name, fingerprint_id=fingerprint_id.strip(), email=email)

    def parse_voter_lookup(self, payload):
        payload = self._require_object(payload)
        fingerprint_id = payload.get('fingerprintId')
        if not isinstance(fingerprint_id, str) or not fingerprint_id.strip():
            raise ValidationError("Fingerprint ID is required")
        return VoterLookupRequest(fingerprint_id=fingerprint_id.strip())

    def parse_set_active(self, payload):
        payload = self._require_object(payload)
        return SetActiveElectionRequest(election_id=self._require_id(payload, 'electionId', 'Election ID'))

    def parse_election(self, payload):
        payload = self._require_object(payload)
        start_date = self._require_datetime(payload, 'startDate', 'start date')
        end_date = self._require_datetime(payload, 'endDate', 'end date')
        if end_date <= start_date:
            raise ValidationError("End date must be after start date")
        return ElectionRequest(
            title=self._require_text(payload, 'title', 'Title', min_length=3, max_length=200),
            description=self._optional_text(payload, 'description'),
            start_date=start_date,
            end_date=end_date,
        )

    def parse_candidate(self, payload):
        payload = self._require_object(payload)
        return CandidateRequest(
            name=self._require_text(payload, 'name', 'Name', min_length=2, max_length=100),
            party=self._require_text(payload, 'party', 'Party', max_length=100),
            position=self._require_text(payload, 'position', 'Position', max_length=100),
            bio=self._optional_text(payload, 'bio'),
            image_url=self._optional_text(payload, 'imageUrl', max_length=500),
        )

    def parse_admin_login(self, payload):
        payload = self._require_object(payload)
        username = payload.get('username')
        password = payload.get('password')
        if not isinstance(username, str) or not self.patterns['username'].match(username):
            raise ValidationError("Invalid username or password")
        if not isinstance(password, str) or not password:
            raise ValidationError("Invalid username or password")
        totp_code = payload.get('totpCode')
        if totp_code is not None and (not isinstance(totp_code, str) or not self.patterns['totp'].match(totp_code)):
            raise ValidationError("Invalid MFA code format")
        return AdminLoginRequest(username=username, password=password, totp_code=totp_code)
