# biovote/database/models.py

import uuid
from datetime import datetime

from biovote import db

# Database schema for voters, administrators, authenticators, ceremonies, elections and audit records


def _uuid():
    return str(uuid.uuid4())


class Voter(db.Model):
    __tablename__ = 'voters'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(254), nullable=True)
    has_voted = db.Column(db.Boolean, nullable=False, default=False)
    fingerprint_id = db.Column(db.String(128), unique=True, nullable=False)  # legacy lookup handle
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    authenticators = db.relationship('Authenticator', backref='voter', lazy=True)
    votes = db.relationship('Vote', backref='voter', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'fingerprintId': self.fingerprint_id,
            'hasVoted': self.has_voted,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class Admin(db.Model):
    __tablename__ = 'admins'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    username = db.Column(db.String(64), unique=True, nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)  # Argon2id
    mfa_secret = db.Column(db.String(64), nullable=True)  # TOTP secret, optional second factor
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Authenticator(db.Model):
    __tablename__ = 'authenticators'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    voter_id = db.Column(db.String(36), db.ForeignKey('voters.id'), nullable=False, index=True)
    credential_id = db.Column(db.String(512), unique=True, nullable=False)  # base64url, unique per RP
    credential_public_key = db.Column(db.LargeBinary, nullable=False)  # COSE-encoded
    counter = db.Column(db.BigInteger, nullable=False, default=0)
    transports = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Authenticator {self.credential_id} of Voter {self.voter_id}>'


class WebAuthnChallenge(db.Model):
    __tablename__ = 'webauthn_challenges'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    challenge = db.Column(db.String(128), unique=True, nullable=False)  # base64url
    user_id = db.Column(db.String(36), nullable=False)
    type = db.Column(db.String(20), nullable=False)  # registration | authentication
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_webauthn_challenges_user_type', 'user_id', 'type'),
    )


class Election(db.Model):
    __tablename__ = 'elections'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    candidates = db.relationship('Candidate', backref='election', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'startDate': self.start_date.isoformat(),
            'endDate': self.end_date.isoformat(),
            'isActive': self.is_active,
        }


class Candidate(db.Model):
    __tablename__ = 'candidates'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False)
    party = db.Column(db.String(100), nullable=False)
    position = db.Column(db.String(100), nullable=False)
    bio = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    election_id = db.Column(db.String(36), db.ForeignKey('elections.id'), nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'party': self.party,
            'position': self.position,
            'bio': self.bio,
            'imageUrl': self.image_url,
            'electionId': self.election_id,
        }


class Vote(db.Model):
    __tablename__ = 'votes'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    voter_id = db.Column(db.String(36), db.ForeignKey('voters.id'), nullable=False)
    candidate_id = db.Column(db.String(36), db.ForeignKey('candidates.id'), nullable=False)
    election_id = db.Column(db.String(36), db.ForeignKey('elections.id'), nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)

    candidate = db.relationship('Candidate', lazy=True)
    election = db.relationship('Election', lazy=True)

    # One vote per voter per election, enforced by the store rather than by a prior read
    __table_args__ = (
        db.UniqueConstraint('voter_id', 'election_id', name='uq_votes_voter_election'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'voterId': self.voter_id,
            'candidateId': self.candidate_id,
            'electionId': self.election_id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f'<Vote {self.id} by Voter {self.voter_id}>'


class VerificationLog(db.Model):
    __tablename__ = 'verification_logs'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    method = db.Column(db.String(50), nullable=False)
    success = db.Column(db.Boolean, nullable=False)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    ai_verification = db.Column(db.JSON, nullable=True)  # risk annotation, stored verbatim
    failure_reason = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class SecurityAlert(db.Model):
    __tablename__ = 'security_alerts'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)
    severity = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text, nullable=False)
    alert_metadata = db.Column('metadata', db.JSON, nullable=True)
    resolved = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
