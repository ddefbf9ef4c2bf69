# biovote/routes.py

# JSON API: WebAuthn ceremonies, vote casting, voter registry, election administration.
# Handlers validate input into request structs, call the core services and let
# BioVoteError subclasses propagate to the error handler in biovote/__init__.py.

from flask import jsonify, request
from flask_jwt_extended import get_jwt_identity

from biovote import app, db, limiter
from biovote.audit.audit_logger import AuditLogger
from biovote.authentication.ceremony import CeremonyEngine
from biovote.authentication.challenge_ledger import ChallengeLedger
from biovote.authentication.credential_store import CredentialStore
from biovote.authentication.mfa import MFAService
from biovote.authentication.rbac import Permission, require_permission
from biovote.database.models import Admin
from biovote.encryption.password_hashing import PasswordHashingService
from biovote.errors import AlreadyVoted, Unauthorized
from biovote.risk.annotation_sink import RiskAnnotationSink
from biovote.schemas import RequestContext
from biovote.security.input_validator import InputValidator
from biovote.security.token_manager import TokenManager
from biovote.voting.elections import ElectionService
from biovote.voting.vote_ledger import VoteLedger

# Initialize services
audit_logger = AuditLogger(log_dir=app.config['AUDIT_LOG_DIR'])
validator = InputValidator()
credential_store = CredentialStore()
challenge_ledger = ChallengeLedger()
risk_sink = RiskAnnotationSink(audit_logger=audit_logger)
ceremony_engine = CeremonyEngine(credential_store, challenge_ledger, risk_sink)
vote_ledger = VoteLedger()
election_service = ElectionService()
token_manager = TokenManager()
mfa_service = MFAService()
password_service = PasswordHashingService()


def request_context():
    forwarded = request.headers.get('X-Forwarded-For', '')
    ip_address = forwarded.split(',')[0].strip() or request.remote_addr or 'unknown'
    return RequestContext(
        ip_address=ip_address,
        user_agent=request.headers.get('User-Agent') or 'unknown',
    )


def json_body():
    return request.get_json(silent=True)


# WebAuthn ceremonies

@app.route('/api/webauthn/register/begin', methods=['POST'])
@limiter.limit("20/minute")
def webauthn_register_begin():
    req = validator.parse_ceremony_begin(json_body())
    voter = credential_store.get_voter(req.voter_id)
    existing = credential_store.get_authenticators(voter.id)
    return jsonify(ceremony_engine.begin_registration(voter, existing))


@app.route('/api/webauthn/register/complete', methods=['POST'])
@limiter.limit("20/minute")
def webauthn_register_complete():
    req = validator.parse_ceremony_complete(json_body())
    result = ceremony_engine.complete_registration(req.voter_id, req.response, request_context())
    return jsonify(result.to_dict())


@app.route('/api/webauthn/authenticate/begin', methods=['POST'])
@limiter.limit("20/minute")
def webauthn_authenticate_begin():
    req = validator.parse_ceremony_begin(json_body())
    voter = credential_store.get_voter(req.voter_id)
    return jsonify(ceremony_engine.begin_authentication(voter))


@app.route('/api/webauthn/authenticate/complete', methods=['POST'])
@limiter.limit("20/minute")
def webauthn_authenticate_complete():
    req = validator.parse_ceremony_complete(json_body())
    result = ceremony_engine.complete_authentication(req.voter_id, req.response, request_context())
    voter = result.voter
    access_token = token_manager.issue_voter_session(voter)

    body = result.to_dict()
    body['voter'] = {'id': voter.id, 'name': voter.name, 'hasVoted': voter.has_voted}
    body['accessToken'] = access_token
    return token_manager.attach(jsonify(body), access_token)


# Voting

@app.route('/api/votes', methods=['POST'])
@limiter.limit("5/minute")
@require_permission(Permission.VOTE)
def cast_vote():
    voter_id = get_jwt_identity()
    req = validator.parse_vote(json_body())
    credential_store.get_voter(voter_id)
    try:
        vote = vote_ledger.cast_vote(voter_id, req.candidate_id, req.election_id)
    except AlreadyVoted:
        audit_logger.log_security_event('duplicate_vote_attempt', {'election_id': req.election_id}, user_id=voter_id)
        raise
    audit_logger.log_security_event('vote_cast', {'vote_id': vote.id, 'election_id': vote.election_id}, user_id=voter_id)
    return jsonify({'message': 'Vote cast successfully', 'vote': vote.to_dict()}), 201


@app.route('/api/votes', methods=['GET'])
@require_permission(Permission.VIEW_RESULTS)
def vote_results():
    election_id = validator.require_record_id(request.args.get('electionId'), 'Election ID')
    return jsonify(vote_ledger.tally(election_id))


# Voter registry

@app.route('/api/voters/register', methods=['POST'])
def register_voter():
    req = validator.parse_voter_registration(json_body())
    voter = credential_store.register_voter(req.name, req.fingerprint_id, req.email)
    return jsonify(voter.to_dict()), 201


@app.route('/api/voters/lookup', methods=['POST'])
def lookup_voter():
    req = validator.parse_voter_lookup(json_body())
    voter = credential_store.find_voter_by_fingerprint(req.fingerprint_id)
    return jsonify({'id': voter.id, 'name': voter.name, 'hasVoted': voter.has_voted})


@app.route('/api/voters/status', methods=['GET'])
@require_permission(Permission.VIEW_OWN_STATUS)
def voter_status():
    voter = credential_store.get_voter(get_jwt_identity())
    active = election_service.get_active()
    votes = vote_ledger.votes_for_voter(voter.id)
    return jsonify({
        'voter': {'id': voter.id, 'name': voter.name, 'hasVoted': voter.has_voted},
        'activeElection': active.to_dict() if active else None,
        'hasVotedInActiveElection': bool(active) and any(v.election_id == active.id for v in votes),
        'voteHistory': [
            {
                'electionTitle': v.election.title,
                'candidateName': v.candidate.name,
                'candidateParty': v.candidate.party,
                'timestamp': v.timestamp.isoformat(),
            }
            for v in votes
        ],
    })


# Administration

@app.route('/api/admin/login', methods=['POST'])
@limiter.limit("10/minute")
def admin_login():
    req = validator.parse_admin_login(json_body())
    ip = request_context().ip_address
    admin = db.session.query(Admin).filter_by(username=req.username).first()
    if not admin or not password_service.verify_password(req.password, admin.password_hash):
        audit_logger.log_security_event('admin_login_failed', {'username': req.username, 'ip': ip})
        raise Unauthorized("Invalid username or password")
    if admin.mfa_secret and not mfa_service.verify_totp(admin.mfa_secret, req.totp_code):
        audit_logger.log_security_event('admin_login_failed', {'username': req.username, 'ip': ip, 'reason': 'mfa'})
        raise Unauthorized("Invalid MFA code")

    if password_service.needs_rehash(admin.password_hash):
        try:
            admin.password_hash = password_service.hash_password(req.password)
            db.session.commit()
        except ValueError:
            app.logger.warning("Admin %s has an outdated hash but a weak password; not rehashed", admin.id)

    access_token = token_manager.issue_admin_session(admin)
    audit_logger.log_security_event('admin_login', {'ip': ip}, user_id=admin.id)
    body = {'admin': {'id': admin.id, 'name': admin.name, 'username': admin.username}, 'accessToken': access_token}
    return token_manager.attach(jsonify(body), access_token)


@app.route('/api/logout', methods=['POST'])
def logout():
    return token_manager.clear(jsonify({'logout': True}))


@app.route('/api/elections', methods=['GET'])
@require_permission(Permission.MANAGE_ELECTIONS)
def list_elections():
    return jsonify([e.to_dict() for e in election_service.list_elections()])


@app.route('/api/elections', methods=['POST'])
@require_permission(Permission.MANAGE_ELECTIONS)
def create_election():
    req = validator.parse_election(json_body())
    election = election_service.create_election(req.title, req.start_date, req.end_date, req.description)
    return jsonify(election.to_dict()), 201


@app.route('/api/elections/<election_id>/candidates', methods=['POST'])
@require_permission(Permission.MANAGE_CANDIDATES)
def add_candidate(election_id):
    req = validator.parse_candidate(json_body())
    candidate = election_service.add_candidate(
        election_id, req.name, req.party, req.position, bio=req.bio, image_url=req.image_url,
    )
    return jsonify(candidate.to_dict()), 201


@app.route('/api/elections/set-active', methods=['POST'])
@require_permission(Permission.MANAGE_ELECTIONS)
def set_active_election():
    req = validator.parse_set_active(json_body())
    election = election_service.set_active(req.election_id)
    audit_logger.log_security_event('election_activated', {'election_id': election.id}, user_id=get_jwt_identity())
    return jsonify({'message': 'Election set as active successfully', 'election': election.to_dict()})
