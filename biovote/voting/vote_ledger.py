# biovote/voting/vote_ledger.py

# Single-vote-per-election ledger. The vote row and the voter's has_voted flag
# are written in one transaction; the (voter_id, election_id) unique constraint
# is what finally decides a race between concurrent casts.

import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from biovote import db
from biovote.database.models import Candidate, Election, Vote, Voter
from biovote.errors import (
    AlreadyVoted,
    CandidateNotInElection,
    ElectionNotActive,
    NotFound,
    VoterNotFound,
)

logger = logging.getLogger(__name__)


class VoteLedger:
    def cast_vote(self, voter_id, candidate_id, election_id):
        election = db.session.get(Election, election_id)
        if election is None or not election.is_active:
            raise ElectionNotActive()

        candidate = db.session.get(Candidate, candidate_id)
        if candidate is None or candidate.election_id != election_id:
            raise CandidateNotInElection()

        if self.has_voted(voter_id, election_id):
            raise AlreadyVoted()

        vote = Vote(voter_id=voter_id, candidate_id=candidate_id, election_id=election_id)
        try:
            flipped = db.session.execute(
                update(Voter)
                .where(Voter.id == voter_id)
                .values(has_voted=True)
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                db.session.rollback()
                raise VoterNotFound()
            db.session.add(vote)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if self.has_voted(voter_id, election_id):
                raise AlreadyVoted()
            raise
        logger.info("Vote %s recorded for election %s", vote.id, election_id)
        return vote

    def has_voted(self, voter_id, election_id):
        return db.session.query(Vote.id).filter_by(voter_id=voter_id, election_id=election_id).first() is not None

    def votes_for_voter(self, voter_id):
        return (
            db.session.query(Vote)
            .filter_by(voter_id=voter_id)
            .order_by(Vote.timestamp)
            .all()
        )

    def tally(self, election_id):
        if db.session.get(Election, election_id) is None:
            raise NotFound("Election not found")

        counts = dict(
            db.session.query(Vote.candidate_id, func.count(Vote.id))
            .filter(Vote.election_id == election_id)
            .group_by(Vote.candidate_id)
            .all()
        )
        total = sum(counts.values())
        candidates = (
            db.session.query(Candidate)
            .filter_by(election_id=election_id)
            .order_by(Candidate.name)
            .all()
        )
        results = []
        for candidate in candidates:
            votes = counts.get(candidate.id, 0)
            results.append({
                'id': candidate.id,
                'name': candidate.name,
                'party': candidate.party,
                'votes': votes,
                'percentage': round(votes / total * 100, 1) if total else 0,
            })
        return {'totalVotes': total, 'candidates': results}
