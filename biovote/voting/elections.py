# biovote/voting/elections.py

import logging

from sqlalchemy import case, exists, select, update

from biovote import db
from biovote.database.models import Candidate, Election, Vote, Voter
from biovote.errors import NotFound

logger = logging.getLogger(__name__)


class ElectionService:
    def list_elections(self):
        return db.session.query(Election).order_by(Election.start_date.desc()).all()

    def get_election(self, election_id):
        election = db.session.get(Election, election_id)
        if election is None:
            raise NotFound("Election not found")
        return election

    def get_active(self):
        return db.session.query(Election).filter_by(is_active=True).first()

    def create_election(self, title, start_date, end_date, description=None):
        election = Election(
            title=title,
            description=description,
            start_date=start_date,
            end_date=end_date,
            is_active=False,
        )
        db.session.add(election)
        db.session.commit()
        logger.info("Created election %s", election.id)
        return election

    def add_candidate(self, election_id, name, party, position, bio=None, image_url=None):
        self.get_election(election_id)
        candidate = Candidate(
            election_id=election_id,
            name=name,
            party=party,
            position=position,
            bio=bio,
            image_url=image_url,
        )
        db.session.add(candidate)
        db.session.commit()
        return candidate

    def set_active(self, election_id):
        """Make ``election_id`` the only active election.

        A single UPDATE flips every row, so no reader ever sees zero or two
        active elections. In the same transaction each voter's has_voted flag
        is recomputed against the newly active election.
        """
        self.get_election(election_id)

        db.session.execute(
            update(Election)
            .values(is_active=case((Election.id == election_id, True), else_=False))
            .execution_options(synchronize_session=False)
        )
        voted_here = exists(
            select(Vote.id).where(Vote.voter_id == Voter.id, Vote.election_id == election_id)
        )
        db.session.execute(
            update(Voter)
            .values(has_voted=case((voted_here, True), else_=False))
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        logger.info("Election %s is now the active election", election_id)
        return self.get_election(election_id)
