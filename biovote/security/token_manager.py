# biovote/security/token_manager.py
from flask_jwt_extended import create_access_token, set_access_cookies, unset_jwt_cookies

from biovote.authentication.rbac import UserRole

# Session tokens for voters (after a verified WebAuthn assertion) and administrators


class TokenManager:
    def issue(self, identity: str, role: UserRole, **claims) -> str:
        claims["role"] = role.value
        return create_access_token(identity=str(identity), additional_claims=claims)

    def issue_voter_session(self, voter) -> str:
        return self.issue(voter.id, UserRole.VOTER)

    def issue_admin_session(self, admin) -> str:
        return self.issue(admin.id, UserRole.ADMIN, username=admin.username)

    def attach(self, response, token):
        set_access_cookies(response, token)
        return response

    def clear(self, response):
        unset_jwt_cookies(response)
        return response
