import pytest
from flask import Flask
from flask_jwt_extended import JWTManager, create_access_token

from biovote.authentication import rbac
from biovote.errors import BioVoteError


@pytest.mark.parametrize("role,permission,allowed", [
    ("voter", "vote", True),
    ("voter", "view_own_status", True),
    ("voter", "manage_elections", False),
    ("admin", "manage_candidates", True),
    ("admin", "vote", False),
    ("ADMIN ", "view_results", True),
    ("commissioner", "vote", False),
    ("voter", "not_a_permission", False),
])
def test_has_permission(role, permission, allowed):
    assert rbac.rbac_service.has_permission(role, permission) is allowed


@pytest.fixture
def protected_app():
    app = Flask(__name__)
    app.config['JWT_SECRET_KEY'] = "rbac-test-secret-with-enough-length"
    JWTManager(app)

    @app.errorhandler(BioVoteError)
    def handle(error):
        return {"error": error.message}, error.status_code

    @app.route("/ballot")
    @rbac.require_permission(rbac.Permission.VOTE)
    def ballot():
        return "ok"

    return app


def token_for(app, role):
    with app.app_context():
        return create_access_token(identity="someone", additional_claims={"role": role} if role else None)


def test_require_permission_allows(protected_app):
    token = token_for(protected_app, "voter")
    with protected_app.test_client() as client:
        resp = client.get("/ballot", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200


@pytest.mark.parametrize("role", ["admin", None])
def test_require_permission_denies(protected_app, role):
    token = token_for(protected_app, role)
    with protected_app.test_client() as client:
        resp = client.get("/ballot", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Insufficient role for this operation"}
