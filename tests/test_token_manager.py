# tests/test_token_manager.py
from types import SimpleNamespace

import pytest
from flask_jwt_extended import decode_token

from biovote.security.token_manager import TokenManager


@pytest.fixture
def token_manager(app):
    return TokenManager()


def test_voter_session_carries_role(token_manager):
    claims = decode_token(token_manager.issue_voter_session(SimpleNamespace(id="voter-1")))
    assert claims["sub"] == "voter-1"
    assert claims["role"] == "voter"


def test_admin_session_carries_role_and_username(token_manager):
    token = token_manager.issue_admin_session(SimpleNamespace(id="admin-1", username="returning.officer"))
    claims = decode_token(token)
    assert claims["sub"] == "admin-1"
    assert claims["role"] == "admin"
    assert claims["username"] == "returning.officer"


def test_attach_and_clear_cookies(app, token_manager):
    token = token_manager.issue_voter_session(SimpleNamespace(id="voter-1"))
    with app.test_request_context():
        response = token_manager.attach(app.response_class("{}"), token)
        assert "access_token_cookie=" + token in response.headers.get("Set-Cookie")

        cleared = token_manager.clear(app.response_class("{}"))
        assert "access_token_cookie=;" in cleared.headers.get("Set-Cookie")
