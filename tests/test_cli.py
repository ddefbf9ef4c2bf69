from datetime import datetime, timedelta

from biovote import db
from biovote.database.models import Admin, WebAuthnChallenge
from biovote.encryption.password_hashing import PasswordHashingService


def test_create_admin_without_mfa(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "create-admin", "--username", "returning.officer", "--email", "officer@example.com",
        "--name", "Returning Officer", "--password", "Returning0fficer!", "--no-mfa",
    ])

    assert result.exit_code == 0, result.output
    admin = db.session.query(Admin).filter_by(username="returning.officer").one()
    assert admin.mfa_secret is None
    assert PasswordHashingService().verify_password("Returning0fficer!", admin.password_hash)


def test_create_admin_with_mfa_prints_secret(app):
    result = app.test_cli_runner().invoke(args=[
        "create-admin", "--username", "returning.officer", "--email", "officer@example.com",
        "--name", "Returning Officer", "--password", "Returning0fficer!",
    ])

    assert result.exit_code == 0, result.output
    admin = db.session.query(Admin).filter_by(username="returning.officer").one()
    assert admin.mfa_secret in result.output
    assert "otpauth://totp/" in result.output


def test_create_admin_rejects_weak_password(app):
    result = app.test_cli_runner().invoke(args=[
        "create-admin", "--username", "returning.officer", "--email", "officer@example.com",
        "--name", "Returning Officer", "--password", "weak", "--no-mfa",
    ])
    assert result.exit_code != 0
    assert db.session.query(Admin).count() == 0


def test_purge_challenges(app):
    now = datetime.utcnow()
    db.session.add(WebAuthnChallenge(
        challenge="c3RhbGU", user_id="voter-1", type="registration",
        created_at=now - timedelta(minutes=10), expires_at=now - timedelta(minutes=5),
    ))
    db.session.add(WebAuthnChallenge(
        challenge="ZnJlc2g", user_id="voter-1", type="registration",
        created_at=now, expires_at=now + timedelta(minutes=5),
    ))
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["purge-challenges"])
    assert "Removed 1 expired challenges." in result.output
    assert db.session.query(WebAuthnChallenge).count() == 1
