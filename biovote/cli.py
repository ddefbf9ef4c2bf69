# biovote/cli.py

# Operator commands: `flask --app biovote <command>`

import click

from biovote import app, db
from biovote.authentication.challenge_ledger import ChallengeLedger
from biovote.authentication.mfa import MFAService
from biovote.database.models import Admin
from biovote.encryption.password_hashing import PasswordHashingService


@app.cli.command('init-db')
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("Database schema created.")


@app.cli.command('create-admin')
@click.option('--username', required=True)
@click.option('--email', required=True)
@click.option('--name', required=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--mfa/--no-mfa', default=True, help="Provision a TOTP secret for the account.")
def create_admin(username, email, name, password, mfa):
    """Create an administrator account."""
    pwhash = PasswordHashingService()
    try:
        password_hash = pwhash.hash_password(password)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--password')

    if db.session.query(Admin.id).filter((Admin.username == username) | (Admin.email == email)).first():
        raise click.ClickException(f"An administrator named {username} or using {email} already exists.")

    mfa_secret = None
    if mfa:
        mfa_service = MFAService()
        mfa_secret = mfa_service.generate_secret_key()
        click.echo(f"MFA secret (for your authenticator app): {mfa_secret}")
        click.echo(f"Provisioning URI: {mfa_service.get_totp_uri(username, mfa_secret)}")
        qr = mfa_service.generate_qr_code(mfa_secret, username)
        click.echo(f"QR code (base64 PNG): {qr[:30]}...")

    admin = Admin(username=username, email=email, name=name, password_hash=password_hash, mfa_secret=mfa_secret)
    db.session.add(admin)
    db.session.commit()
    click.echo(f"Administrator {username} created.")


@app.cli.command('purge-challenges')
def purge_challenges():
    """Delete WebAuthn challenges that are past their expiry."""
    removed = ChallengeLedger().purge_expired()
    click.echo(f"Removed {removed} expired challenges.")
