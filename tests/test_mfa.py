import base64
import time

import pyotp
import pytest

from biovote.authentication.mfa import MFAService

# Example secret for testing (do not use in production)
TEST_SECRET = 'JBSWY3DPEHPK3PXP'


@pytest.fixture
def mfa_service():
    return MFAService(issuer_name="Test Voting")


def test_generate_secret_key(mfa_service):
    secret = mfa_service.generate_secret_key()
    assert isinstance(secret, str)
    assert len(secret) >= 16
    assert secret != mfa_service.generate_secret_key()


def test_get_totp_uri(mfa_service):
    uri = mfa_service.get_totp_uri('returning.officer', TEST_SECRET)
    assert uri.startswith('otpauth://totp/')
    assert 'returning.officer' in uri
    assert 'issuer=Test%20Voting' in uri
    assert TEST_SECRET in uri


def test_generate_qr_code_is_png(mfa_service):
    png = base64.b64decode(mfa_service.generate_qr_code(TEST_SECRET, 'returning.officer'))
    assert png.startswith(b'\x89PNG')


def test_verify_totp_valid(mfa_service):
    assert mfa_service.verify_totp(TEST_SECRET, pyotp.TOTP(TEST_SECRET).now()) is True


def test_verify_totp_tolerates_one_step_of_drift(mfa_service):
    previous = pyotp.TOTP(TEST_SECRET).at(int(time.time()) - 30)
    assert mfa_service.verify_totp(TEST_SECRET, previous) is True
    assert mfa_service.verify_totp(TEST_SECRET, previous, window=0) is False


@pytest.mark.parametrize("secret,token", [
    (TEST_SECRET, None),
    (TEST_SECRET, ''),
    (None, '123456'),
])
def test_verify_totp_missing_inputs(mfa_service, secret, token):
    assert mfa_service.verify_totp(secret, token) is False
