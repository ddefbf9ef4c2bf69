# biovote/authentication/mfa.py

import pyotp
import qrcode
from io import BytesIO
import base64

# TOTP second factor for administrator sign-in


class MFAService:
    def __init__(self, issuer_name="Fingerprint Voting System"):
        self.issuer_name = issuer_name

    def generate_secret_key(self):
        """Generate a base32 secret key for TOTP"""
        return pyotp.random_base32()

    def get_totp_uri(self, username, secret):
        """Return the otpauth URI for TOTP setup"""
        totp = pyotp.TOTP(secret)
        return totp.provisioning_uri(name=username, issuer_name=self.issuer_name)

    def generate_qr_code(self, secret, username):
        """Base64 PNG of the provisioning URI, for scanning into an authenticator app"""
        qr = qrcode.QRCode(box_size=6, border=2)
        qr.add_data(self.get_totp_uri(username, secret))
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffered = BytesIO()
        img.save(buffered, format="PNG")
        return base64.b64encode(buffered.getvalue()).decode()

    def verify_totp(self, secret, token, window=1):
        """Verify a TOTP token; window=1 tolerates one step of clock drift"""
        if not secret or not token:
            return False
        totp = pyotp.TOTP(secret)
        return totp.verify(token, valid_window=window)
