# biovote/audit/audit_logger.py

import os
import json
import hashlib
import base64
import logging
import threading
from datetime import datetime
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

# Tamper-evident security event trail: JSON lines, SHA-256 hash chain, Ed25519 signature per entry.
# Complements the VerificationLog/SecurityAlert tables with an append-only file outside the database.

logger = logging.getLogger(__name__)


class AuditLogger:
    def __init__(self, log_dir='logs', signing_key=None):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, 'audit.log')
        self.previous_hash = None
        self._lock = threading.Lock()

        os.makedirs(log_dir, exist_ok=True)

        self.signing_key = signing_key or Ed25519PrivateKey.generate()
        self._load_previous_hash()

    def _load_previous_hash(self):
        if not os.path.exists(self.log_file):
            return
        with open(self.log_file, 'r') as f:
            lines = [line for line in f if line.strip()]
        if lines:
            try:
                self.previous_hash = json.loads(lines[-1]).get('hash')
            except json.JSONDecodeError:
                logger.warning("Last audit entry in %s is unreadable; starting a new chain", self.log_file)
                self.previous_hash = None

    def log_security_event(self, event_type, data, user_id=None):
        # Audit write failures are reported but never abort the request that triggered them
        with self._lock:
            try:
                log_entry = {
                    "timestamp": datetime.utcnow().isoformat(),
                    "event_type": event_type,
                    "data": data,
                    "user_id": user_id,
                    "previous_hash": self.previous_hash,
                }
                entry_json = json.dumps(log_entry, sort_keys=True)
                entry_hash = hashlib.sha256(entry_json.encode()).hexdigest()
                log_entry['hash'] = entry_hash

                signature = self.signing_key.sign(entry_json.encode())
                log_entry['signature'] = base64.b64encode(signature).decode()

                with open(self.log_file, 'a') as f:
                    f.write(json.dumps(log_entry) + "\n")

                self.previous_hash = entry_hash
            except (OSError, TypeError, ValueError):
                logger.exception("Audit log write failed for event %s", event_type)

    def verify_log_integrity(self):
        if not os.path.exists(self.log_file):
            return True
        public_key = self.signing_key.public_key()
        previous_hash = None
        try:
            with open(self.log_file, 'r') as f:
                for line in f:
                    if not line.strip():
                        continue
                    log_entry = json.loads(line)
                    if log_entry.get('previous_hash') != previous_hash:
                        return False
                    entry_copy = dict(log_entry)
                    signature = base64.b64decode(entry_copy.pop('signature'))
                    entry_hash = entry_copy.pop('hash')
                    entry_json = json.dumps(entry_copy, sort_keys=True)
                    if hashlib.sha256(entry_json.encode()).hexdigest() != entry_hash:
                        return False
                    public_key.verify(signature, entry_json.encode())
                    previous_hash = entry_hash
        except (KeyError, ValueError, InvalidSignature):
            return False
        return True
