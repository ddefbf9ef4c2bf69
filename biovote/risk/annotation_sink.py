# biovote/risk/annotation_sink.py

# Records ceremony outcomes as VerificationLog rows, attaches the external risk
# annotation to successful ones and raises SecurityAlerts for high/critical risk.
# Risk scoring is consumed here, never computed.

import logging
from datetime import datetime

from flask import current_app

from biovote import db
from biovote.database.models import SecurityAlert, VerificationLog
from biovote.errors import TransientExternalFailure
from biovote.risk.scorers import RiskAssessment, build_risk_scorer

logger = logging.getLogger(__name__)

REGISTRATION_METHOD = "webauthn_registration"
AUTHENTICATION_METHOD = "webauthn_authentication"

_ALERT_TYPES = {
    REGISTRATION_METHOD: ("suspicious_registration", "registration"),
    AUTHENTICATION_METHOD: ("suspicious_authentication", "authentication"),
}


class RiskAnnotationSink:
    def __init__(self, scorer=None, audit_logger=None, history_size=5):
        self._scorer = scorer
        self.audit_logger = audit_logger
        self.history_size = history_size

    @property
    def scorer(self):
        # Built from configuration per call unless one was injected
        return self._scorer or build_risk_scorer(current_app.config)

    def recent_authentications(self, user_id):
        rows = (
            db.session.query(VerificationLog)
            .filter_by(user_id=user_id, method=AUTHENTICATION_METHOD, success=True)
            .order_by(VerificationLog.created_at.desc(), VerificationLog.id.desc())
            .limit(self.history_size)
            .all()
        )
        return [
            {
                "createdAt": row.created_at.isoformat(),
                "ipAddress": row.ip_address,
                "userAgent": row.user_agent,
            }
            for row in rows
        ]

    def build_request(self, user_id, method, context, credential_data):
        payload = {
            "method": method,
            "userAgent": context.user_agent,
            "ipAddress": context.ip_address,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "credentialData": credential_data,
        }
        if method == AUTHENTICATION_METHOD:
            payload["previousAuthentications"] = self.recent_authentications(user_id)
        return payload

    def assess(self, verification_request):
        try:
            return self.scorer.score(verification_request)
        except TransientExternalFailure as e:
            logger.warning("Risk scoring unavailable, continuing without it: %s", e.message)
            return RiskAssessment.offline(e.message)
        except Exception:
            logger.exception("Risk scorer failed, continuing without it")
            return RiskAssessment.offline("Risk scorer error")

    def record_success(self, user_id, method, context, credential_data):
        """Score a successful ceremony, persist the annotation verbatim and alert if needed."""
        assessment = self.assess(self.build_request(user_id, method, context, credential_data))

        db.session.add(VerificationLog(
            user_id=user_id,
            method=method,
            success=True,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            ai_verification=assessment.to_dict(),
        ))
        if assessment.requires_alert:
            alert_type, label = _ALERT_TYPES[method]
            self._add_alert(
                user_id,
                alert_type,
                assessment.risk_level,
                f"High-risk WebAuthn {label} detected: {assessment.recommendation}",
                {
                    "confidence": assessment.confidence,
                    "riskFactors": assessment.risk_factors,
                    "aiAnalysis": assessment.ai_analysis,
                },
            )
        db.session.commit()
        return assessment

    def record_failure(self, user_id, method, context, reason, detail=None):
        # Discard whatever the failed step left pending; the audit row must commit on its own
        db.session.rollback()
        db.session.add(VerificationLog(
            user_id=user_id,
            method=method,
            success=False,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            failure_reason=reason,
        ))
        if reason == "counter_reuse":
            self._add_alert(
                user_id,
                "cloned_authenticator",
                "critical",
                "Authenticator signature counter did not increase; the credential may be cloned",
                detail or {},
            )
        db.session.commit()
        if self.audit_logger:
            self.audit_logger.log_security_event(
                'ceremony_failed',
                {'method': method, 'reason': reason, 'ip': context.ip_address},
                user_id=user_id,
            )

    def _add_alert(self, user_id, alert_type, severity, description, metadata):
        db.session.add(SecurityAlert(
            user_id=user_id,
            type=alert_type,
            severity=severity,
            description=description,
            alert_metadata=metadata,
        ))
        logger.warning("Security alert %s (%s) for %s", alert_type, severity, user_id)
        if self.audit_logger:
            self.audit_logger.log_security_event(
                'security_alert',
                {'type': alert_type, 'severity': severity},
                user_id=user_id,
            )
