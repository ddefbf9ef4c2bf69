# biovote/risk/scorers.py

# Pluggable clients for the external risk-scoring collaborator.
# The annotation sink only depends on RiskScorer.score() and RiskAssessment.

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from biovote.errors import TransientExternalFailure

logger = logging.getLogger(__name__)

RISK_LEVELS = ("low", "medium", "high", "critical")
ALERT_LEVELS = ("high", "critical")
OFFLINE_FACTOR = "AI verification system offline"


@dataclass
class RiskAssessment:
    risk_level: str
    confidence: int
    risk_factors: List[str] = field(default_factory=list)
    recommendation: str = ""
    ai_analysis: str = ""

    @property
    def requires_alert(self) -> bool:
        return self.risk_level in ALERT_LEVELS

    @classmethod
    def from_payload(cls, payload: Any) -> "RiskAssessment":
        """Validate a collaborator response; malformed payloads count as unavailable."""
        if not isinstance(payload, dict):
            raise TransientExternalFailure("Risk scorer returned a non-object payload")
        risk_level = str(payload.get("riskLevel", "")).lower()
        if risk_level not in RISK_LEVELS:
            raise TransientExternalFailure(f"Risk scorer returned unknown risk level {risk_level!r}")
        try:
            confidence = float(payload.get("confidence", 0))
        except (TypeError, ValueError):
            raise TransientExternalFailure("Risk scorer returned a non-numeric confidence")
        if not math.isfinite(confidence):
            raise TransientExternalFailure("Risk scorer returned a non-finite confidence")
        confidence = int(round(confidence))
        factors = payload.get("riskFactors") or []
        if not isinstance(factors, list):
            raise TransientExternalFailure("Risk scorer returned malformed risk factors")
        return cls(
            risk_level=risk_level,
            confidence=min(max(confidence, 0), 100),
            risk_factors=[str(f) for f in factors],
            recommendation=str(payload.get("recommendation") or ""),
            ai_analysis=str(payload.get("aiAnalysis") or ""),
        )

    @classmethod
    def offline(cls, reason: str = "") -> "RiskAssessment":
        return cls(
            risk_level="medium",
            confidence=75,
            risk_factors=[OFFLINE_FACTOR],
            recommendation="Proceed with standard verification; automated risk analysis unavailable",
            ai_analysis=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riskLevel": self.risk_level,
            "confidence": self.confidence,
            "riskFactors": list(self.risk_factors),
            "recommendation": self.recommendation,
            "aiAnalysis": self.ai_analysis,
        }


class RiskScorer:
    """Interface for risk-scoring backends."""

    def score(self, verification_request: Dict[str, Any]) -> RiskAssessment:
        raise NotImplementedError


class HttpRiskScorer(RiskScorer):
    """Posts the verification request as JSON to a scoring service."""

    def __init__(self, url: str, timeout: float = 5.0, api_key: Optional[str] = None):
        self.url = url
        self.timeout = timeout
        self.api_key = api_key

    def score(self, verification_request):
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = requests.post(self.url, json=verification_request, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Risk scorer request error: %s", e)
            raise TransientExternalFailure("Risk scorer unreachable")
        if response.status_code != 200:
            logger.warning("Risk scorer response status: %s", response.status_code)
            raise TransientExternalFailure(f"Risk scorer returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError:
            raise TransientExternalFailure("Risk scorer returned invalid JSON")
        return RiskAssessment.from_payload(payload)


class OfflineRiskScorer(RiskScorer):
    """Used when no scoring service is configured."""

    def score(self, verification_request):
        raise TransientExternalFailure("No risk scoring service configured")


def build_risk_scorer(config) -> RiskScorer:
    url = config.get("RISK_SCORING_URL")
    if not url:
        return OfflineRiskScorer()
    return HttpRiskScorer(
        url,
        timeout=config.get("RISK_SCORING_TIMEOUT", 5.0),
        api_key=config.get("RISK_SCORING_API_KEY"),
    )
