# loginguard/rba/challenge_gate.py

import logging
from dataclasses import dataclass
from typing import Optional

from loginguard.rba.risk_scorer import RiskLevel
from loginguard.services.attestation import AttestationResult

LOG = logging.getLogger(__name__)

LOGIN_ACTION = 'login'
CAPTCHA_ACTION = 'user_login'

PROCEED = 'proceed'
CAPTCHA_REQUIRED = 'captcha_required'
CAPTCHA_FAILED = 'captcha_failed'


@dataclass
class GateDecision:
    outcome: str
    attestation_verified: bool
    captcha_verified: bool = False
    error_detail: Optional[str] = None

    @property
    def proceed(self):
        return self.outcome == PROCEED


class ChallengeGate:
    """在凭据校验之前决定是否需要（以及是否通过）验证码。

    除返回的决定外没有副作用，不写审计记录。
    """

    def __init__(self, captcha_service, attestation_service, enforce_attestation=True):
        self.captcha_service = captcha_service
        self.attestation_service = attestation_service
        self.enforce_attestation = enforce_attestation

    def check_attestation(self, token):
        try:
            return self.attestation_service.check_for_action(LOGIN_ACTION, token)
        except Exception as e:
            LOG.warning("应用完整性校验出错，视为失败: %s", e)
            return AttestationResult(success=False, error=str(e))

    def evaluate(self, assessment, captcha_token=None, attestation_token=None, remote_ip=None):
        """
        :param assessment: RiskAssessment，完整性校验失败时会被就地升级
        :return: GateDecision
        """
        attestation = self.check_attestation(attestation_token)
        if not attestation.success and self.enforce_attestation:
            assessment.escalate(RiskLevel.HIGH, 'Attestation check failed')

        if assessment.requires_captcha and not captcha_token:
            return GateDecision(CAPTCHA_REQUIRED, attestation_verified=attestation.success)

        if not captcha_token:
            return GateDecision(PROCEED, attestation_verified=attestation.success)

        try:
            result = self.captcha_service.verify(captcha_token, CAPTCHA_ACTION, remote_ip)
        except Exception as e:
            LOG.error("验证码校验服务出错: %s", e)
            return GateDecision(CAPTCHA_FAILED, attestation_verified=attestation.success,
                                error_detail='captcha service unavailable')
        if not result.success:
            return GateDecision(CAPTCHA_FAILED, attestation_verified=attestation.success,
                                error_detail=result.error_detail)
        return GateDecision(PROCEED, attestation_verified=attestation.success,
                            captcha_verified=True)
