# loginguard/rba/orchestrator.py

import logging
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError

from loginguard.rba.challenge_gate import CAPTCHA_REQUIRED
from loginguard.rba.concurrency import gather
from loginguard.rba.reconciler import DEFAULT_ROLE, permissions_for_role, split_display_name
from loginguard.rba.risk_scorer import RiskLevel
from loginguard.schemas import LoginRequest
from loginguard.services.device_fingerprint import derive_fingerprint
from loginguard.services.geo_ip import get_geo_location

LOG = logging.getLogger(__name__)

# 状态机各状态
RECEIVED = 'received_request'
VALIDATED = 'validated'
SCORED = 'scored'
GATE_CHECKED = 'gate_checked'
CREDENTIAL_CHECKED = 'credential_checked'
RECONCILED = 'reconciled'
AUDITED = 'audited'
# 终止状态
SUCCESS = 'success'
DEGRADED_SUCCESS = 'degraded_success'
VALIDATION_ERROR = 'validation_error'
CAPTCHA_REQUIRED_STATE = 'captcha_required'
CAPTCHA_FAILED_STATE = 'captcha_failed'
AUTH_FAILED = 'auth_failed'
INTERNAL_ERROR = 'internal_error'

SYNC_WARNING = 'Profile sync failed. Some features may be limited.'


@dataclass
class LoginOutcome:
    status: int
    body: dict
    state: str
    session_token: Optional[str] = None
    trail: list = field(default_factory=list)


def error_body(code, message, **extra):
    error = {'code': code, 'message': message}
    error.update(extra)
    return {'success': False, 'error': error}


class LoginOrchestrator:
    """把风险评分、验证码门、凭据校验、资料同步、新设备检测和审计串成完整登录流程。"""

    def __init__(self, scorer, gate, verifier, reconciler, novelty, recorder,
                 executor=None, wrap=None, teardown=()):
        self.scorer = scorer
        self.gate = gate
        self.verifier = verifier
        self.reconciler = reconciler
        self.novelty = novelty
        self.recorder = recorder
        self.executor = executor
        self.wrap = wrap
        self.teardown = list(teardown)

    def handle(self, payload, client):
        trail = [RECEIVED]
        fingerprint = derive_fingerprint(client.user_agent, client.ip_address, client.accept_language)
        try:
            outcome = self._run(payload, client, fingerprint, trail)
        except Exception as e:
            LOG.exception("登录流程出现未处理的异常")
            self.recorder.record_login_attempt(
                action='login_error',
                ip_address=client.ip_address,
                user_agent=client.user_agent,
                device_fingerprint=fingerprint,
                success=False,
                error_message=str(e),
                metadata={'errorType': type(e).__name__},
            )
            outcome = LoginOutcome(
                500,
                error_body('INTERNAL_ERROR', 'An unexpected error occurred during login'),
                INTERNAL_ERROR,
            )
        finally:
            self._close()
        trail.append(outcome.state)
        outcome.trail = trail
        return outcome

    def _close(self):
        for collaborator in self.teardown:
            try:
                collaborator.close()
            except Exception:
                LOG.exception("关闭外部连接失败: %r", collaborator)

    def _run(self, payload, client, fingerprint, trail):
        try:
            login = LoginRequest.model_validate(payload)
        except ValidationError as e:
            details = [{'loc': list(err['loc']), 'msg': err['msg']} for err in e.errors()]
            return LoginOutcome(
                400,
                error_body('VALIDATION_ERROR', 'Invalid input data', details=details),
                VALIDATION_ERROR,
            )
        trail.append(VALIDATED)

        assessment = self.scorer.assess(login.identifier, client.ip_address, fingerprint)
        trail.append(SCORED)

        decision = self.gate.evaluate(
            assessment,
            captcha_token=login.captcha_token,
            attestation_token=client.attestation_token,
            remote_ip=client.ip_address,
        )
        if not decision.proceed:
            if decision.outcome == CAPTCHA_REQUIRED:
                LOG.info("需要验证码: %s (%s)", client.ip_address, assessment.risk_level)
                return LoginOutcome(
                    429,
                    error_body('CAPTCHA_REQUIRED',
                               'Additional verification required. Please complete the captcha.',
                               requiresCaptcha=True),
                    CAPTCHA_REQUIRED_STATE,
                )
            return LoginOutcome(
                400,
                error_body('CAPTCHA_VERIFICATION_FAILED', 'Please complete the captcha verification'),
                CAPTCHA_FAILED_STATE,
            )
        trail.append(GATE_CHECKED)

        result = self.verifier.verify(login.identifier, login.secret)
        trail.append(CREDENTIAL_CHECKED)
        security_meta = {
            'riskLevel': str(assessment.risk_level),
            'captchaUsed': decision.captcha_verified,
            'attestationSuccess': decision.attestation_verified,
        }

        if not result.success:
            return self._auth_failed(login, client, fingerprint, assessment, result, security_meta)

        try:
            reconciliation, report = gather([
                lambda: self.reconciler.reconcile(
                    result.account_id, result.email or login.identifier, result.display_name,
                    result.email_verified, result.avatar_url),
                lambda: self.novelty.detect(result.account_id, fingerprint, client.ip_address),
            ], self.executor, self.wrap)
        except Exception as e:
            LOG.exception("账号 %s 资料同步失败，降级返回", result.account_id)
            return self._degraded(login, client, fingerprint, assessment, decision, result, e)
        trail.append(RECONCILED)

        self._audit_success(login, client, fingerprint, result, reconciliation, report, security_meta)
        trail.append(AUDITED)

        if not result.session_token:
            LOG.error("凭据校验成功但没有返回会话令牌: %s", result.account_id)
            return LoginOutcome(
                500,
                error_body('MISSING_SESSION_TOKEN',
                           'Authentication succeeded but session token is missing.'),
                INTERNAL_ERROR,
            )

        body = {
            'success': True,
            'data': {
                'user': self._user_summary(result, login,
                                           '{firstName} {lastName}'.format(**reconciliation.profile).strip()),
                'profile': reconciliation.profile,
                'permissions': reconciliation.permissions,
                'isNewUser': reconciliation.is_new_profile,
                'isNewDevice': report.is_new_device,
                'isNewLocation': report.is_new_location,
                'securityInfo': self._security_info(assessment, decision),
            },
        }
        return LoginOutcome(200, body, SUCCESS, session_token=result.session_token)

    def _auth_failed(self, login, client, fingerprint, assessment, result, security_meta):
        error = result.error()
        self.recorder.record_login_attempt(
            action='login_failed',
            identifier=login.identifier,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device_fingerprint=fingerprint,
            success=False,
            error_message=error['message'],
            error_code=error['code'],
            metadata=dict(security_meta, email=login.identifier, errorCode=error['code']),
        )
        self.recorder.record_security_event(
            event_type='multiple_failed_attempts',
            risk_level=max(assessment.risk_level, RiskLevel.MEDIUM),
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device_fingerprint=fingerprint,
            blocked=False,
            reason=f'Failed login attempt for {login.identifier}',
            metadata={'email': login.identifier, 'errorCode': error['code'],
                      'reasons': list(assessment.reasons)},
        )
        return LoginOutcome(401, {'success': False, 'error': error}, AUTH_FAILED)

    def _audit_success(self, login, client, fingerprint, result, reconciliation, report, security_meta):
        if reconciliation.is_new_profile:
            self.recorder.record_login_attempt(
                action='profile_created_on_login',
                event_category='profile_update',
                account_id=result.account_id,
                identifier=login.identifier,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
                device_fingerprint=fingerprint,
                success=True,
                metadata={'email': result.email, 'isNewUser': True},
            )

        if report.is_new_device:
            self.recorder.record_security_event(
                event_type='new_device_login',
                risk_level=RiskLevel.MEDIUM if report.is_new_location else RiskLevel.LOW,
                account_id=result.account_id,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
                device_fingerprint=fingerprint,
                blocked=False,
                reason='Login from new device and location' if report.is_new_location
                else 'Login from new device',
                metadata={
                    'email': result.email,
                    'deviceInfo': client.user_agent,
                    'isNewLocation': report.is_new_location,
                    'previousLoginCount': report.previous_login_count,
                    'lastLoginLocation': report.last_known_address,
                    'geo': get_geo_location(client.ip_address),
                    'attestationSuccess': security_meta['attestationSuccess'],
                },
            )

        self.recorder.record_login_attempt(
            action='login_success',
            account_id=result.account_id,
            identifier=login.identifier,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device_fingerprint=fingerprint,
            success=True,
            metadata=dict(
                security_meta,
                email=result.email,
                role=reconciliation.profile['role'],
                profileId=reconciliation.profile['id'],
                isNewUser=reconciliation.is_new_profile,
                isNewDevice=report.is_new_device,
                isNewLocation=report.is_new_location,
                sessionInfo={
                    'acceptLanguage': client.accept_language,
                    'referer': client.referer,
                    'timezone': client.timezone,
                },
            ),
        )

    def _degraded(self, login, client, fingerprint, assessment, decision, result, error):
        self.recorder.record_login_attempt(
            action='login_db_sync_failed',
            account_id=result.account_id,
            identifier=login.identifier,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device_fingerprint=fingerprint,
            success=False,
            error_message=str(error),
            metadata={'email': result.email, 'credentialsVerified': True,
                      'riskLevel': str(assessment.risk_level)},
        )
        first_name, last_name = split_display_name(result.display_name)
        body = {
            'success': True,
            'data': {
                'user': self._user_summary(result, login, result.display_name or 'User'),
                'profile': {
                    'id': 'temp',
                    'firstName': first_name,
                    'lastName': last_name,
                    'role': DEFAULT_ROLE,
                    'profileComplete': False,
                },
                'permissions': permissions_for_role(DEFAULT_ROLE),
                'securityInfo': self._security_info(assessment, decision),
                'warning': SYNC_WARNING,
            },
        }
        return LoginOutcome(200, body, DEGRADED_SUCCESS, session_token=result.session_token)

    @staticmethod
    def _user_summary(result, login, display_name):
        return {
            'uid': result.account_id,
            'email': result.email or login.identifier,
            'emailVerified': result.email_verified,
            'displayName': display_name,
        }

    @staticmethod
    def _security_info(assessment, decision):
        return {
            'riskLevel': str(assessment.risk_level),
            'attestationVerified': decision.attestation_verified,
            'captchaVerified': decision.captcha_verified,
        }
