from dataclasses import dataclass
from typing import Optional, Protocol

from itsdangerous import BadSignature, URLSafeTimedSerializer


@dataclass
class AttestationResult:
    success: bool
    error: Optional[str] = None


class AttestationService(Protocol):
    def check_for_action(self, action: str, token: Optional[str] = None) -> AttestationResult: ...


class SignedTokenAttestation:
    """校验客户端携带的应用完整性令牌。

    令牌由可信客户端用共享密钥签发，salt 为动作名，超过 max_age 视为失效。
    """

    def __init__(self, secret_key, max_age=3600):
        self.secret_key = secret_key
        self.max_age = max_age

    def issue(self, action, client_id='web'):
        return URLSafeTimedSerializer(self.secret_key, salt=action).dumps({'client': client_id})

    def check_for_action(self, action, token=None):
        if not token:
            return AttestationResult(success=False, error='No attestation token supplied')
        try:
            URLSafeTimedSerializer(self.secret_key, salt=action).loads(token, max_age=self.max_age)
        except BadSignature as e:
            return AttestationResult(success=False, error=str(e))
        return AttestationResult(success=True)

