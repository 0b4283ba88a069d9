"""身份提供方：校验邮箱/密码，成功时签发会话令牌。"""

from dataclasses import dataclass
from typing import Optional, Protocol

from flask import current_app
from itsdangerous import BadSignature, URLSafeTimedSerializer

from loginguard.models import IdentityAccount

SESSION_SALT = 'loginguard-session'


@dataclass
class VerificationResult:
    success: bool
    account_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    email_verified: bool = False
    avatar_url: Optional[str] = None
    session_token: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def error(self):
        return {
            'code': self.error_code or 'INVALID_CREDENTIALS',
            'message': self.error_message or 'Invalid email or password',
        }


class CredentialVerifier(Protocol):
    def verify(self, identifier: str, secret: str) -> VerificationResult: ...


def session_serializer(secret_key):
    return URLSafeTimedSerializer(secret_key, salt=SESSION_SALT)


def load_session_token(token, secret_key, max_age=None):
    """解析会话令牌，无效或过期时返回 None。"""
    try:
        return session_serializer(secret_key).loads(token, max_age=max_age)
    except BadSignature:
        return None


class LocalCredentialVerifier:
    def __init__(self, secret_key=None):
        self.secret_key = secret_key

    def verify(self, identifier, secret):
        account = IdentityAccount.query.filter_by(email=identifier.lower()).first()
        if account is None or not account.check_password(secret):
            return VerificationResult(
                success=False,
                error_code='INVALID_CREDENTIALS',
                error_message='Invalid email or password',
            )
        if account.disabled:
            return VerificationResult(
                success=False,
                error_code='ACCOUNT_DISABLED',
                error_message='This account has been disabled',
            )
        secret_key = self.secret_key or current_app.config['SECRET_KEY']
        token = session_serializer(secret_key).dumps({'uid': account.id, 'email': account.email})
        return VerificationResult(
            success=True,
            account_id=account.id,
            email=account.email,
            display_name=account.display_name,
            email_verified=bool(account.email_verified),
            avatar_url=account.avatar_url,
            session_token=token,
        )
