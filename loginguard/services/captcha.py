from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
from flask import current_app


@dataclass
class CaptchaResult:
    success: bool
    error_detail: Optional[str] = None


class CaptchaService(Protocol):
    def verify(self, token: str, action: str, remote_ip: Optional[str] = None) -> CaptchaResult: ...


class HCaptchaClient:
    """服务端校验 hCaptcha 令牌。"""

    def __init__(self, secret_key, verify_url='https://hcaptcha.com/siteverify', timeout=5.0):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout
        if not secret_key:
            current_app.logger.warning("hCaptcha secret key not configured. Bot protection may be limited.")

    def verify(self, token, action, remote_ip=None):
        if not self.secret_key:
            return CaptchaResult(success=False, error_detail='hCaptcha secret key not configured')

        data = {'secret': self.secret_key, 'response': token}
        if remote_ip:
            data['remoteip'] = remote_ip
        response = httpx.post(self.verify_url, data=data, timeout=self.timeout)
        response.raise_for_status()
        payload = response.json()
        if payload.get('success'):
            return CaptchaResult(success=True)
        codes = payload.get('error-codes') or []
        current_app.logger.info(f"hCaptcha rejected token for {action}: {codes}")
        return CaptchaResult(success=False, error_detail=', '.join(codes) or 'verification failed')
