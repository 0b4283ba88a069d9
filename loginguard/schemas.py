"""登录接口的请求模型与客户端信息。"""

from dataclasses import dataclass
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator


class LoginRequest(BaseModel):
    """POST /auth/login 的请求体。

    同时接受旧字段名 email / password / hcaptchaToken。
    """
    model_config = ConfigDict(extra='ignore')

    identifier: EmailStr = Field(
        ..., validation_alias=AliasChoices('identifier', 'email'),
        description="Account email address"
    )
    secret: str = Field(
        ..., min_length=1, max_length=1024,
        validation_alias=AliasChoices('secret', 'password'),
    )
    captcha_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('captchaToken', 'hcaptchaToken'),
        description="Only required when the risk check asks for it"
    )

    @field_validator('identifier')
    @classmethod
    def lower_identifier(cls, value):
        return value.lower()

    @field_validator('captcha_token')
    @classmethod
    def blank_token_is_missing(cls, value):
        if value is not None and not value.strip():
            return None
        return value


@dataclass
class ClientInfo:
    ip_address: str = 'unknown'
    user_agent: str = 'unknown'
    accept_language: str = 'unknown'
    referer: str = 'direct'
    timezone: str = 'unknown'
    attestation_token: Optional[str] = None
