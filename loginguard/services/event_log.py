"""登录尝试与安全事件的存储接口及其 SQLAlchemy 实现。"""

import functools
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from flask import current_app, has_app_context

from loginguard import db
from loginguard.models import LoginAttempt, SecurityEvent

LOGIN_CATEGORY = 'login'
# 凭据已通过，只是资料同步失败，不计入失败次数
NON_FAILURE_ACTIONS = ('login_db_sync_failed',)


class Partition(str, Enum):
    ADDRESS = 'ip_address'
    EMAIL = 'identifier'
    DEVICE = 'device_fingerprint'


class EventLogStore(Protocol):
    def count_login_failures(self, partition: Partition, value: str, since) -> int: ...

    def count_security_events(self, categories: Sequence[str], ip_address: str, since) -> int: ...

    def recent_login_attempts(self, ip_address: str, since, limit: int) -> List[LoginAttempt]: ...

    def most_recent_successful_login(self, account_id: str, device_fingerprint: Optional[str] = None,
                                     ip_address: Optional[str] = None) -> Optional[LoginAttempt]: ...

    def count_successful_logins(self, account_id: str) -> int: ...

    def append_login_attempt(self, **fields) -> LoginAttempt: ...

    def append_security_event(self, **fields) -> SecurityEvent: ...

    def close(self) -> None: ...


def with_app_context(method):
    """工作线程中没有应用上下文时，为本次调用推入一个。"""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if has_app_context():
            return method(self, *args, **kwargs)
        with self.app.app_context():
            return method(self, *args, **kwargs)
    return wrapper


class SqlEventLogStore:
    def __init__(self, app=None):
        self.app = app or current_app._get_current_object()

    def _login_query(self):
        return LoginAttempt.query.filter(LoginAttempt.event_category == LOGIN_CATEGORY)

    @with_app_context
    def count_login_failures(self, partition, value, since):
        column = getattr(LoginAttempt, Partition(partition).value)
        return self._login_query().filter(
            column == value,
            LoginAttempt.was_successful.is_(False),
            LoginAttempt.action.notin_(NON_FAILURE_ACTIONS),
            LoginAttempt.timestamp >= since,
        ).count()

    @with_app_context
    def count_security_events(self, categories, ip_address, since):
        return SecurityEvent.query.filter(
            SecurityEvent.ip_address == ip_address,
            SecurityEvent.event_type.in_(list(categories)),
            SecurityEvent.timestamp >= since,
        ).count()

    @with_app_context
    def recent_login_attempts(self, ip_address, since, limit):
        return self._login_query().filter(
            LoginAttempt.ip_address == ip_address,
            LoginAttempt.timestamp >= since,
        ).order_by(LoginAttempt.timestamp.desc(), LoginAttempt.id.desc()).limit(limit).all()

    @with_app_context
    def most_recent_successful_login(self, account_id, device_fingerprint=None, ip_address=None):
        query = self._login_query().filter(
            LoginAttempt.account_id == account_id,
            LoginAttempt.was_successful.is_(True),
        )
        if device_fingerprint is not None:
            query = query.filter(LoginAttempt.device_fingerprint == device_fingerprint)
        if ip_address is not None:
            query = query.filter(LoginAttempt.ip_address == ip_address)
        return query.order_by(LoginAttempt.timestamp.desc(), LoginAttempt.id.desc()).first()

    @with_app_context
    def count_successful_logins(self, account_id):
        return self._login_query().filter(
            LoginAttempt.account_id == account_id,
            LoginAttempt.was_successful.is_(True),
        ).count()

    @with_app_context
    def append_login_attempt(self, **fields):
        record = LoginAttempt(**fields)
        db.session.add(record)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return record

    @with_app_context
    def append_security_event(self, **fields):
        record = SecurityEvent(**fields)
        db.session.add(record)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return record

    def close(self):
        if has_app_context():
            db.session.remove()
