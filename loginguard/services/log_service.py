from flask import current_app


class AuditRecorder:
    """写入登录尝试与安全事件记录。

    两种写入都是尽力而为：存储出错只记日志，不向调用方抛出，
    审计失败绝不能让登录本身失败。
    """

    def __init__(self, store):
        self.store = store

    def record_login_attempt(self, action, ip_address, user_agent, device_fingerprint,
                             success, account_id=None, identifier=None, error_message=None,
                             error_code=None, metadata=None, event_category='login'):
        try:
            return self.store.append_login_attempt(
                account_id=account_id,
                event_category=event_category,
                action=action,
                identifier=identifier,
                ip_address=ip_address,
                user_agent=user_agent,
                device_fingerprint=device_fingerprint,
                was_successful=success,
                error_message=error_message,
                error_code=error_code,
                details=metadata or {},
            )
        except Exception as e:
            current_app.logger.error(f"Logging failed: {str(e)}")
            return None

    def record_security_event(self, event_type, risk_level, ip_address, user_agent,
                              device_fingerprint, reason, account_id=None, blocked=False,
                              metadata=None):
        try:
            return self.store.append_security_event(
                event_type=event_type,
                risk_level=str(risk_level),
                account_id=account_id,
                ip_address=ip_address,
                user_agent=user_agent,
                device_fingerprint=device_fingerprint,
                blocked=blocked,
                reason=reason,
                details=metadata or {},
            )
        except Exception as e:
            current_app.logger.error(f"Security event logging failed: {str(e)}")
            return None
