# loginguard/rba/novelty.py

import functools
import logging
from dataclasses import dataclass
from typing import Optional

from loginguard.rba.concurrency import gather

LOG = logging.getLogger(__name__)


@dataclass
class NoveltyReport:
    is_new_device: bool
    is_new_location: bool
    previous_login_count: int = 0
    last_known_address: Optional[str] = None


class NoveltyDetector:
    """根据历史成功登录判断本次登录的设备和网络来源是否首次出现。

    必须在本次成功记录写入之前调用，否则永远判定为已见过。
    """

    def __init__(self, store, executor=None, wrap=None):
        self.store = store
        self.executor = executor
        self.wrap = wrap

    def detect(self, account_id, device_fingerprint, ip_address):
        try:
            device_login, location_login, total, last_login = gather([
                functools.partial(self.store.most_recent_successful_login,
                                  account_id, device_fingerprint=device_fingerprint),
                functools.partial(self.store.most_recent_successful_login,
                                  account_id, ip_address=ip_address),
                functools.partial(self.store.count_successful_logins, account_id),
                functools.partial(self.store.most_recent_successful_login, account_id),
            ], self.executor, self.wrap)
        except Exception:
            LOG.exception("设备/位置分析失败，按新设备处理: account=%s", account_id)
            return NoveltyReport(is_new_device=True, is_new_location=True)

        return NoveltyReport(
            is_new_device=device_login is None,
            is_new_location=location_login is None,
            previous_login_count=total,
            last_known_address=last_login.ip_address if last_login is not None else None,
        )
