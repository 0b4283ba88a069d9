# loginguard/rba/risk_scorer.py

import functools
import logging
import statistics
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Dict, List

from loginguard.models import utcnow
from loginguard.rba.concurrency import gather
from loginguard.services.event_log import Partition

LOG = logging.getLogger(__name__)

SUSPICIOUS_EVENT_TYPES = ('suspicious_login', 'bot_detected', 'rate_limit_exceeded')
ANALYSIS_FAILED_REASON = 'Risk analysis failed - defaulting to secure'


@functools.total_ordering
class RiskLevel(Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'

    def __lt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return _RANK[self] < _RANK[other]

    def __str__(self):
        return self.value


_RANK = {level: index for index, level in enumerate(RiskLevel)}


@dataclass
class RiskAssessment:
    risk_level: RiskLevel
    requires_captcha: bool
    reasons: List[str] = field(default_factory=list)
    signals: Dict[str, object] = field(default_factory=dict)

    def escalate(self, level, reason):
        """把风险等级至少提升到 level，并强制要求验证码。"""
        self.risk_level = max(self.risk_level, level)
        self.requires_captcha = True
        self.reasons.append(reason)


@dataclass
class RiskThresholds:
    """各层判定阈值。数值可按部署调整，层级顺序不变。"""
    windows: Dict[str, int] = field(default_factory=lambda: {
        'immediate': 5 * 60,
        'short': 15 * 60,
        'medium': 60 * 60,
        'long': 24 * 60 * 60,
    })
    critical_ip_immediate: int = 3
    high_ip_short: int = 8
    high_email_short: int = 5
    high_ip_medium: int = 15
    high_email_medium: int = 8
    high_device_medium: int = 10
    medium_ip_long: int = 25
    medium_ip_short: int = 3
    medium_email_short: int = 2
    recent_attempts_limit: int = 10
    bot_max_cv: float = 0.1
    bot_max_mean_seconds: float = 10.0

    @classmethod
    def from_config(cls, config):
        return cls(
            windows=dict(config.get('RISK_WINDOWS') or cls().windows),
            critical_ip_immediate=config.get('RISK_CRITICAL_IP_IMMEDIATE', 3),
            high_ip_short=config.get('RISK_HIGH_IP_SHORT', 8),
            high_email_short=config.get('RISK_HIGH_EMAIL_SHORT', 5),
            high_ip_medium=config.get('RISK_HIGH_IP_MEDIUM', 15),
            high_email_medium=config.get('RISK_HIGH_EMAIL_MEDIUM', 8),
            high_device_medium=config.get('RISK_HIGH_DEVICE_MEDIUM', 10),
            medium_ip_long=config.get('RISK_MEDIUM_IP_LONG', 25),
            medium_ip_short=config.get('RISK_MEDIUM_IP_SHORT', 3),
            medium_email_short=config.get('RISK_MEDIUM_EMAIL_SHORT', 2),
            recent_attempts_limit=config.get('RISK_RECENT_ATTEMPTS_LIMIT', 10),
            bot_max_cv=config.get('BOT_TIMING_MAX_CV', 0.1),
            bot_max_mean_seconds=config.get('BOT_TIMING_MAX_MEAN_SECONDS', 10.0),
        )


def is_bot_timing(timestamps, max_cv=0.1, max_mean_seconds=10.0):
    """检测登录尝试是否以过于均匀且快速的节奏到达。

    :param timestamps: 按时间倒序（最新在前）的尝试时间
    :return: 至少有 3 个间隔，且变异系数低于 max_cv、平均间隔短于 max_mean_seconds 时返回 True
    """
    if len(timestamps) < 3:
        return False
    intervals = [
        (newer - older).total_seconds()
        for newer, older in zip(timestamps, timestamps[1:])
    ]
    if len(intervals) < 3:
        return False
    mean = statistics.fmean(intervals)
    if mean <= 0:
        return False
    cv = statistics.pstdev(intervals) / mean
    return cv < max_cv and mean < max_mean_seconds


class RiskScorer:
    def __init__(self, store, thresholds=None, executor=None, wrap=None, clock=utcnow):
        """
        :param store: EventLogStore，提供失败次数、安全事件和近期尝试的查询
        :param thresholds: RiskThresholds，缺省使用默认阈值
        :param executor: 可选线程池，用于并发发出互不依赖的查询
        :param wrap: 工作线程中包装每个查询的函数
        :param clock: 返回当前 UTC 时间的函数
        """
        self.store = store
        self.thresholds = thresholds or RiskThresholds()
        self.executor = executor
        self.wrap = wrap
        self.clock = clock

    def assess(self, email, ip_address, device_fingerprint):
        try:
            signals = self._collect_signals(email, ip_address, device_fingerprint)
        except Exception:
            LOG.exception("登录风险分析失败，按中风险处理: ip=%s", ip_address)
            return RiskAssessment(
                risk_level=RiskLevel.MEDIUM,
                requires_captcha=True,
                reasons=[ANALYSIS_FAILED_REASON],
            )
        assessment = self.decide(signals)
        LOG.debug("Risk level for login from %s: %s %s",
                  ip_address, assessment.risk_level, assessment.reasons)
        return assessment

    def _collect_signals(self, email, ip_address, device_fingerprint):
        now = self.clock()
        since = {name: now - timedelta(seconds=seconds)
                 for name, seconds in self.thresholds.windows.items()}
        partitions = (
            ('ip', Partition.ADDRESS, ip_address),
            ('email', Partition.EMAIL, email),
            ('device', Partition.DEVICE, device_fingerprint),
        )

        keys = []
        calls = []
        for prefix, partition, value in partitions:
            for window in ('immediate', 'short', 'medium', 'long'):
                keys.append(f'{prefix}_{window}')
                calls.append(functools.partial(
                    self.store.count_login_failures, partition, value, since[window]))
        keys.append('security_events')
        calls.append(functools.partial(
            self.store.count_security_events, SUSPICIOUS_EVENT_TYPES, ip_address, since['medium']))
        keys.append('recent_attempts')
        calls.append(functools.partial(
            self._recent_timestamps, ip_address, since['short']))

        results = dict(zip(keys, gather(calls, self.executor, self.wrap)))
        timestamps = results.pop('recent_attempts')
        results['bot_pattern'] = is_bot_timing(
            timestamps, self.thresholds.bot_max_cv, self.thresholds.bot_max_mean_seconds)
        return results

    def _recent_timestamps(self, ip_address, since):
        attempts = self.store.recent_login_attempts(
            ip_address, since, self.thresholds.recent_attempts_limit)
        return [attempt.timestamp for attempt in attempts]

    def decide(self, signals):
        """按严重程度自上而下匹配，第一个命中的层级生效。"""
        t = self.thresholds
        s = signals
        reasons = []

        if s['ip_immediate'] >= t.critical_ip_immediate:
            level = RiskLevel.CRITICAL
            reasons.append(f"{s['ip_immediate']} failed attempts in last 5 minutes")
        elif s['ip_short'] >= t.high_ip_short or s['email_short'] >= t.high_email_short:
            level = RiskLevel.HIGH
            reasons.append(f"High failure rate: IP({s['ip_short']}) Email({s['email_short']})")
        elif (s['ip_medium'] >= t.high_ip_medium
              or s['email_medium'] >= t.high_email_medium
              or s['device_medium'] >= t.high_device_medium):
            level = RiskLevel.HIGH
            reasons.append('Sustained attack pattern detected')
        elif s['ip_long'] >= t.medium_ip_long or s['security_events'] > 0 or s['bot_pattern']:
            level = RiskLevel.MEDIUM
            if s['ip_long'] >= t.medium_ip_long:
                reasons.append(f"{s['ip_long']} failed attempts from IP in last 24 hours")
            if s['bot_pattern']:
                reasons.append('Suspicious timing pattern detected')
            if s['security_events'] > 0:
                reasons.append('Recent security events from IP')
        elif s['ip_short'] >= t.medium_ip_short or s['email_short'] >= t.medium_email_short:
            level = RiskLevel.MEDIUM
            reasons.append('Moderate failure rate detected')
        else:
            level = RiskLevel.LOW

        return RiskAssessment(
            risk_level=level,
            requires_captcha=level >= RiskLevel.MEDIUM,
            reasons=reasons,
            signals=dict(signals),
        )
