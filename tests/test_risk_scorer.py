# tests/test_risk_scorer.py

import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from types import SimpleNamespace

from loginguard.rba.risk_scorer import (ANALYSIS_FAILED_REASON, RiskLevel, RiskScorer,
                                        RiskThresholds, is_bot_timing)
from loginguard.services.event_log import Partition, SqlEventLogStore
from tests.base import AppTestCase

NOW = datetime(2026, 3, 2, 12, 0, 0)
WINDOW_KEYS = {300: 'immediate', 900: 'short', 3600: 'medium', 86400: 'long'}
PARTITION_KEYS = {Partition.ADDRESS: 'ip', Partition.EMAIL: 'email', Partition.DEVICE: 'device'}


class FakeEventLog:
    """按 (分区, 窗口) 返回预设失败次数的日志存储替身。"""

    def __init__(self, failures=None, security_events=0, attempt_times=()):
        self.failures = failures or {}
        self.security_events = security_events
        self.attempt_times = list(attempt_times)
        self.calls = []

    def count_login_failures(self, partition, value, since):
        self.calls.append('failures')
        window = WINDOW_KEYS[int((NOW - since).total_seconds())]
        return self.failures.get(f'{PARTITION_KEYS[partition]}_{window}', 0)

    def count_security_events(self, categories, ip_address, since):
        self.calls.append('security_events')
        return self.security_events

    def recent_login_attempts(self, ip_address, since, limit):
        self.calls.append('recent')
        return [SimpleNamespace(timestamp=t) for t in self.attempt_times[:limit]]


class BrokenEventLog(FakeEventLog):
    def count_security_events(self, categories, ip_address, since):
        raise ConnectionError('log store unavailable')


def score(store, **kwargs):
    scorer = RiskScorer(store, clock=lambda: NOW, **kwargs)
    return scorer.assess('x@example.com', '1.2.3.4', 'fp')


class TestTieredDecision(unittest.TestCase):
    def test_no_history_is_low(self):
        assessment = score(FakeEventLog())
        self.assertEqual(assessment.risk_level, RiskLevel.LOW)
        self.assertFalse(assessment.requires_captcha)
        self.assertEqual(assessment.reasons, [])

    def test_three_ip_failures_in_five_minutes_is_critical(self):
        for count in (3, 4, 10):
            assessment = score(FakeEventLog({'ip_immediate': count, 'ip_short': count}))
            self.assertEqual(assessment.risk_level, RiskLevel.CRITICAL)
            self.assertTrue(assessment.requires_captcha)
            self.assertIn(f'{count} failed attempts in last 5 minutes', assessment.reasons)

    def test_short_window_high(self):
        self.assertEqual(score(FakeEventLog({'ip_short': 8})).risk_level, RiskLevel.HIGH)
        self.assertEqual(score(FakeEventLog({'email_short': 5})).risk_level, RiskLevel.HIGH)

    def test_sustained_pattern_high(self):
        for failures in ({'ip_medium': 15}, {'email_medium': 8}, {'device_medium': 10}):
            assessment = score(FakeEventLog(failures))
            self.assertEqual(assessment.risk_level, RiskLevel.HIGH, failures)
            self.assertIn('Sustained attack pattern detected', assessment.reasons)

    def test_long_window_and_security_events_medium(self):
        self.assertEqual(score(FakeEventLog({'ip_long': 25})).risk_level, RiskLevel.MEDIUM)
        assessment = score(FakeEventLog(security_events=1))
        self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)
        self.assertIn('Recent security events from IP', assessment.reasons)

    def test_moderate_failures_medium(self):
        for failures in ({'ip_short': 3}, {'email_short': 2}):
            assessment = score(FakeEventLog(failures))
            self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)
            self.assertTrue(assessment.requires_captcha)
            self.assertIn('Moderate failure rate detected', assessment.reasons)

    def test_below_every_threshold_is_low(self):
        failures = {'ip_immediate': 2, 'ip_short': 2, 'email_short': 1, 'ip_medium': 14,
                    'email_medium': 7, 'device_medium': 9, 'ip_long': 24}
        self.assertEqual(score(FakeEventLog(failures)).risk_level, RiskLevel.LOW)

    def test_custom_thresholds(self):
        thresholds = RiskThresholds(critical_ip_immediate=10)
        assessment = score(FakeEventLog({'ip_immediate': 3, 'ip_short': 3}), thresholds=thresholds)
        self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)

    def test_monotonic_in_each_count(self):
        keys = [f'{p}_{w}' for p in ('ip', 'email', 'device')
                for w in ('immediate', 'short', 'medium', 'long')]
        base = {'ip_short': 1, 'email_short': 1, 'ip_long': 5}
        for key in keys:
            previous = RiskLevel.LOW
            for count in range(0, 30):
                failures = dict(base)
                failures[key] = count
                level = score(FakeEventLog(failures)).risk_level
                self.assertGreaterEqual(level, previous, f'{key}={count}')
                previous = level

    def test_requires_captcha_whenever_medium_or_above(self):
        for failures in ({}, {'ip_short': 3}, {'ip_short': 8}, {'ip_immediate': 3}):
            assessment = score(FakeEventLog(failures))
            self.assertEqual(assessment.requires_captcha,
                             assessment.risk_level >= RiskLevel.MEDIUM)


class TestFailSafe(unittest.TestCase):
    def test_query_failure_defaults_to_medium(self):
        assessment = score(BrokenEventLog({'ip_immediate': 5}))
        self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)
        self.assertTrue(assessment.requires_captcha)
        self.assertEqual(assessment.reasons, [ANALYSIS_FAILED_REASON])

    def test_query_failure_with_executor(self):
        with ThreadPoolExecutor(max_workers=4) as executor:
            assessment = score(BrokenEventLog(), executor=executor)
        self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)
        self.assertTrue(assessment.requires_captcha)


class TestScorerLogging(unittest.TestCase):
    def test_debug_log_omits_attempted_email(self):
        with self.assertLogs('loginguard.rba.risk_scorer', level='DEBUG') as logs:
            score(FakeEventLog({'ip_immediate': 3}))
        output = '\n'.join(logs.output)
        self.assertIn('1.2.3.4', output)
        self.assertIn('critical', output)
        self.assertNotIn('x@example.com', output)


class TestConcurrentQueries(unittest.TestCase):
    def test_executor_gives_same_result(self):
        failures = {'ip_short': 8, 'email_medium': 3}
        sequential = score(FakeEventLog(failures))
        with ThreadPoolExecutor(max_workers=4) as executor:
            store = FakeEventLog(failures)
            concurrent = score(store, executor=executor)
        self.assertEqual(concurrent.risk_level, sequential.risk_level)
        self.assertEqual(concurrent.signals, sequential.signals)
        # 12 个失败计数 + 安全事件 + 近期尝试
        self.assertEqual(len(store.calls), 14)


class TestBotTiming(unittest.TestCase):
    def times(self, *offsets):
        return [NOW - timedelta(seconds=s) for s in offsets]

    def test_uniform_rapid_attempts_flagged(self):
        self.assertTrue(is_bot_timing(self.times(0, 2, 4, 6, 8)))

    def test_needs_three_intervals(self):
        self.assertFalse(is_bot_timing(self.times(0, 2, 4)))
        self.assertFalse(is_bot_timing(self.times(0, 2)))
        self.assertFalse(is_bot_timing([]))

    def test_irregular_attempts_not_flagged(self):
        self.assertFalse(is_bot_timing(self.times(0, 1, 7, 9, 20)))

    def test_slow_uniform_attempts_not_flagged(self):
        self.assertFalse(is_bot_timing(self.times(0, 30, 60, 90)))

    def test_identical_timestamps_not_flagged(self):
        self.assertFalse(is_bot_timing(self.times(0, 0, 0, 0)))

    def test_bot_pattern_raises_to_medium(self):
        store = FakeEventLog(attempt_times=self.times(0, 3, 6, 9, 12))
        assessment = score(store)
        self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)
        self.assertIn('Suspicious timing pattern detected', assessment.reasons)
        self.assertTrue(assessment.signals['bot_pattern'])


class TestRiskLevel(unittest.TestCase):
    def test_ordering(self):
        self.assertLess(RiskLevel.LOW, RiskLevel.MEDIUM)
        self.assertLess(RiskLevel.MEDIUM, RiskLevel.HIGH)
        self.assertLess(RiskLevel.HIGH, RiskLevel.CRITICAL)
        self.assertEqual(max(RiskLevel.LOW, RiskLevel.HIGH), RiskLevel.HIGH)
        self.assertEqual(str(RiskLevel.CRITICAL), 'critical')


class TestScorerWithDatabase(AppTestCase):
    def assess(self, email='x@example.com', ip_address='1.2.3.4', fingerprint='fp'):
        return RiskScorer(SqlEventLogStore(self.app)).assess(email, ip_address, fingerprint)

    def test_recent_ip_failures_are_critical(self):
        for seconds_ago in (30, 90, 200):
            self.add_attempt(seconds_ago=seconds_ago)
        self.assertEqual(self.assess().risk_level, RiskLevel.CRITICAL)

    def test_old_failures_fall_outside_windows(self):
        for _ in range(5):
            self.add_attempt(seconds_ago=2 * 24 * 3600)
        self.assertEqual(self.assess().risk_level, RiskLevel.LOW)

    def test_successes_and_sync_failures_are_not_failures(self):
        for seconds_ago in (70, 2800, 5600):
            self.add_attempt(seconds_ago=seconds_ago, success=True)
        for seconds_ago in (20, 40, 60):
            self.add_attempt(seconds_ago=seconds_ago, action='login_db_sync_failed')
        self.assertEqual(self.assess().signals['ip_immediate'], 0)

    def test_email_failures_counted_across_addresses(self):
        self.add_attempt(seconds_ago=60, ip_address='9.9.9.1')
        self.add_attempt(seconds_ago=600, ip_address='9.9.9.2')
        assessment = self.assess(ip_address='5.5.5.5')
        self.assertEqual(assessment.signals['email_short'], 2)
        self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)

    def test_security_events_from_ip(self):
        self.add_security_event('bot_detected', seconds_ago=100)
        self.add_security_event('new_device_login', ip_address='1.2.3.4')
        self.assertEqual(self.assess().signals['security_events'], 1)

    def test_bot_timing_from_stored_attempts(self):
        for seconds_ago in (1, 3, 5, 7, 9):
            self.add_attempt(seconds_ago=seconds_ago, success=True, ip_address='7.7.7.7')
        assessment = self.assess(ip_address='7.7.7.7')
        self.assertTrue(assessment.signals['bot_pattern'])
        self.assertEqual(assessment.risk_level, RiskLevel.MEDIUM)


if __name__ == '__main__':
    unittest.main()
