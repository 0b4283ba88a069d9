# loginguard/rba/concurrency.py

import functools
import logging
import threading

LOG = logging.getLogger(__name__)

_worker_state = threading.local()


def _in_worker(call):
    @functools.wraps(call)
    def run():
        _worker_state.active = True
        try:
            return call()
        finally:
            _worker_state.active = False
    return run


def gather(calls, executor=None, wrap=None):
    """并发执行一组互不依赖的无参调用，按原顺序返回结果。

    没有 executor 时顺序执行。已经在 gather 提交的工作线程里时也顺序执行，
    否则外层任务占满线程池后会一直等待排在后面的子任务。
    任何一个调用抛出的异常都会在汇合时重新抛出。
    :param calls: 无参可调用对象列表
    :param executor: concurrent.futures.Executor，可选
    :param wrap: 在工作线程中包装每个调用的函数（例如推入应用上下文）
    """
    if executor is None or getattr(_worker_state, 'active', False):
        return [call() for call in calls]
    if wrap is not None:
        calls = [wrap(call) for call in calls]
    futures = [executor.submit(_in_worker(call)) for call in calls]
    LOG.debug("已提交 %d 个并发调用", len(futures))
    return [future.result() for future in futures]
