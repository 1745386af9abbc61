#!/usr/bin/env python3
"""
Reachability Probe
Pings one target with bounded retries and captures latency from the successful reply.
"""
import time

from models import ProbeResult

from .network_info import parse_latency
from .system_commands import run_command

DEFAULT_TIMEOUT = 2
DEFAULT_MAX_RETRIES = 2
RETRY_DELAY = 1.0


def check(target, timeout=DEFAULT_TIMEOUT, max_retries=DEFAULT_MAX_RETRIES,
          retry_delay=RETRY_DELAY, runner=run_command, sleep=time.sleep):
    """
    Probe target with up to max_retries single-packet pings.

    Stops at the first reply. A fixed retry_delay separates failed attempts; there is
    no sleep after the last one. Latency comes from the successful attempt's output
    and is None if it cannot be parsed, which still counts as reachable.
    """
    max_retries = max(1, int(max_retries))
    wait = str(max(1, int(round(timeout))))
    failed = 0

    for attempt in range(1, max_retries + 1):
        result = runner(["ping", "-c", "1", "-W", wait, target], timeout=int(wait) + 3)
        if result['success']:
            return ProbeResult(target=target, reachable=True,
                               latency_ms=parse_latency(result['stdout']),
                               attempts=attempt, attempts_failed=failed)
        failed += 1
        if attempt < max_retries:
            sleep(retry_delay)

    return ProbeResult(target=target, reachable=False, latency_ms=None,
                       attempts=max_retries, attempts_failed=failed)
