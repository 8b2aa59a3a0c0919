"""
In-process metrics for the delegate worker, served at GET /metrics.

Counters are dotted names ('requests.delegate', 'outcomes.success',
'errors.image_upstream_timeout'). Latency is kept per key: 'delegate' for
the whole request, 'stage.image' / 'stage.video' for measured poll time.
Failures are kept in a short ring for debugging from the dashboard.

Nothing here is persisted and nothing here affects how a request is
answered.
"""

import time
import threading
from collections import Counter, deque
from typing import Deque, Dict

LATENCY_WINDOW = 100
FAILURE_WINDOW = 50

_lock = threading.Lock()
_counters: Counter = Counter()
_gauges: Dict[str, float] = {}
_latency: Dict[str, Deque[float]] = {}
_failures: Deque[dict] = deque(maxlen=FAILURE_WINDOW)


def inc_counter(name: str, amount: int = 1):
    with _lock:
        _counters[name] += amount


def record_latency(key: str, duration_ms: float):
    """Keep the most recent LATENCY_WINDOW samples for `key`."""
    with _lock:
        window = _latency.get(key)
        if window is None:
            window = _latency[key] = deque(maxlen=LATENCY_WINDOW)
        window.append(duration_ms)


def set_gauge(name: str, value: float):
    with _lock:
        _gauges[name] = value


def record_error(endpoint: str, error_type: str, message: str, user_id: str = ""):
    """Remember a failed request. `error_type` is '<stage>_<outcome kind>' or the bare kind."""
    with _lock:
        _failures.append({
            "timestamp": time.time(),
            "endpoint": endpoint,
            "error_type": error_type,
            "message": message[:300],
            "user_id": user_id,
        })


def reset():
    """Clear everything. Used by tests."""
    with _lock:
        _counters.clear()
        _gauges.clear()
        _latency.clear()
        _failures.clear()


def _summarize(samples) -> dict:
    ordered = sorted(samples)
    n = len(ordered)
    # p95 is meaningless on a handful of samples; fall back to the max
    p95 = ordered[int(n * 0.95)] if n >= 20 else ordered[-1]
    return {"p50": ordered[n // 2], "p95": p95, "avg": sum(ordered) / n, "count": n}


def get_snapshot() -> dict:
    now = time.time()
    with _lock:
        failures = list(_failures)
        stage_failures = Counter(f["error_type"] for f in failures)
        return {
            "timestamp": now,
            "uptime_seconds": now - _gauges.get("start_time", now),
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "latency": {key: _summarize(s) for key, s in _latency.items() if s},
            "stage_failures": dict(stage_failures),
            "recent_errors": failures[-10:],
        }
