# src/launchpad/runtime/metrics.py
"""In-process launchpad metrics.

Counters and gauges live in module state guarded by one lock; the executor
records into them and `/v1/metrics` reads them. Recording is always on and
cheap. Exposure is gated by LAUNCHPAD_METRICS_ENABLED.

Series may carry labels (`inc_counter("calls", call="CREATE_TOKEN")`); a
labeled series renders as `calls{call="CREATE_TOKEN"}` in both the JSON
snapshot and the Prometheus text.
"""

from __future__ import annotations

import threading
import time
from typing import Dict, Tuple

from launchpad.env import env_flag

Labels = Tuple[Tuple[str, str], ...]
SeriesKey = Tuple[str, Labels]

HELP: Dict[str, str] = {
    "calls": "Calls submitted to the executor, by call and outcome",
    "calls_applied": "Calls committed to the ledger",
    "calls_rejected": "Calls refused with a caller error",
    "tokens_created": "Tokens issued by the factory",
    "token_transfers": "Token transfers, taxed or not",
    "fees_withdrawn_wei": "Deployment fees paid out to the owner, in wei",
    "token_count": "Tokens currently registered",
    "accumulated_fees_wei": "Deployment fees awaiting withdrawal, in wei",
}

_lock = threading.Lock()
_counters: Dict[SeriesKey, int] = {}
_gauges: Dict[SeriesKey, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    return env_flag("LAUNCHPAD_METRICS_ENABLED")


def _key(name: str, labels: Dict[str, str]) -> SeriesKey:
    return (str(name).strip(), tuple(sorted((str(k), str(v)) for k, v in labels.items())))


def _render(key: SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    inner = ",".join(f'{k}="{v}"' for k, v in labels)
    return f"{name}{{{inner}}}"


def inc_counter(name: str, value: int = 1, **labels: str) -> None:
    k = _key(name, labels)
    if not k[0]:
        return
    with _lock:
        _counters[k] = _counters.get(k, 0) + int(value)


def set_gauge(name: str, value: int, **labels: str) -> None:
    k = _key(name, labels)
    if not k[0]:
        return
    with _lock:
        _gauges[k] = int(value)


def reset() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()


def snapshot() -> dict:
    now = int(time.time() * 1000)
    with _lock:
        counters = {_render(k): v for k, v in _counters.items()}
        gauges = {_render(k): v for k, v in _gauges.items()}
    return {
        "ts_ms": now,
        "started_ms": _started_ms,
        "uptime_ms": now - _started_ms,
        "counters": counters,
        "gauges": gauges,
    }


def format_prometheus(prefix: str = "launchpad_") -> str:
    """Prometheus text exposition, one HELP/TYPE header per metric name."""
    pre = str(prefix or "").strip() or "launchpad_"
    with _lock:
        series = [("counter", k, v) for k, v in _counters.items()] + [("gauge", k, v) for k, v in _gauges.items()]

    lines = [
        f"# HELP {pre}uptime_ms Milliseconds since the process loaded metrics",
        f"# TYPE {pre}uptime_ms gauge",
        f"{pre}uptime_ms {int(time.time() * 1000) - _started_ms}",
    ]
    seen = set()
    for kind, key, value in sorted(series, key=lambda s: (s[1][0], s[1][1])):
        name = key[0]
        if name not in seen:
            seen.add(name)
            if name in HELP:
                lines.append(f"# HELP {pre}{name} {HELP[name]}")
            lines.append(f"# TYPE {pre}{name} {kind}")
        lines.append(f"{pre}{_render(key)} {value}")
    return "\n".join(lines) + "\n"
