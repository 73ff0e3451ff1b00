"""
Metrics collection for the tagledger API and correction engine.
"""
from typing import Dict, Any
from collections import defaultdict
from datetime import datetime, timezone
import threading

CORRECTION_EVENTS = (
    "created",
    "reinforced",
    "updated",
    "adjusted",
    "pruned",
    "deleted",
    "match_hit",
    "match_miss",
)

_lock = threading.Lock()


def _empty_metrics() -> Dict[str, Any]:
    return {
        "requests": defaultdict(int),
        "errors": defaultdict(int),
        "corrections": defaultdict(int),
        "response_times": [],
        "start_time": datetime.now(timezone.utc).isoformat(),
    }


# In-memory metrics store (use Prometheus/StatsD in production)
_metrics: Dict[str, Any] = _empty_metrics()


def record_request(method: str, path: str, status_code: int, duration_ms: float):
    """Record HTTP request metrics."""
    with _lock:
        _metrics["requests"][f"{method} {path}"] += 1
        _metrics["requests"][f"status_{status_code}"] += 1

        # Keep last 1000 response times
        _metrics["response_times"].append(duration_ms)
        if len(_metrics["response_times"]) > 1000:
            _metrics["response_times"] = _metrics["response_times"][-1000:]


def record_error(error_type: str, path: str = ""):
    """Record error metrics."""
    with _lock:
        _metrics["errors"][error_type] += 1
        if path:
            _metrics["errors"][f"{error_type}:{path}"] += 1


def record_correction_event(event: str, count: int = 1):
    """Record a correction lifecycle event (see CORRECTION_EVENTS)."""
    if event not in CORRECTION_EVENTS:
        raise ValueError(f"Unknown correction event: {event}")
    with _lock:
        _metrics["corrections"][event] += count


def get_metrics() -> Dict[str, Any]:
    """Get current metrics."""
    with _lock:
        response_times = list(_metrics["response_times"])
        requests = dict(_metrics["requests"])
        errors = dict(_metrics["errors"])
        corrections = dict(_metrics["corrections"])
        start_time = _metrics["start_time"]

    avg_response_time = sum(response_times) / len(response_times) if response_times else 0
    p95_response_time = sorted(response_times)[int(len(response_times) * 0.95)] if len(response_times) >= 20 else 0
    p99_response_time = sorted(response_times)[int(len(response_times) * 0.99)] if len(response_times) >= 100 else 0

    total_requests = sum(v for k, v in requests.items() if not k.startswith("status_"))
    total_errors = sum(v for k, v in errors.items() if ":" not in k)

    uptime_seconds = (datetime.now(timezone.utc) - datetime.fromisoformat(start_time)).total_seconds()

    lookups = corrections.get("match_hit", 0) + corrections.get("match_miss", 0)

    return {
        "uptime_seconds": int(uptime_seconds),
        "uptime_human": _format_uptime(uptime_seconds),
        "requests": {
            "total": total_requests,
            "by_endpoint": {k: v for k, v in requests.items() if not k.startswith("status_")},
            "by_status": {k: v for k, v in requests.items() if k.startswith("status_")},
        },
        "errors": {
            "total": total_errors,
            "by_type": errors,
        },
        "corrections": {
            "events": {event: corrections.get(event, 0) for event in CORRECTION_EVENTS},
            "match_rate": round(corrections.get("match_hit", 0) / lookups, 4) if lookups else 0.0,
        },
        "performance": {
            "avg_response_time_ms": round(avg_response_time, 2),
            "p95_response_time_ms": round(p95_response_time, 2),
            "p99_response_time_ms": round(p99_response_time, 2),
            "requests_per_second": round(total_requests / uptime_seconds, 2) if uptime_seconds > 0 else 0,
        },
    }


def _format_uptime(seconds: float) -> str:
    """Format uptime in human-readable format."""
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)


def reset_metrics():
    """Reset all metrics (for testing)."""
    global _metrics
    with _lock:
        _metrics = _empty_metrics()
