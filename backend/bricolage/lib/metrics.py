"""
In-process Prometheus counters for the booking core.

Usage:
    from bricolage.lib.metrics import get_metrics_collector

    get_metrics_collector().increment_transitions("PENDING", "ACCEPTED", "TECHNICIAN")
    text = get_metrics_collector().export_prometheus()  # served on GET /metrics
"""

from threading import Lock
from typing import Dict, Tuple

LabelSet = Tuple[Tuple[str, str], ...]

# Counter name -> HELP text
COUNTERS: Dict[str, str] = {
    "booking_transitions_total": "Total number of applied booking status transitions",
    "booking_rejections_total": "Total number of booking operations rejected by a guard",
    "notifications_total": "Total number of notification dispatch attempts",
    "payment_overrides_total": "Total number of administrative payment status overrides",
}


class MetricsCollector:
    """
    Thread-safe labelled counters.

    Label values are normalised (statuses, roles and codes upper-case, operations
    and outcomes lower-case) so callers can pass enum values or raw strings.
    """

    def __init__(self):
        self._lock = Lock()
        self._counters: Dict[Tuple[str, LabelSet], int] = {}

    @staticmethod
    def _key(metric_name: str, labels: Dict[str, str]) -> Tuple[str, LabelSet]:
        return metric_name, tuple(sorted(labels.items()))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        key = self._key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def increment_transitions(self, from_status: str, to_status: str, role: str, amount: int = 1):
        """Count an applied transition; `role` is CLIENT, TECHNICIAN or SYSTEM."""
        self._increment(
            "booking_transitions_total",
            {"from_status": from_status.upper(), "to_status": to_status.upper(), "role": role.upper()},
            amount,
        )

    def increment_rejections(self, operation: str, code: str, amount: int = 1):
        self._increment("booking_rejections_total", {"operation": operation.lower(), "code": code}, amount)

    def increment_notifications(self, event_type: str, status: str = "sent", amount: int = 1):
        """Count a notification attempt; `status` is "sent" or "failed"."""
        self._increment(
            "notifications_total",
            {"event_type": event_type.upper(), "status": status.lower()},
            amount,
        )

    def increment_payment_overrides(self, new_payment_status: str, amount: int = 1):
        self._increment("payment_overrides_total", {"new_payment_status": new_payment_status.upper()}, amount)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        with self._lock:
            return self._counters.get(self._key(metric_name, labels), 0)

    def export_prometheus(self) -> str:
        """
        Render every non-empty counter in the Prometheus text format, grouped
        by metric name (sorted) with HELP and TYPE lines.
        """
        grouped: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels), value in self._counters.items():
                grouped.setdefault(metric_name, []).append((labels, value))

        lines = []
        for metric_name in sorted(grouped):
            lines.append(f"# HELP {metric_name} {COUNTERS.get(metric_name, 'Counter metric')}")
            lines.append(f"# TYPE {metric_name} counter")
            for labels, value in sorted(grouped[metric_name]):
                rendered = ",".join(f'{name}="{val}"' for name, val in labels)
                lines.append(f"{metric_name}{{{rendered}}} {value}")
            lines.append("")
        return "\n".join(lines)

    def reset_all(self):
        with self._lock:
            self._counters.clear()


_metrics_collector = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics_collector


def reset_metrics():
    """Clear the process-wide collector (tests)."""
    _metrics_collector.reset_all()
