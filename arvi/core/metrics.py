"""
In-process metrics rendered in Prometheus text format at GET /metrics.

Per-process only; a scraper aggregates across workers.
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

LabelKey = Tuple[str, ...]


def _render_labels(names: Sequence[str], values: LabelKey, extra: Optional[Tuple[str, str]] = None) -> str:
    pairs = list(zip(names, values))
    if extra:
        pairs.append(extra)
    if not pairs:
        return ""
    escaped = (f'{k}="{_escape(v)}"' for k, v in pairs)
    return "{" + ",".join(escaped) + "}"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, label_names: Optional[Iterable[str]] = None, help_text: str = ""):
        self.name = name
        self.label_names = tuple(label_names or ())
        self.help_text = help_text
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelKey:
        labels = labels or {}
        unknown = set(labels) - set(self.label_names)
        if unknown:
            raise ValueError(f"{self.name}: unknown labels {sorted(unknown)}")
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def _header(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.help_text}"] if self.help_text else []
        lines.append(f"# TYPE {self.name} {self.kind}")
        return lines


class Counter(_Metric):
    kind = "counter"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._values: Dict[LabelKey, float] = {}

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counters only go up")
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def export(self) -> List[str]:
        lines = self._header()
        with self._lock:
            for key, value in sorted(self._values.items()):
                lines.append(f"{self.name}{_render_labels(self.label_names, key)} {value}")
        return lines

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


class Histogram(_Metric):
    """Cumulative-bucket histogram. Buckets are upper bounds in seconds."""

    kind = "histogram"

    def __init__(self, name: str, label_names: Optional[Iterable[str]] = None, help_text: str = "",
                 buckets: Sequence[float] = (0.5, 1, 2.5, 5, 10, 20, 30, 60)):
        super().__init__(name, label_names, help_text)
        self.buckets = tuple(sorted(buckets))
        self._series: Dict[LabelKey, List[float]] = {}  # bucket counts..., sum, count

    def observe(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = self._key(labels)
        with self._lock:
            row = self._series.setdefault(key, [0.0] * (len(self.buckets) + 2))
            for i, upper in enumerate(self.buckets):
                if value <= upper:
                    row[i] += 1
            row[-2] += value
            row[-1] += 1

    def count(self, labels: Optional[Dict[str, str]] = None) -> int:
        key = self._key(labels)
        with self._lock:
            row = self._series.get(key)
            return int(row[-1]) if row else 0

    def export(self) -> List[str]:
        lines = self._header()
        with self._lock:
            for key, row in sorted(self._series.items()):
                for upper, hits in zip(self.buckets, row):
                    labels = _render_labels(self.label_names, key, ("le", str(upper)))
                    lines.append(f"{self.name}_bucket{labels} {hits}")
                lines.append(f"{self.name}_bucket{_render_labels(self.label_names, key, ('le', '+Inf'))} {row[-1]}")
                lines.append(f"{self.name}_sum{_render_labels(self.label_names, key)} {row[-2]}")
                lines.append(f"{self.name}_count{_render_labels(self.label_names, key)} {row[-1]}")
        return lines

    def reset(self) -> None:
        with self._lock:
            self._series.clear()


class MetricsRegistry:
    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _register(self, metric: _Metric) -> _Metric:
        with self._lock:
            existing = self._metrics.get(metric.name)
            if existing is not None:
                if type(existing) is not type(metric):
                    raise ValueError(f"{metric.name} already registered as {existing.kind}")
                return existing
            self._metrics[metric.name] = metric
            return metric

    def counter(self, name: str, label_names: Optional[Iterable[str]] = None, help_text: str = "") -> Counter:
        return self._register(Counter(name, label_names, help_text))

    def histogram(self, name: str, label_names: Optional[Iterable[str]] = None, help_text: str = "", **kwargs) -> Histogram:
        return self._register(Histogram(name, label_names, help_text, **kwargs))

    def export_prometheus(self) -> str:
        with self._lock:
            metrics = list(self._metrics.values())
        lines: List[str] = []
        for metric in metrics:
            lines.extend(metric.export())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            metrics = list(self._metrics.values())
        for metric in metrics:
            metric.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "http_requests_total", ["method", "path", "status"], "HTTP requests by route template and status"
)
ai_pass_total = METRICS.counter(
    "ai_pass_total", ["function_type", "outcome"], "Pipeline pass attempts by outcome"
)
ai_pass_duration_seconds = METRICS.histogram(
    "ai_pass_duration_seconds", ["function_type"], "Wall time of successful pipeline passes"
)
habit_series_created_total = METRICS.counter("habit_series_created_total", help_text="Committed habit series")
energy_debited_total = METRICS.counter("energy_debited_total", help_text="Energy debited by habit series commits")


_ID_SEGMENT_RE = re.compile(r"^(\d+|[0-9a-fA-F]{8}-[0-9a-fA-F-]{27,}|[0-9a-fA-F]{24,})$")


def normalize_path(path: str) -> str:
    """Collapse id-like segments (/v1/habits/series/<uuid> -> /v1/habits/series/:id)."""
    segments = [s for s in path.split("/") if s]
    return "/" + "/".join(":id" if _ID_SEGMENT_RE.match(s) else s for s in segments)
