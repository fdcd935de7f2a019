"""In-process metric registry rendered in the Prometheus text format."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Iterator, Sequence


def _format_value(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return f"{value:.6f}".rstrip("0").rstrip(".")


def _escape(value: str) -> str:
    return value.replace("\\", r"\\").replace("\n", r"\n").replace('"', r"\"")


def _format_labels(names: Sequence[str], values: Sequence[str]) -> str:
    if not names:
        return ""
    pairs = ",".join(f'{name}="{_escape(value)}"' for name, value in zip(names, values))
    return "{" + pairs + "}"


@dataclass(slots=True)
class Metric:
    """A named family of samples keyed by their label values."""

    name: str
    description: str
    label_names: tuple[str, ...] = ()
    kind: str = "untyped"
    _samples: dict[tuple[str, ...], float] = field(default_factory=dict, repr=False)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def labels(self, *values: object) -> "BoundMetric":
        """Bind positional label values, e.g. ``metric.labels("join", "in").inc()``."""

        if len(values) != len(self.label_names):
            expected = ", ".join(self.label_names) or "<none>"
            raise ValueError(
                f"Metric '{self.name}' expects {len(self.label_names)} label value(s) "
                f"[{expected}], got {len(values)}"
            )
        return BoundMetric(self, tuple(str(value) for value in values))

    def value(self, *values: object) -> float:
        key = tuple(str(value) for value in values)
        with self._lock:
            return self._samples.get(key, 0.0)

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()

    def _unlabelled(self) -> tuple[str, ...]:
        if self.label_names:
            raise ValueError(f"Metric '{self.name}' requires labels {list(self.label_names)}")
        return ()

    def _add(self, key: tuple[str, ...], amount: float) -> None:
        with self._lock:
            self._samples[key] = self._samples.get(key, 0.0) + amount

    def _set(self, key: tuple[str, ...], value: float) -> None:
        with self._lock:
            self._samples[key] = float(value)

    def render(self) -> Iterator[str]:
        yield f"# HELP {self.name} {self.description}"
        yield f"# TYPE {self.name} {self.kind}"
        with self._lock:
            samples = sorted(self._samples.items())
        if not samples:
            yield f"{self.name} 0"
            return
        for key, value in samples:
            yield f"{self.name}{_format_labels(self.label_names, key)} {_format_value(value)}"


class Counter(Metric):
    __slots__ = ()

    def __init__(self, name: str, description: str, label_names: Sequence[str] = ()) -> None:
        super().__init__(name, description, tuple(label_names), "counter")

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("Counters cannot be decreased")
        self._add(self._unlabelled(), amount)


class Gauge(Metric):
    __slots__ = ()

    def __init__(self, name: str, description: str, label_names: Sequence[str] = ()) -> None:
        super().__init__(name, description, tuple(label_names), "gauge")

    def set(self, value: float) -> None:
        self._set(self._unlabelled(), value)

    def inc(self, amount: float = 1.0) -> None:
        self._add(self._unlabelled(), amount)

    def dec(self, amount: float = 1.0) -> None:
        self._add(self._unlabelled(), -amount)


@dataclass(slots=True, frozen=True)
class BoundMetric:
    """A metric with its label values filled in."""

    metric: Metric
    key: tuple[str, ...]

    def inc(self, amount: float = 1.0) -> None:
        if isinstance(self.metric, Counter) and amount < 0:
            raise ValueError("Counters cannot be decreased")
        self.metric._add(self.key, amount)

    def dec(self, amount: float = 1.0) -> None:
        if not isinstance(self.metric, Gauge):
            raise AttributeError("Only gauges support dec()")
        self.metric._add(self.key, -amount)

    def set(self, value: float) -> None:
        if not isinstance(self.metric, Gauge):
            raise AttributeError("Only gauges support set()")
        self.metric._set(self.key, value)


class MetricsRegistry:
    """Collects metrics by name and renders them for scraping."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = Lock()

    def register(self, metric: Metric) -> Metric:
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"Metric '{metric.name}' already registered")
            self._metrics[metric.name] = metric
        return metric

    def counter(self, name: str, description: str, *, label_names: Sequence[str] = ()) -> Counter:
        metric = Counter(name, description, label_names)
        self.register(metric)
        return metric

    def gauge(self, name: str, description: str, *, label_names: Sequence[str] = ()) -> Gauge:
        metric = Gauge(name, description, label_names)
        self.register(metric)
        return metric

    def get(self, name: str) -> Metric | None:
        return self._metrics.get(name)

    def reset(self) -> None:
        for metric in list(self._metrics.values()):
            metric.reset()

    def render(self) -> str:
        lines: list[str] = []
        for name in sorted(self._metrics):
            lines.extend(self._metrics[name].render())
        return "\n".join(lines) + "\n"


# Shared registry instance for the process.
registry = MetricsRegistry()
