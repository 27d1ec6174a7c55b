"""
Metrics sink passed explicitly to the service layer.

PrometheusMetrics keeps post/comment counters and fetch timings in a
prometheus_client registry. Dotted names ("posts.fetch.time") map to
Prometheus names ("posts_fetch_time_seconds").
"""

from typing import Any, Optional, Protocol

from prometheus_client import CollectorRegistry, Counter, Histogram


class MetricsSink(Protocol):
    def increment(self, name: str, **tags: str) -> None: ...

    def observe(self, name: str, value: float, **tags: str) -> None: ...


# name -> (description, label names)
COUNTERS: dict[str, tuple[str, tuple[str, ...]]] = {
    "posts.requests": ("Number of posts requests", ("type",)),
    "post.requests": ("Number of single post requests", ()),
    "comments.requests": ("Number of comments requests", ()),
    "posts.fetch.count": ("Number of posts fetch operations", ()),
    "post.fetch.count": ("Number of single post fetch operations", ()),
    "comments.fetch.count": ("Number of comments fetch operations", ()),
}

TIMERS: dict[str, str] = {
    "posts.fetch.time": "Time taken to fetch posts",
    "posts.filter.time": "Time taken to filter posts",
    "post.fetch.time": "Time taken to fetch single post",
    "post.with.comments.fetch.time": "Time taken to fetch post with comments",
    "comments.fetch.time": "Time taken to fetch comments",
}


def _metric_key(name: str, tags: dict[str, str]) -> str:
    if not tags:
        return name
    labels = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
    return f"{name}{{{labels}}}"


def _prometheus_name(name: str) -> str:
    return name.replace(".", "_")


class PrometheusMetrics:
    """Post and comment metrics backed by a Prometheus registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._counters: dict[str, Counter] = {}
        self._timers: dict[str, Histogram] = {}
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        for name, (description, labels) in COUNTERS.items():
            self._counters[name] = Counter(
                _prometheus_name(name),
                description,
                labels,
                registry=self.registry,
            )
        for name, description in TIMERS.items():
            self._timers[name] = Histogram(
                f"{_prometheus_name(name)}_seconds",
                description,
                registry=self.registry,
            )

    def increment(self, name: str, **tags: str) -> None:
        counter = self._counters[name]
        (counter.labels(**tags) if tags else counter).inc()

    def observe(self, name: str, value: float, **tags: str) -> None:
        timer = self._timers[name]
        (timer.labels(**tags) if tags else timer).observe(value)

    def count(self, name: str, **tags: str) -> int:
        value = self.registry.get_sample_value(
            f"{_prometheus_name(name)}_total", tags
        )
        return int(value or 0)

    def to_dict(self) -> dict[str, Any]:
        """Counter totals and timing summaries read back from the registry."""
        counters: dict[str, int] = {}
        for name, counter in self._counters.items():
            for metric in counter.collect():
                for sample in metric.samples:
                    if sample.name.endswith("_total"):
                        counters[_metric_key(name, sample.labels)] = int(sample.value)

        timings: dict[str, dict[str, Any]] = {}
        for name, timer in self._timers.items():
            samples = {
                sample.name.rsplit("_", 1)[-1]: sample.value
                for metric in timer.collect()
                for sample in metric.samples
                if sample.name.endswith(("_count", "_sum"))
            }
            count = int(samples.get("count", 0))
            if count:
                timings[name] = {
                    "count": count,
                    "avg_ms": round(samples["sum"] / count * 1000, 2),
                }

        return {"counters": counters, "timings": timings}
