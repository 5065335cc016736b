"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for publish run observability.

A publish run is a short-lived CLI process, so the Prometheus adapter does not
serve a scrape endpoint. It keeps counters in its own registry and writes them
once per run to a node-exporter textfile (`flush()`).
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol


class PublishMetrics(Protocol):
    """Counter sink used by the gate, poller and orchestrator."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""

    def flush(self) -> None:
        """Persist collected values, if the backend needs it."""


class NoOpPublishMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = (name, value, tags)

    def flush(self) -> None:
        return None


class PrometheusPublishMetrics:
    """
    Prometheus counters for one publish run.

    Args:
        namespace: Metric name prefix.
        registry: Collector registry; a private one is created when omitted so
            repeated runs in one process never clash on metric names.
        textfile_path: Where `flush()` writes the exposition text. `None`
            keeps the counters in memory only.

    Requires the `prometheus_client` package (`mkptool[metrics]`).
    """

    def __init__(
        self,
        *,
        namespace: str = "mkptool",
        registry: Any | None = None,
        textfile_path: str | Path | None = None,
    ) -> None:
        try:
            import prometheus_client
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "MKPTOOL_METRICS_BACKEND=prometheus requires `prometheus_client` "
                "(install mkptool[metrics])."
            ) from exc

        self._prom = prometheus_client
        self.namespace = namespace
        self.registry = registry if registry is not None else prometheus_client.CollectorRegistry()
        self.textfile_path = Path(textfile_path) if textfile_path else None
        self._counters: dict[tuple[str, tuple[str, ...]], Any] = {}

    def _counter(self, name: str, label_names: tuple[str, ...]) -> Any:
        key = (name, label_names)
        counter = self._counters.get(key)
        if counter is None:
            counter = self._prom.Counter(
                name,
                f"mkptool publish counter {name}",
                labelnames=label_names,
                namespace=self.namespace,
                registry=self.registry,
            )
            self._counters[key] = counter
        return counter

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        labels = dict(tags or {})
        counter = self._counter(name, tuple(sorted(labels)))
        if labels:
            counter.labels(**{k: str(v) for k, v in labels.items()}).inc(value)
        else:
            counter.inc(value)

    def flush(self) -> None:
        if self.textfile_path is None:
            return
        self.textfile_path.parent.mkdir(parents=True, exist_ok=True)
        self._prom.write_to_textfile(str(self.textfile_path), self.registry)
