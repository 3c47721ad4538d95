"""
Prometheus collector that runs the configured checks on every scrape.

Per scrape, checks run one after another in configuration order. Each gets a
fresh Result; context, options and handler failures are recorded in that
Result and never stop the remaining checks. Unknown kinds are logged and
produce no series.

Usage:
    exporter = Exporter.from_file("exporter.yml", namespace="natscli")
    registry = CollectorRegistry()
    registry.register(exporter)
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Iterator, Mapping

from prometheus_client.core import GaugeMetricFamily

from exporter import DEFAULT_NAMESPACE, Result, Severity, metric_name
from exporter.check_config import Check, ExporterConfig, parse_config
from exporter.context import ContextError, context_dir, context_name, resolve_context
from exporter.monitor import DEFAULT_TIMEOUT_SECONDS
from exporter.registry import CHECK_REGISTRY, Handler, lookup

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.OK: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.CRITICAL: logging.ERROR,
}


class Exporter:
    def __init__(
        self,
        config: ExporterConfig,
        namespace: str = "",
        log: logging.Logger | None = None,
        check_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        scrape_timeout: float = 0,
        context_dir: str | Path | None = None,
        registry: Mapping[str, Handler] = CHECK_REGISTRY,
    ) -> None:
        self.config = config
        self.namespace = metric_name(namespace.strip()) if namespace and namespace.strip() else DEFAULT_NAMESPACE
        self.log = log or logger
        self.check_timeout = check_timeout
        self.scrape_timeout = scrape_timeout
        self.context_dir = context_dir
        self.registry = registry

    @classmethod
    def from_file(cls, path: str | Path, namespace: str = "", **kwargs) -> Exporter:
        """Build an exporter from a configuration file.

        Raises:
            OSError: the file can't be read.
            ValueError: the file is not a valid configuration.
        """
        return cls(parse_config(path), namespace=namespace, **kwargs)

    def describe(self) -> list:
        # The metric set depends on the configured checks and what each check
        # reports, so nothing is described up front.
        return []

    def collect(self) -> Iterator[GaugeMetricFamily]:
        families: dict[str, GaugeMetricFamily] = {}
        for result in self.run_checks():
            for family in result.collect():
                merged = families.get(family.name)
                if merged is None:
                    families[family.name] = family
                else:
                    merged.samples.extend(family.samples)
        yield from families.values()

    def run_checks(self) -> list[Result]:
        """Run every configured check once and return their Results."""
        results: list[Result] = []
        deadline = time.monotonic() + self.scrape_timeout if self.scrape_timeout > 0 else None

        for idx, check in enumerate(self.config.checks):
            if deadline is not None and time.monotonic() >= deadline:
                skipped = ", ".join(c.name for c in self.config.checks[idx:])
                self.log.warning(
                    "scrape timeout of %gs reached, not running: %s", self.scrape_timeout, skipped
                )
                break

            handler = lookup(check.kind, self.registry)
            if handler is None:
                self.log.warning("Unknown check kind %s for check %s", check.kind, check.name)
                continue

            result = self.run_check(check, handler)
            self.log.log(_LOG_LEVELS[result.severity], "%s", result)
            results.append(result)

        return results

    def run_check(self, check: Check, handler: Handler) -> Result:
        result = Result(name=check.name, check=check.kind, namespace=self.namespace)

        try:
            ctx_dir = context_dir(self.context_dir)
            ctx = resolve_context(context_name(check, self.config, ctx_dir), ctx_dir)
            servers, nats_opts = ctx.connection_options(self.check_timeout)
        except ContextError as exc:
            result.critical(f"could not load context: {exc}")
            return result
        except Exception as exc:  # noqa: BLE001
            self.log.debug("context for %s raised", check.name, exc_info=True)
            result.critical(f"could not load context: {exc or type(exc).__name__}")
            return result

        try:
            handler(servers, nats_opts, check, result)
        except Exception as exc:  # noqa: BLE001
            self.log.debug("handler for %s raised", check.name, exc_info=True)
            result.critical(f"check failed: {exc or type(exc).__name__}")

        return result
