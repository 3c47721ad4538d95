"""
exporter — NATS health checks exposed as Prometheus metrics.

Each check kind lives in exporter/monitor/ and records its outcome into a
Result. The collector runs every configured check per scrape and turns the
Results into gauge samples.

Usage:
    from exporter import Result, Severity
    result = Result(name="orders", check="stream", namespace="natscli")
    result.critical("stream not found")
    print(result)   # orders CRITICAL Crit:stream not found
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterator

from prometheus_client.core import GaugeMetricFamily

DEFAULT_NAMESPACE = "natscli"
NAGIOS_FORMAT = "nagios"

_METRIC_NAME_RE = re.compile(r"[^a-zA-Z0-9_:]")


class Severity(IntEnum):
    OK = 0
    WARNING = 1
    CRITICAL = 2

    @property
    def keyword(self) -> str:
        return self.name


def metric_name(*parts: str) -> str:
    """Join non-empty parts with '_' and replace characters Prometheus rejects."""
    joined = "_".join(p for p in parts if p)
    cleaned = _METRIC_NAME_RE.sub("_", joined)
    if cleaned and cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


def _format_value(value: float, unit: str) -> str:
    if unit == "s":
        return f"{value:0.4f}"
    if float(value).is_integer():
        return f"{value:0.0f}"
    return f"{value:g}"


@dataclass(frozen=True)
class PerfDataItem:
    name: str
    value: float
    unit: str = ""
    warn: float | None = None
    crit: float | None = None
    help: str = ""

    def __str__(self) -> str:
        line = f"{self.name}={_format_value(self.value, self.unit)}{self.unit}"
        if self.warn is not None or self.crit is not None:
            warn = "" if self.warn is None else _format_value(self.warn, self.unit)
            crit = "" if self.crit is None else _format_value(self.crit, self.unit)
            line += f";{warn};{crit}"
        return line


@dataclass(frozen=True)
class ResultSnapshot:
    """Immutable view of a Result taken when it is rendered or collected."""

    name: str
    check: str
    namespace: str
    severity: Severity
    criticals: tuple[str, ...]
    warnings: tuple[str, ...]
    oks: tuple[str, ...]
    perf_data: tuple[PerfDataItem, ...]

    def render(self) -> str:
        parts = [self.name, self.severity.keyword]
        if self.criticals:
            parts.append(f"Crit:{', '.join(self.criticals)}")
        if self.warnings:
            parts.append(f"Warn:{', '.join(self.warnings)}")
        if self.oks:
            parts.append(f"OK:{', '.join(self.oks)}")
        if self.perf_data:
            parts.append("|")
            parts.append(" ".join(str(pd) for pd in self.perf_data))
        return " ".join(parts)

    def collect(self) -> Iterator[GaugeMetricFamily]:
        for pd in self.perf_data:
            family = GaugeMetricFamily(
                metric_name(self.namespace, self.check, pd.name),
                pd.help or f"Data about the NATS check {self.check}",
                labels=["item"],
            )
            family.add_metric([self.name], float(pd.value))
            yield family

        status = GaugeMetricFamily(
            metric_name(self.namespace, self.check, "status_code"),
            f"Nagios compatible status code for {self.check}",
            labels=["item"],
        )
        status.add_metric([self.name], float(self.severity))
        yield status


@dataclass
class Result:
    """Outcome of one check in one scrape.

    Messages are only ever appended, so severity can only go up: once a
    critical message is recorded the result stays CRITICAL.
    """

    name: str
    check: str
    namespace: str = DEFAULT_NAMESPACE
    render_format: str = NAGIOS_FORMAT
    criticals: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    oks: list[str] = field(default_factory=list)
    perf_data: list[PerfDataItem] = field(default_factory=list)

    @property
    def severity(self) -> Severity:
        if self.criticals:
            return Severity.CRITICAL
        if self.warnings:
            return Severity.WARNING
        return Severity.OK

    @property
    def exit_code(self) -> int:
        return int(self.severity)

    def raise_severity(self, level: Severity, condition: bool, message: str) -> bool:
        """Record message at level when condition holds. Returns condition.

        CRITICAL is terminal: once reached, lower-level messages are dropped.
        """
        if not condition:
            return False
        if self.criticals and level < Severity.CRITICAL:
            return True
        if level == Severity.CRITICAL:
            self.criticals.append(message)
        elif level == Severity.WARNING:
            self.warnings.append(message)
        else:
            self.oks.append(message)
        return True

    def critical(self, message: str) -> None:
        self.raise_severity(Severity.CRITICAL, True, message)

    def warn(self, message: str) -> None:
        self.raise_severity(Severity.WARNING, True, message)

    def ok(self, message: str) -> None:
        self.raise_severity(Severity.OK, True, message)

    def critical_if_err(self, err: BaseException | None, message: str) -> bool:
        """Record message as critical when err is set.

        Callers return early on True, the way each check step short-circuits
        only on its own failure.
        """
        return self.raise_severity(Severity.CRITICAL, err is not None, message)

    def attach_metric(
        self,
        name: str,
        value: float,
        unit: str = "",
        warn: float | None = None,
        crit: float | None = None,
        help: str = "",  # noqa: A002
    ) -> None:
        self.perf_data.append(PerfDataItem(name, float(value), unit, warn, crit, help))

    def snapshot(self) -> ResultSnapshot:
        return ResultSnapshot(
            name=self.name,
            check=self.check,
            namespace=self.namespace or DEFAULT_NAMESPACE,
            severity=self.severity,
            criticals=tuple(self.criticals),
            warnings=tuple(self.warnings),
            oks=tuple(self.oks),
            perf_data=tuple(self.perf_data),
        )

    def render(self) -> str:
        return self.snapshot().render()

    def collect(self) -> Iterator[GaugeMetricFamily]:
        return self.snapshot().collect()

    def __str__(self) -> str:
        return self.render()
