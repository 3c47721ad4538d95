#!/usr/bin/env python3
"""
exporter/main.py — Command line entry point.

Serves the configured checks as Prometheus metrics, or runs them once and
exits with the worst Nagios status code.

Usage:
    nats-check-exporter                          # settings from .env + environment
    nats-check-exporter --config checks.yml --port 9100
    nats-check-exporter --once                   # one pass, Nagios lines on stdout
    python -m exporter.main --env-file env/prod.env
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from prometheus_client import CollectorRegistry, start_http_server
from pydantic import ValidationError

from config.settings import Settings, load_settings
from exporter import Result
from exporter.collector import Exporter

logger = logging.getLogger("exporter")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Expose NATS health checks as Prometheus metrics")
    parser.add_argument("--env-file", default=".env", help="Settings file (default: .env)")
    parser.add_argument("--config", help="Check configuration YAML (EXPORTER_CONFIG)")
    parser.add_argument("--namespace", help="Metric namespace (EXPORTER_NAMESPACE)")
    parser.add_argument("--listen", help="Listen address (EXPORTER_LISTEN_ADDRESS)")
    parser.add_argument("--port", type=int, help="Listen port (EXPORTER_PORT)")
    parser.add_argument("--log-level", help="Log level (EXPORTER_LOG_LEVEL)")
    parser.add_argument("--once", action="store_true", help="Run all checks once and exit")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Settings from env file + environment, with command line flags on top."""
    base = load_settings(args.env_file)
    overrides = {
        "EXPORTER_CONFIG": args.config,
        "EXPORTER_NAMESPACE": args.namespace,
        "EXPORTER_LISTEN_ADDRESS": args.listen,
        "EXPORTER_PORT": args.port,
        "EXPORTER_LOG_LEVEL": args.log_level,
    }
    values = base.model_dump()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


def build_exporter(cfg: Settings) -> Exporter:
    return Exporter.from_file(
        cfg.EXPORTER_CONFIG,
        namespace=cfg.EXPORTER_NAMESPACE,
        log=logger,
        check_timeout=cfg.EXPORTER_CHECK_TIMEOUT_SECONDS,
        scrape_timeout=cfg.EXPORTER_SCRAPE_TIMEOUT_SECONDS,
        context_dir=cfg.NATS_CONTEXT_DIR,
    )


def _print_results(results: list[Result]) -> int:
    """Print one Nagios line per check. Returns the worst exit code."""
    for r in results:
        print(r)
    return max((r.exit_code for r in results), default=0)


def serve(exporter: Exporter, cfg: Settings) -> None:
    registry = CollectorRegistry()
    registry.register(exporter)
    start_http_server(cfg.EXPORTER_PORT, addr=cfg.EXPORTER_LISTEN_ADDRESS, registry=registry)
    logger.info(
        "serving %d checks on http://%s:%d/metrics",
        len(exporter.config.checks),
        cfg.EXPORTER_LISTEN_ADDRESS,
        cfg.EXPORTER_PORT,
    )
    threading.Event().wait()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        cfg = build_settings(args)
    except (ValidationError, ValueError) as exc:
        print(f"ERROR: invalid settings: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=cfg.EXPORTER_LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        exporter = build_exporter(cfg)
    except (OSError, ValueError) as exc:
        logger.error("could not load configuration %s: %s", cfg.EXPORTER_CONFIG, exc)
        return 1

    if args.once:
        return _print_results(exporter.run_checks())

    serve(exporter, cfg)
    return 0


if __name__ == "__main__":
    sys.exit(main())
