"""Orchestrator: resolve workloads -> aggregate usage -> recommend -> report -> atomic write.
One read-only pass. Any upstream or topology error aborts the pass before anything is written.
"""
import logging
import json
import os
import sys
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import yaml

from config import (
    setup_logging, validate_options, build_options, load_config_file,
    AdvisorOptions, ConfigValidationError,
)
from cluster import kube_client
from cluster.discovery import resolve_workloads
from errors import AdvisorError
from metrics import aggregator
from metrics.prometheus_client import PrometheusClient
from analysis.recommendation import recommend
from analysis.report import ReportBuilder

logger = logging.getLogger(__name__)


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    os.makedirs(dirp, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix='.tmp_report_', dir=dirp)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        # Atomic replace
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def run_once(options: AdvisorOptions, apps_api, core_api, prom,
             now: Optional[datetime] = None) -> Dict[str, Any]:
    """Run one analysis pass over `options.namespaces` and return the report.

    Args:
        options: validated pass settings
        apps_api: kubernetes AppsV1Api (or compatible)
        core_api: kubernetes CoreV1Api (or compatible)
        prom: PrometheusClient (or compatible)
        now: evaluation instant shared by every query of the pass
    """
    now = now or datetime.now(timezone.utc)
    at = now.timestamp()
    builder = ReportBuilder()

    for workload, group in resolve_workloads(apps_api, core_api, options.namespaces):
        usage = aggregator.aggregate(
            prom, workload.namespace, group.pod_names,
            window=options.window,
            quantile=options.quantile,
            limit_margin=options.limit_margin,
            at=at,
            cpu_metric=options.cpu_usage_metric,
            memory_metric=options.memory_usage_metric,
        )
        rows, cpu_delta, memory_delta = recommend(workload, group, usage)
        builder.add(rows, cpu_delta, memory_delta)
        logger.info(
            f"[{workload.namespace}] {workload.name}: {len(rows)} container(s), "
            f"cpu delta {cpu_delta:+.2f} cores, memory delta {memory_delta / (1024 * 1024):+.0f}Mi"
        )

    return builder.build(
        options.namespaces, options.window, options.quantile, options.limit_margin,
        generated_at=now,
    )


def main(config_path: Optional[str] = None) -> int:
    setup_logging()

    try:
        file_config = load_config_file(config_path) if config_path else {}
        options = build_options(file_config)
        validate_options(options)
        logger.info("Configuration validated successfully")
    except FileNotFoundError:
        logger.error(f"Configuration file not found: {config_path}")
        return 1
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML configuration: {e}")
        return 1
    except (ConfigValidationError, ValueError, TypeError) as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        clients = kube_client.load_clients(options.kubeconfig_path, options.kube_context)
        if not options.namespaces:
            options.namespaces = [
                kube_client.default_namespace(clients, options.kubeconfig_path, options.kube_context)
            ]
        prom = PrometheusClient(
            options.prometheus_url,
            timeout=options.prometheus_timeout_seconds,
            verify_tls=options.prometheus_verify_tls,
        )

        logger.info("=" * 60)
        logger.info(f"Namespaces: {', '.join(options.namespaces)}")
        logger.info(f"Prometheus URL: {options.prometheus_url}")
        logger.info(
            f"Window: {options.window}, request quantile: {options.quantile}, "
            f"limit margin: {options.limit_margin}"
        )
        logger.info("=" * 60)

        report = run_once(options, clients.apps, clients.core, prom)
    except AdvisorError as e:
        logger.error(f"Analysis aborted, no report written: {e}")
        return 1

    _atomic_write(options.output_path, json.dumps(report, indent=2))
    logger.info(f"Wrote report to {options.output_path}")
    logger.info("=" * 60)
    logger.info(f"Total savings: {report['summary']['text']}")
    logger.info("=" * 60)
    return 0


def cli() -> int:
    config_file = sys.argv[1] if len(sys.argv) > 1 else None
    return main(config_file)


if __name__ == '__main__':
    raise SystemExit(cli())
