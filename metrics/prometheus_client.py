import logging
import time
from typing import Any, Dict, List, Optional

import requests

from errors import UpstreamError

logger = logging.getLogger(__name__)


class PrometheusError(UpstreamError):
    pass


class PrometheusConnectionError(PrometheusError):
    """Prometheus could not be reached"""
    pass


class PrometheusQueryError(PrometheusError):
    """Prometheus answered, but the query failed or returned an unexpected payload"""
    pass


def _now() -> float:
    return time.time()


class PrometheusClient:
    """Thin wrapper over the Prometheus HTTP API.

    One instance is created per analysis pass and handed to the aggregator.
    Failures are raised immediately; there is no retry and no cache.
    """

    def __init__(self, base_url: str, timeout: int = 30, verify_tls: bool = True):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.verify_tls = verify_tls

    def query_instant(self, promql: str, at: Optional[float] = None) -> List[Dict[str, Any]]:
        """
        Query `/api/v1/query` at timestamp `at` (default: now) and return `data.result`.
        Only instant vectors are accepted; any other result type is a query error.
        """
        params = {
            "query": promql,
            "time": str(at if at is not None else _now()),
        }
        url = f"{self.base_url}/api/v1/query"
        logger.debug(f"PromQL: {promql}")
        try:
            r = requests.get(url, params=params, timeout=self.timeout, verify=self.verify_tls)
        except requests.RequestException as e:
            raise PrometheusConnectionError(f"request to {url} failed: {e}") from e
        if r.status_code != 200:
            raise PrometheusQueryError(f"prometheus returned status {r.status_code}: {r.text}")
        try:
            data = r.json()
        except ValueError as e:
            raise PrometheusQueryError(f"prometheus returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise PrometheusQueryError(f"expected a JSON object, got {type(data).__name__} from {url}")
        if data.get("status") != "success":
            raise PrometheusQueryError(
                f"prometheus error ({data.get('errorType')}): {data.get('error')} for query {promql}"
            )
        payload = data.get("data") or {}
        result_type = payload.get("resultType")
        if result_type != "vector":
            raise PrometheusQueryError(f"expected a vector result, got {result_type} for query {promql}")
        return payload.get("result") or []
