"""
Deployment health checker.

Probes each component of a deployment with a bounded GET and records the
result on the component row. Components are checked independently: a probe
or persistence failure on one component is reported for that component and
never aborts the others.

Classification:
    no url                      -> not_configured (not probed)
    timeout / network failure   -> down
    non-2xx response            -> degraded ("HTTP <code>")
    2xx slower than 5000 ms     -> degraded
    2xx within 5000 ms          -> healthy
"""

import asyncio
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import requests

from portfolio_mcp.errors import RequestTimeoutError
from portfolio_mcp.store import Store, now_iso

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10  # seconds
SLOW_RESPONSE_MS = 5000
HEALTH_PATHS = {"mcp_server": "/health"}


def probe_url(component_type: str, url: str) -> str:
    """URL to probe for a component; mcp_server gets /health appended."""
    suffix = HEALTH_PATHS.get(component_type)
    if not suffix:
        return url
    return url.rstrip("/") + suffix


def classify(status_code: int, latency_ms: float) -> Tuple[str, Optional[str]]:
    """
    Classify a received response.

    Returns:
        tuple: (status, error_message) with error_message None when healthy
    """
    if not 200 <= status_code < 300:
        return "degraded", f"HTTP {status_code}"
    if latency_ms > SLOW_RESPONSE_MS:
        return "degraded", f"Slow response: {round(latency_ms)}ms (threshold {SLOW_RESPONSE_MS}ms)"
    return "healthy", None


async def probe_component(component: Dict[str, Any], timeout: float = PROBE_TIMEOUT) -> Dict[str, Any]:
    """
    Probe one component.

    Args:
        component: deployment_components row (component_type, url)
        timeout: Request timeout in seconds

    Returns:
        dict: {status, error_message, response_time_ms, http_status, url}
    """
    url = component.get("url")
    if not url:
        return {"status": "not_configured", "error_message": None, "url": None}

    target = probe_url(component.get("component_type"), url)
    try:
        start_time = datetime.now()
        response = await asyncio.to_thread(requests.get, target, timeout=timeout)
        end_time = datetime.now()
        latency_ms = (end_time - start_time).total_seconds() * 1000
    except requests.exceptions.Timeout:
        error = RequestTimeoutError(f"Request to {target} timed out after {timeout}s")
        return {"status": "down", "error_message": str(error), "url": target}
    except requests.exceptions.ConnectionError as e:
        return {"status": "down", "error_message": f"Connection failed: {e}", "url": target}
    except requests.exceptions.RequestException as e:
        return {"status": "down", "error_message": f"Request failed: {e}", "url": target}

    status, error_message = classify(response.status_code, latency_ms)
    return {
        "status": status,
        "error_message": error_message,
        "response_time_ms": round(latency_ms, 2),
        "http_status": response.status_code,
        "url": target,
    }


async def _check_and_record(store: Store, component: Dict[str, Any]) -> Dict[str, Any]:
    result = await probe_component(component)
    checked_at = now_iso()
    await store.run(
        store.table("deployment_components")
        .update({
            "status": result["status"],
            "error_message": result["error_message"],
            "last_checked": checked_at,
        })
        .eq("id", component["id"]),
        step=f"record {component.get('component_type')} health",
    )
    result["last_checked"] = checked_at
    return result


async def check_deployment(store: Store, deployment: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check every component of a deployment concurrently.

    Args:
        store: Store used to persist each component's result
        deployment: Deployment row with its deployment_components

    Returns:
        dict: {deployment_id, slug, checked_at, summary, components}
            where components maps component_type to its result and summary
            counts components per status
    """
    components = deployment.get("deployment_components") or []
    results = await asyncio.gather(
        *(_check_and_record(store, component) for component in components),
        return_exceptions=True,
    )

    by_type: Dict[str, Dict[str, Any]] = {}
    for component, result in zip(components, results):
        component_type = component.get("component_type")
        if isinstance(result, Exception):
            logger.error(f"Health check for {deployment.get('slug')}/{component_type} failed: {result}")
            result = {"status": "unknown", "error_message": f"Health check failed: {result}", "url": component.get("url")}
        by_type[component_type] = result

    summary = dict(Counter(r["status"] for r in by_type.values()))
    logger.info(f"Health check for {deployment.get('slug')}: {summary}")
    return {
        "deployment_id": deployment.get("id"),
        "slug": deployment.get("slug"),
        "checked_at": now_iso(),
        "summary": summary,
        "components": by_type,
    }
