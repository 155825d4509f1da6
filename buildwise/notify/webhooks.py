"""Push delivery of resolution events to configured webhook URLs.

After a conflict is resolved successfully, every URL in
``settings.resolve_notify_urls`` receives a POST with a JSON event:

    {
        "event": "conflict.resolved",
        "project_id": "<project>",
        "conflict_id": "<module>::node::<id>",
        "action": "apply_module",
        "actor": "<user id>",
        "version": 4,                         # active version after resolution
        "timestamp": "2026-02-19T03:30:00+00:00"
    }

Delivery is best-effort: failures are logged and never propagate into the
resolution that triggered them.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Iterable

import httpx

from buildwise.config import settings

logger = logging.getLogger(__name__)

RESOLVED_EVENT = "conflict.resolved"


def build_resolved_event(
    project_id: str,
    conflict_id: str,
    action: str,
    actor: str,
    version: int | None,
) -> dict[str, Any]:
    return {
        "event": RESOLVED_EVENT,
        "project_id": project_id,
        "conflict_id": conflict_id,
        "action": action,
        "actor": actor,
        "version": version,
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }


async def deliver_webhook(client: httpx.AsyncClient, url: str, payload: dict[str, Any]) -> bool:
    """POST one event to one endpoint.

    Returns:
        ``True`` on a 2xx response, ``False`` on any HTTP or transport error.
    """
    try:
        response = await client.post(url, json=payload)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Webhook delivery to %s failed: %s", url, exc)
        return False
    return True


async def dispatch_webhooks(
    payload: dict[str, Any],
    urls: Iterable[str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Fan out ``payload`` to every URL concurrently.

    Args:
        payload:   JSON-serializable event.
        urls:      Target URLs; defaults to ``settings.resolve_notify_urls``.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).

    Returns:
        Number of successful deliveries.
    """
    targets = list(settings.resolve_notify_urls if urls is None else urls)
    if not targets:
        return 0

    async with httpx.AsyncClient(
        timeout=settings.notify_timeout_seconds, transport=transport
    ) as client:
        results = await asyncio.gather(*(deliver_webhook(client, url, payload) for url in targets))

    delivered = sum(1 for ok in results if ok)
    logger.info(
        "Dispatched %s event to %d/%d endpoint(s)", payload.get("event"), delivered, len(targets)
    )
    return delivered
