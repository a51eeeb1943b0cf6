"""Outbound automation webhook (n8n / Zapier style receivers)"""

import logging
from datetime import datetime, timezone

import httpx

from .config import AUTOMATION_WEBHOOK_TIMEOUT, AUTOMATION_WEBHOOK_URL

logger = logging.getLogger(__name__)


async def notify_automation(event: str, payload: dict) -> dict:
    """POST an event to the automation webhook; returns {"success", "error"}"""
    if not AUTOMATION_WEBHOOK_URL:
        logger.debug(f"Automation webhook not configured, skipping {event}")
        return {"success": False, "error": "Automation webhook not configured"}

    body = {
        "event": event,
        "sentAt": datetime.now(timezone.utc).isoformat(),
        "data": payload,
    }
    try:
        async with httpx.AsyncClient(timeout=AUTOMATION_WEBHOOK_TIMEOUT) as client:
            response = await client.post(AUTOMATION_WEBHOOK_URL, json=body)
        if response.status_code >= 400:
            logger.error(f"❌ Automation webhook {event} failed: HTTP {response.status_code}")
            return {"success": False, "error": f"HTTP {response.status_code}"}
        logger.info(f"✅ Automation webhook {event} delivered")
        return {"success": True, "error": None}
    except httpx.HTTPError as e:
        logger.error(f"❌ Automation webhook {event} error: {e}")
        return {"success": False, "error": str(e)}
