# printhub/integrations/whatsapp_gateway.py
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from printhub.core.exceptions import UpstreamUnavailableError
from printhub.core.logging import get_logger

log = get_logger(__name__)


class WhatsAppGatewayClient:
    """
    HTTP client for a WhatsApp sending gateway.

    POST {base_url}/messages  {"to": "<digits>", "text": "..."}  →  {"sent": true, "id": "..."}
    A 409/503 answer means the gateway session is not ready (QR not scanned, reconnecting):
    that is reported as False, not as an error.
    """

    name = "whatsapp_gateway"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        if not self.base_url:
            raise RuntimeError("WHATSAPP_GATEWAY_URL is not set")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def send(self, target: str, message: str) -> bool:
        if not target or not message:
            raise ValueError("target and message are required")

        payload = {"to": target, "text": message}
        # new client per call: the worker runs each job in its own event loop
        async with httpx.AsyncClient(
            base_url=self.base_url, headers=self._headers(), timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                resp = await client.post("/messages", json=payload)
            except httpx.HTTPError as e:
                log.warning("whatsapp_gateway_http_error", error=str(e))
                raise UpstreamUnavailableError(f"WhatsApp gateway unreachable: {e}") from e

        if resp.status_code in (409, 503):
            log.warning("whatsapp_gateway_not_ready", status=resp.status_code)
            return False
        if resp.status_code >= 400:
            raise UpstreamUnavailableError(
                f"WhatsApp gateway rejected message (HTTP {resp.status_code})",
                extra={"status": resp.status_code},
            )

        try:
            data: Dict[str, Any] = resp.json()
        except ValueError:
            data = {}
        sent = bool(data.get("sent", True))
        log.info("whatsapp_message_sent" if sent else "whatsapp_message_not_sent", message_id=data.get("id"))
        return sent


__all__ = ["WhatsAppGatewayClient"]
