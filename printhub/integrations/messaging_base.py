# printhub/integrations/messaging_base.py
from __future__ import annotations

from typing import Optional, Protocol

from printhub.core.config import Settings, get_settings
from printhub.core.logging import get_logger

log = get_logger(__name__)


class MessagingChannel(Protocol):
    name: str

    async def send(self, target: str, message: str) -> bool:
        """True when the provider accepted the message, False when the channel is not ready.

        Transport failures raise UpstreamUnavailableError.
        """
        ...


class NullChannel:
    """
    Channel used when no messaging provider is configured.

    It is never "ready": every send reports False so callers see an undelivered
    notification instead of a silent success.
    """

    name = "none"

    async def send(self, target: str, message: str) -> bool:
        log.warning("messaging_channel_not_configured", target_len=len(target or ""), message_len=len(message or ""))
        return False


def get_messaging_channel(settings: Optional[Settings] = None) -> MessagingChannel:
    settings = settings or get_settings()
    provider = settings.MESSAGING_PROVIDER
    if provider == "whatsapp_gateway":
        from printhub.integrations.whatsapp_gateway import WhatsAppGatewayClient

        return WhatsAppGatewayClient(
            base_url=settings.WHATSAPP_GATEWAY_URL or "",
            token=settings.WHATSAPP_GATEWAY_TOKEN,
            timeout=settings.NOTIFY_SEND_TIMEOUT_SECONDS,
        )
    if provider == "none":
        return NullChannel()
    raise RuntimeError(f"Unsupported MESSAGING_PROVIDER: {provider}")


__all__ = ["MessagingChannel", "NullChannel", "get_messaging_channel"]
