"""Completion webhook.

Notification failures never fail the provisioning job: every error is
logged and swallowed.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

USER_AGENT = "N8N-Setup-Bot/1.0"

# Header names tried with the shared secret once bearer auth is rejected
ALTERNATE_AUTH_HEADERS = ("X-API-Key", "apikey", "X-Webhook-Token")

AUTH_REJECTED = (401, 403)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class NotificationPayload:
    """Webhook body."""
    status: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_now_iso)


def build_payload(
    settings: Settings,
    status: str = "success",
    message: Optional[str] = None,
    summary: Optional[Dict[str, Any]] = None,
) -> NotificationPayload:
    if message is None:
        message = "N8N setup completed successfully" if status == "success" else "N8N setup failed"

    data = {
        "email": settings.N8N_USER_EMAIL,
        "firstName": settings.N8N_FIRST_NAME,
        "lastName": settings.N8N_LAST_NAME,
        "fullName": settings.full_name,
        "password": settings.N8N_USER_PASSWORD,
        "n8nUrl": settings.N8N_EDITOR_BASE_URL,
        "projectId": settings.NORTHFLANK_PROJECT_ID,
        "projectName": settings.NORTHFLANK_PROJECT_NAME,
        "setupCompletedAt": _now_iso(),
    }
    if settings.N8N_VERSION:
        data["n8nVersion"] = settings.N8N_VERSION
    if summary is not None:
        data["workflows"] = summary

    return NotificationPayload(status=status, message=message, data=data)


class WebhookNotifier:
    """Posts a payload to the setup webhook with an auth fallback cascade.

    Order: configured credential, then no auth header, then the secret under
    each alternate header name. The cascade only advances on 401/403.
    """

    def __init__(
        self,
        url: str,
        token: str = "",
        api_key: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.token = token
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "WebhookNotifier":
        return cls(
            url=settings.SETUP_WEBHOOK_URL,
            token=settings.SETUP_WEBHOOK_TOKEN,
            api_key=settings.SETUP_WEBHOOK_API_KEY,
            transport=transport,
        )

    def auth_variants(self) -> List[Tuple[str, Dict[str, str]]]:
        """Header sets to try, in order, labelled for logging."""
        secret = self.api_key or self.token
        variants: List[Tuple[str, Dict[str, str]]] = []

        if self.token:
            variants.append(("bearer", {"Authorization": f"Bearer {self.token}"}))
        elif self.api_key:
            variants.append((ALTERNATE_AUTH_HEADERS[0], {ALTERNATE_AUTH_HEADERS[0]: self.api_key}))

        variants.append(("no-auth", {}))

        if secret:
            used = {label for label, _ in variants}
            for header in ALTERNATE_AUTH_HEADERS:
                if header not in used:
                    variants.append((header, {header: secret}))

        return variants

    async def send(self, payload: NotificationPayload) -> bool:
        """Send ``payload``; True only when the webhook answered 2xx."""
        if not self.url:
            logger.info("No webhook URL provided, skipping notification")
            return False

        body = asdict(payload)
        base_headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                for label, auth_headers in self.auth_variants():
                    response = await client.post(
                        self.url, json=body, headers={**base_headers, **auth_headers}
                    )

                    if 200 <= response.status_code < 300:
                        logger.info(f"Notification sent ({label}), status {response.status_code}")
                        return True

                    if response.status_code in AUTH_REJECTED:
                        logger.warning(f"Webhook rejected auth ({label}): {response.status_code}")
                        continue

                    logger.warning(
                        f"Notification got unexpected status {response.status_code}: "
                        f"{response.text[:200]}"
                    )
                    return False

        except httpx.ConnectError:
            logger.error("Connection refused to webhook URL")
            return False
        except httpx.TimeoutException:
            logger.error("Webhook request timed out")
            return False
        except Exception as e:
            logger.error(f"Failed to send notification: {e}")
            return False

        logger.error("Webhook rejected every authentication variant")
        return False


async def send_notification(
    settings: Settings,
    status: str = "success",
    message: Optional[str] = None,
    summary: Optional[Dict[str, Any]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    logger.info(
        f"Preparing {status} notification for {settings.full_name} ({settings.N8N_USER_EMAIL}), "
        f"webhook {'configured' if settings.SETUP_WEBHOOK_URL else 'not provided'}"
    )
    notifier = WebhookNotifier.from_settings(settings, transport=transport)
    return await notifier.send(build_payload(settings, status, message, summary))
