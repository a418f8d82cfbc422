"""
Notification gateway client for dispatching client notifications via HTTP gateway.

Uses HMAC-SHA256 signature for request authentication. The gateway owns
template rendering and channel selection (email, SMS); this side only
sends (recipient, event type, payload).
"""

import hashlib
import hmac
import json
import logging
from typing import Any

import requests

from core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class NotificationGatewayError(ExternalServiceError):
    """Raised when notification gateway request fails."""

    service = "notification_gateway"


class NotificationGatewayClient:
    """Dispatch notifications via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout: float = 10):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the notification gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.timeout = timeout

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Raises:
            NotificationGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"), default=str)

        signature = hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": signature,
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Notification gateway connection failed: {e}")
            raise NotificationGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except json.JSONDecodeError:
            logger.error(f"Notification gateway returned invalid JSON: {response.text}")
            raise NotificationGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Notification gateway error: {error_msg}")
            raise NotificationGatewayError(f"Gateway error: {error_msg}")

    def dispatch(self, recipient_id: str, event_type: str, payload: dict[str, Any]) -> None:
        """
        Send one notification.

        Args:
            recipient_id: Client the notification is for
            event_type: Template key, e.g. "domain-registered"
            payload: Template variables

        Raises:
            ValueError: If recipient_id or event_type is empty
            NotificationGatewayError: On gateway failure
        """
        if not recipient_id:
            raise ValueError("recipient_id is required")
        if not event_type:
            raise ValueError("event_type is required")

        self._sign_and_send({
            "recipient_id": recipient_id,
            "event_type": event_type,
            "data": payload,
        })
        logger.info(f"Notification {event_type} dispatched to {recipient_id}")
