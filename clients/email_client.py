"""HTTP email gateway for verification and password reset mail.

Each request body is compact JSON signed with HMAC-SHA256 (``X-Signature``)
and sent with the gateway API key (``X-API-Key``). The gateway builds the
links from the token and ``app_url``.
"""

import hashlib
import hmac
import json
import logging
from uuid import UUID

import requests

logger = logging.getLogger(__name__)

GATEWAY_TIMEOUT_SECONDS = 10


class EmailGatewayError(Exception):
    """The gateway could not be reached or refused the message."""


class EmailGatewayClient:
    """Signed POSTs to the email gateway. Every failure raises EmailGatewayError."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, app_url: str = ""):
        for name, value in (
            ("gateway_url", gateway_url),
            ("api_key", api_key),
            ("hmac_secret", hmac_secret),
        ):
            if not value:
                raise ValueError(f"{name} is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.app_url = app_url

    def _post(self, kind: str, **fields: str) -> None:
        body = json.dumps({"type": kind, **fields, "app_url": self.app_url}, separators=(",", ":"))
        signature = hmac.new(
            self.hmac_secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256
        ).hexdigest()

        try:
            response = requests.post(
                self.gateway_url,
                data=body,
                headers={
                    "Content-Type": "application/json",
                    "X-API-Key": self.api_key,
                    "X-Signature": signature,
                },
                timeout=GATEWAY_TIMEOUT_SECONDS,
            )
        except (requests.RequestException, ConnectionError) as e:
            logger.error("Email gateway unreachable (%s): %s", kind, e)
            raise EmailGatewayError(f"Connection failed: {e}") from e

        try:
            result = response.json()
        except ValueError as e:
            logger.error("Email gateway sent a non-JSON reply (%s, status %s)", kind, response.status_code)
            raise EmailGatewayError("Invalid response from gateway") from e

        if response.status_code != 200 or not result.get("success"):
            message = result.get("message", "Unknown error")
            logger.error("Email gateway rejected %s (status %s): %s", kind, response.status_code, message)
            raise EmailGatewayError(f"Gateway error: {message}")

    def send_verification_email(self, email: str, token: str, user_id: UUID) -> None:
        self._post("email_verification", email=email, token=token, user_id=str(user_id))
        logger.info("Verification email sent for user %s", user_id)

    def send_password_reset_email(self, email: str, token: str) -> None:
        self._post("password_reset", email=email, token=token)
        logger.info("Password reset email sent")
