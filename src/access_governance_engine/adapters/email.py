"""HttpEmailSender — delivers notification email through a transactional mail API.

Posts each message as JSON to the configured endpoint with a bearer token.
Delivery never raises: transport errors, timeouts and non-2xx responses are
logged and reported as False so that a notification failure never rolls
back the operation that triggered it.
"""

import httpx

from access_governance_engine.core.models import EmailMessage
from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 10.0


class HttpEmailSender:
    """INotificationSender posting to an HTTP mail API.

    Args:
        api_url: Mail API endpoint. When empty, sending is disabled and every
            call returns False.
        api_token: Bearer token for the mail API.
        timeout_seconds: Per-request timeout.
        transport: Optional httpx transport, for tests.
    """

    def __init__(
        self,
        api_url: str,
        api_token: str = "",
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_token = api_token
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def send_email(self, message: EmailMessage) -> bool:
        """Send one email.

        Returns:
            True when the mail API accepted the message.
        """
        if not self._api_url:
            logger.warning("Email API not configured, dropping email", subject=message.subject)
            return False

        headers = {"Authorization": f"Bearer {self._api_token}"} if self._api_token else {}
        body = {
            "to": message.to,
            "from": message.from_address,
            "subject": message.subject,
            "text": message.text,
            "html": message.html,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(self._api_url, json=body, headers=headers)
        except httpx.TimeoutException:
            logger.warning("Email API timed out", to=message.to, timeout_s=self._timeout_seconds)
            return False
        except httpx.HTTPError as exc:
            logger.error("Email API request failed", to=message.to, error=str(exc))
            return False

        if response.is_success:
            logger.debug("Email sent", to=message.to, subject=message.subject)
            return True

        logger.error(
            "Email API rejected message",
            to=message.to,
            status_code=response.status_code,
        )
        return False
