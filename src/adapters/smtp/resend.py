"""
Resend email sender adapter - Implements EmailSender protocol.

Sends plain-text emails through the Resend HTTP API. Any transport or
API failure is raised as ``DeliveryError``; callers decide whether the
failure matters (code delivery) or is best-effort (welcome email).
"""

import logging

import httpx

from src.domain.exceptions import DeliveryError

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


class ResendEmailSender:
    """
    Implements EmailSender protocol via the Resend API.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        app_url: str,
        code_ttl_minutes: int,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._app_url = app_url
        self._code_ttl_minutes = code_ttl_minutes
        self._client = client or httpx.Client(timeout=_RESEND_TIMEOUT)

    def close(self) -> None:
        self._client.close()

    def send_verification_code(self, email: str, code: str) -> None:
        self._send(
            to=email,
            subject=f"{code} - Your verification code",
            text=(
                f"Your verification code is: {code}\n\n"
                f"This code will expire in {self._code_ttl_minutes} minutes.\n"
                "If you didn't request this code, please ignore this email."
            ),
        )

    def send_welcome(self, email: str, name: str) -> None:
        self._send(
            to=email,
            subject=f"Welcome, {name}!",
            text=(
                f"Hey {name}!\n\n"
                "Your account is ready. Share posts with your peers, follow\n"
                "classmates and clubs, and see what's happening on campus.\n\n"
                f"Start exploring: {self._app_url}"
            ),
        )

    def _send(self, *, to: str, subject: str, text: str) -> None:
        try:
            response = self._client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"from": self._sender, "to": [to], "subject": subject, "text": text},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Resend delivery to %s failed: %s", to, exc)
            raise DeliveryError("failed to send email") from exc

        logger.info("Email sent to %s via Resend", to)
