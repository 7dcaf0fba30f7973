"""
Cloudflare Turnstile verification for the sign-in endpoint.

Disabled (every request passes) when no secret key is configured.
"""

import httpx
from structlog import get_logger

from app.exceptions import CaptchaVerificationError

logger = get_logger(__name__)

CAPTCHA_HEADER = "x-captcha-response"


class TurnstileVerifier:
    """Verifies Turnstile tokens against Cloudflare's siteverify endpoint."""

    VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"

    def __init__(
        self,
        secret_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.secret_key = secret_key
        self.timeout = timeout
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def verify(self, token: str | None, remote_ip: str | None = None) -> None:
        """
        Raises:
            CaptchaVerificationError: token missing, rejected, or not checkable
        """
        if not self.enabled:
            return

        if not token:
            raise CaptchaVerificationError("Missing CAPTCHA response")

        data = {"secret": self.secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            response = await self.http_client.post(self.VERIFY_URL, data=data)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            logger.error("captcha_verify_unavailable", error=str(e))
            raise CaptchaVerificationError("CAPTCHA verification unavailable") from e

        if not result.get("success"):
            logger.warning("captcha_rejected", error_codes=result.get("error-codes", []))
            raise CaptchaVerificationError("Invalid CAPTCHA")

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
