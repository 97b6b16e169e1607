"""Cloudflare Turnstile bot-check verification."""
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.security import TurnstileResult

logger = logging.getLogger(__name__)

NETWORK_ERROR_CODE = "network-error"


class TurnstileConfigurationError(RuntimeError):
    """The verification secret is missing; verification must fail closed."""


class TurnstileVerifier:
    """Verifies client bot-check tokens against the Turnstile siteverify endpoint.

    A transport failure is reported as ``success=False`` with the
    ``network-error`` code rather than raised. There is no retry.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        verify_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.secret_key = secret_key
        self.verify_url = verify_url or settings.TURNSTILE_VERIFY_URL
        self.timeout = timeout if timeout is not None else settings.TURNSTILE_TIMEOUT_SECONDS
        self._client = client

    @classmethod
    def from_settings(cls) -> "TurnstileVerifier":
        return cls(secret_key=settings.TURNSTILE_SECRET_KEY)

    async def verify(self, token: str) -> TurnstileResult:
        if not self.secret_key:
            raise TurnstileConfigurationError("Turnstile secret key not configured")

        form = {"secret": self.secret_key, "response": token}
        try:
            if self._client is not None:
                response = await self._client.post(self.verify_url, data=form, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.verify_url, data=form, timeout=self.timeout)
            return TurnstileResult.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error(f"Turnstile verification error: {e}")
            return TurnstileResult(success=False, error_codes=[NETWORK_ERROR_CODE])
