"""
Cloudflare Turnstile token verification
"""
from typing import Optional

import requests
from pydantic import ValidationError

from src.shared.config import AppConfig
from src.shared.logging_utils import info as log_info, warning as log_warning
from src.specs.common.errors import CandidateFormError
from src.specs.http.submit_candidate import TurnstileVerifyResponse


class TurnstileVerifier:
    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None):
        self._config = config
        self._session = session or requests.Session()

    def verify(self, token: str) -> bool:
        """
        Check a Turnstile response token with Cloudflare.

        Always succeeds when the app runs in local development mode.

        Raises:
            CandidateFormError: If Cloudflare could not be reached or replied with garbage
        """
        if self._config.is_local_dev:
            log_info(None, "turnstile:bypassed_local_dev")
            return True

        try:
            resp = self._session.post(
                self._config.turnstile_verify_url,
                data={
                    "secret": self._config.turnstile_secret_key.get_secret_value(),
                    "response": token,
                },
                timeout=self._config.http_timeout,
            )
            resp.raise_for_status()
            result = TurnstileVerifyResponse.model_validate(resp.json())
        except (requests.RequestException, ValueError, ValidationError) as exc:
            raise CandidateFormError(
                "Turnstile verification unavailable",
                code="VERIFICATION_UNAVAILABLE",
                details={"error": str(exc)},
            ) from exc

        if not result.success:
            log_warning(None, "turnstile:rejected", errorCodes=result.error_codes, hostname=result.hostname)
        return result.success
