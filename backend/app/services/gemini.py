"""Google Gemini generateContent client with API-version and model fallbacks."""

import logging

import httpx

from app.config import Settings, get_settings
from app.errors import InternalError, UpstreamError

logger = logging.getLogger(__name__)

NO_RESPONSE = "(No response)"


def toggled_api_version(version: str) -> str:
    """The other public API version."""
    return "v1" if version == "v1beta" else "v1beta"


def base_model_name(model: str) -> str:
    """Model name without its '-latest' alias suffix."""
    return model.removesuffix("-latest")


def extract_response_text(payload: dict) -> str:
    """First candidate's first text part, or a placeholder when there is none."""
    candidates = payload.get("candidates") or []
    if not candidates:
        return NO_RESPONSE
    first = candidates[0] or {}
    parts = (first.get("content") or {}).get("parts") or []
    text = parts[0].get("text") if parts else None
    return text or first.get("output_text") or NO_RESPONSE


class GeminiClient:
    """Blocking-from-the-caller's-view prompt completion against Gemini."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = settings or get_settings()
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self.api_version = settings.gemini_api_version
        self.base_url = settings.gemini_base_url.rstrip("/")
        self.timeout = settings.gemini_timeout_seconds
        self._transport = transport

    def url_for(self, model: str, version: str | None = None) -> str:
        return f"{self.base_url}/{version or self.api_version}/models/{model}:generateContent"

    async def generate(self, prompt: str) -> str:
        """
        Send a single-turn prompt and return the model's text.

        A 404 for the configured model/version retries once on the other API
        version, then once more with the '-latest' suffix dropped. Any other
        non-2xx answer raises UpstreamError with the provider's status and body.
        """
        if not self.api_key:
            raise InternalError("Gemini API key not configured")

        body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as http:

            async def call(model: str, version: str | None = None) -> httpx.Response:
                try:
                    return await http.post(
                        self.url_for(model, version),
                        headers={"x-goog-api-key": self.api_key},
                        json=body,
                    )
                except httpx.TimeoutException as e:
                    raise UpstreamError(f"Gemini API timed out after {self.timeout}s") from e
                except httpx.HTTPError as e:
                    raise UpstreamError(f"Gemini API request failed: {e}") from e

            resp = await call(self.model)

            if resp.status_code == httpx.codes.NOT_FOUND:
                fallback_version = toggled_api_version(self.api_version)
                logger.warning(
                    "Gemini model %s not found on %s, retrying on %s",
                    self.model, self.api_version, fallback_version,
                )
                resp = await call(self.model, fallback_version)

                if resp.status_code == httpx.codes.NOT_FOUND:
                    fallback_model = base_model_name(self.model)
                    if fallback_model != self.model:
                        logger.warning(
                            "Gemini model %s not found on %s, retrying as %s",
                            self.model, fallback_version, fallback_model,
                        )
                        resp = await call(fallback_model, fallback_version)

        if not resp.is_success:
            raise UpstreamError(
                f"Gemini API error: {resp.status_code} {resp.text}",
                upstream_status=resp.status_code,
                body=resp.text,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamError(
                f"Gemini API returned a non-JSON response: {resp.status_code}",
                upstream_status=resp.status_code,
                body=resp.text,
            ) from e
        return extract_response_text(payload)
