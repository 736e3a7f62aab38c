"""HTTP client for the external multimodal image-generation provider.

Processing flow:
    1. Encode the source image as an inline ``data:`` URI.
    2. Synthesize a fresh randomized prompt (unless one is supplied).
    3. POST a chat-completions request asking for image and text output.
    4. Extract the first image reference from
       ``choices[0].message.images[0].image_url.url``.

The provider places generated images in a dedicated ``images`` array on the
message, not in the text ``content`` field, so ``content`` is ignored.

Error handling strategy:
    Every failure raises a :class:`ProviderError` subclass with a descriptive
    message for upstream handling.  Nothing is retried here: a failed call is
    terminal for the request that made it.

    - missing API key          -> ProviderConfigurationError
    - HTTP 402                 -> InsufficientProviderCreditsError
    - other non-2xx response   -> ProviderError (status + provider message)
    - timeout                  -> ProviderTimeoutError
    - no image in the response -> MissingImageError

Configuration:
    All settings arrive through :class:`~aivenger.core.config.ProviderSettings`
    at construction time.  This module never reads the process environment.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import random

import httpx

from aivenger.core.catalogs import DEFAULT_CATALOGS, PromptCatalogs
from aivenger.core.config import ProviderSettings
from aivenger.core.prompt_synthesizer import synthesize_prompt

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Raised when the provider cannot produce an image."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderConfigurationError(ProviderError):
    """Raised when the client is used without an API key."""


class InsufficientProviderCreditsError(ProviderError):
    """Raised when the provider account is out of credits (HTTP 402)."""


class ProviderTimeoutError(ProviderError):
    """Raised when the provider doesn't answer within the configured timeout."""


class MissingImageError(ProviderError):
    """Raised when a successful response carries no image reference."""


class ImageFetchError(ProviderError):
    """Raised when a returned image reference cannot be resolved to bytes."""


def encode_data_uri(image_bytes: bytes, mime_type: str) -> str:
    """Encode raw image bytes as a base64 ``data:`` URI."""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def decode_data_uri(uri: str) -> tuple[bytes, str]:
    """Decode a base64 ``data:`` URI.

    Args:
        uri: A URI of the form ``data:<mime>;base64,<payload>``.

    Returns:
        Tuple of ``(bytes, mime_type)``.

    Raises:
        ImageFetchError: If the URI is not a base64 data URI.
    """
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ImageFetchError("Unsupported data URI: expected base64 encoding")

    mime_type = header[len("data:"):-len(";base64")] or "application/octet-stream"
    try:
        return base64.b64decode(payload, validate=True), mime_type
    except (binascii.Error, ValueError) as e:
        raise ImageFetchError(f"Invalid base64 payload in data URI: {e}") from e


def _error_message(response: httpx.Response) -> str:
    """Pull the provider's error message out of a failed response."""
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError):
        return "Unknown error"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("message"):
            return str(data["message"])
    return "Unknown error"


def extract_image_url(data: dict) -> str | None:
    """Return ``choices[0].message.images[0].image_url.url`` or None."""
    try:
        url = data["choices"][0]["message"]["images"][0]["image_url"]["url"]
    except (KeyError, IndexError, TypeError):
        return None
    return url if isinstance(url, str) and url else None


class ImageGenerationClient:
    """Client for an OpenAI-compatible chat endpoint that returns images.

    Attributes:
        settings: Provider configuration.
        catalogs: Prompt catalogs used when no prompt is supplied.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        catalogs: PromptCatalogs = DEFAULT_CATALOGS,
        rng: random.Random | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        self.catalogs = catalogs
        self._rng = rng or random.Random()
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(settings.timeout, connect=10.0)
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> ImageGenerationClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        if not self.settings.api_key:
            raise ProviderConfigurationError("Image provider API key is not configured")
        return {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.settings.app_url,
            "X-Title": self.settings.app_title,
        }

    def build_payload(self, image_bytes: bytes, mime_type: str, prompt: str) -> dict:
        """Assemble the chat-completions request body."""
        return {
            "model": self.settings.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": encode_data_uri(image_bytes, mime_type)},
                        },
                    ],
                }
            ],
            "modalities": ["image", "text"],
        }

    def generate(self, image_bytes: bytes, mime_type: str, prompt: str | None = None) -> str:
        """Generate a stylized image from a source photo.

        Args:
            image_bytes: Raw source image.
            mime_type: MIME type of the source image, e.g. ``"image/jpeg"``.
            prompt: Instruction to send.  A randomized prompt is synthesized
                when omitted.

        Returns:
            The reference to the generated image.  Usually a ``data:`` URI,
            possibly an ephemeral remote URL.

        Raises:
            ProviderError: On any failure (see module docstring).
        """
        headers = self._headers()
        if prompt is None:
            prompt = synthesize_prompt(self._rng, self.catalogs)

        payload = self.build_payload(image_bytes, mime_type, prompt)
        url = f"{self.settings.base_url}/chat/completions"

        logger.info(f"Requesting image from {self.settings.model} ({len(image_bytes)} source bytes)")
        try:
            response = self._client.post(
                url,
                headers=headers,
                json=payload,
                timeout=self.settings.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Image provider timed out after {self.settings.timeout}s")
            raise ProviderTimeoutError(
                f"Image provider did not respond within {self.settings.timeout:g} seconds"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Image provider request failed: {e}")
            raise ProviderError(f"Image provider request failed: {e}") from e

        if response.status_code == 402:
            logger.error("Image provider rejected the request: insufficient provider credits")
            raise InsufficientProviderCreditsError(
                "Insufficient image provider credits. Add credits to the provider account "
                "(https://openrouter.ai/settings/credits).",
                status_code=402,
            )

        if not response.is_success:
            message = _error_message(response)
            logger.error(f"Image provider error {response.status_code}: {message}")
            raise ProviderError(
                f"Image provider failed ({response.status_code}): {message}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ProviderError("Image provider returned a non-JSON response") from e

        image_url = extract_image_url(data)
        if not image_url:
            logger.error(f"No image in provider response: {json.dumps(data)[:2000]}")
            raise MissingImageError("No image URL in image provider response")

        return image_url

    def fetch_image(self, url: str) -> bytes:
        """Resolve an image reference returned by :meth:`generate` to bytes.

        Args:
            url: A base64 ``data:`` URI or an ``http(s)`` URL.

        Returns:
            The image bytes.

        Raises:
            ImageFetchError: If the reference can't be decoded or downloaded.
        """
        if url.startswith("data:"):
            image_bytes, _ = decode_data_uri(url)
            return image_bytes

        if not url.startswith(("http://", "https://")):
            raise ImageFetchError(f"Unsupported image reference: {url[:64]}")

        try:
            response = self._client.get(url, timeout=self.settings.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ImageFetchError(f"Failed to download generated image: {e}") from e
        return response.content

    def list_image_models(self) -> list[dict]:
        """List provider models that can produce images.

        Returns:
            Model entries whose id mentions both ``gemini`` and ``image``.

        Raises:
            ProviderError: If the model listing cannot be fetched.
        """
        headers = self._headers()
        try:
            response = self._client.get(
                f"{self.settings.base_url}/models",
                headers=headers,
                timeout=self.settings.timeout,
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to fetch provider models: {e}") from e

        if not response.is_success:
            raise ProviderError(
                f"Failed to fetch provider models ({response.status_code})",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ProviderError("Image provider returned a non-JSON model listing") from e

        models = data.get("data") if isinstance(data, dict) else None
        if not isinstance(models, list):
            raise ProviderError("Image provider returned a malformed model listing")

        return [
            model
            for model in models
            if isinstance(model, dict)
            and isinstance(model.get("id"), str)
            and "gemini" in model["id"]
            and "image" in model["id"]
        ]
