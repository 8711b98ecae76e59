"""Vision model client.

Extraction services only need one capability from the model: send an image
with a prompt, get text back. ``VisionModelClient`` names that capability;
``OllamaVisionClient`` implements it against an Ollama-compatible
``/api/chat`` endpoint and raises the medscan error classes for the
failures services know how to classify.

Setup:
    1. Install Ollama: https://ollama.ai
    2. Pull a vision model: ollama pull llama3.2-vision
    3. Start server: ollama serve
"""

import base64
import logging
from typing import Optional, Protocol, runtime_checkable

import requests

from medscan.config import Settings, settings as default_settings
from medscan.errors import (
    AuthenticationError,
    ConfigurationError,
    ModelAPIError,
    RateLimitError,
)
from medscan.models import ProcessedImage

logger = logging.getLogger(__name__)


@runtime_checkable
class VisionModelClient(Protocol):
    """Anything that can answer a prompt about an image."""

    def ask(self, image: ProcessedImage, prompt: str) -> str:
        ...


class OllamaVisionClient:
    """
    Ollama-based vision model client.

    Sends one non-streaming chat request per call with the image attached
    as base64. Temperature is pinned to 0 so the same photo gives the
    same answer across retries.
    """

    def __init__(
        self,
        host: str,
        model: str,
        api_key: Optional[str] = None,
        timeout: int = 120,
        session: Optional[requests.Session] = None,
    ):
        if not host or not host.strip():
            raise ConfigurationError("Vision model host is not configured")
        if not model or not model.strip():
            raise ConfigurationError("Vision model name is not configured")

        self.host = host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    @property
    def chat_url(self) -> str:
        return f"{self.host}/api/chat"

    def _encode_image(self, image: ProcessedImage) -> str:
        try:
            with open(image.path, "rb") as handle:
                return base64.b64encode(handle.read()).decode("ascii")
        except OSError as e:
            raise ModelAPIError(f"Could not read processed image: {e}") from e

    def ask(self, image: ProcessedImage, prompt: str) -> str:
        """
        Ask the model about an image.

        Args:
            image: Normalized image to attach
            prompt: Document-specific instructions

        Returns:
            The model's reply text

        Raises:
            AuthenticationError: 401/403 from the endpoint
            RateLimitError: 429 from the endpoint
            ModelAPIError: Network errors, timeouts, other non-2xx, bad bodies
        """
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": prompt,
                    "images": [self._encode_image(image)],
                }
            ],
            "stream": False,
            "options": {"temperature": 0},
        }

        try:
            response = self.session.post(self.chat_url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise ModelAPIError(f"Vision model request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ModelAPIError(f"Vision model request failed: {e.__class__.__name__}") from e

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(
                "Vision model rejected the credentials",
                {"status_code": status},
            )
        if status == 429:
            raise RateLimitError(
                "Vision model rate limit exceeded",
                {"status_code": status},
            )
        if not 200 <= status < 300:
            raise ModelAPIError(
                f"Vision model returned status {status}",
                {"status_code": status},
            )

        try:
            body = response.json()
            content = body["message"]["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise ModelAPIError("Vision model returned an unexpected response body") from e

        if not isinstance(content, str):
            raise ModelAPIError("Vision model returned an unexpected response body")

        logger.debug("Vision model %s answered (%d chars)", self.model, len(content))
        return content


def build_model_client(config: Optional[Settings] = None) -> OllamaVisionClient:
    """
    Build the default client from settings.

    Raises:
        ConfigurationError: If the host or model name is blank
    """
    config = config or default_settings
    return OllamaVisionClient(
        host=config.ollama_host,
        model=config.vision_model,
        api_key=config.vision_api_key,
        timeout=config.vision_timeout,
    )
