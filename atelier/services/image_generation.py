"""
Image Generation Client Module.

Sends image-edit requests to an OpenRouter-compatible chat completions API
and extracts the generated image from whichever response shape the
upstream model returns.
"""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import requests

logger = logging.getLogger(__name__)

NANO_BANANA_MODEL = "google/gemini-2.5-flash-image"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_REFERER = "https://i-catching.nl"
DEFAULT_TITLE = "I-Catching CMS - Nano Banana"

_DATA_URI_IN_TEXT = re.compile(r"data:image/[^;]+;base64,[A-Za-z0-9+/=]+")

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class ImageGenerationError(Exception):
    """Raised when the upstream API rejects a request."""

    def __init__(self, message: str, details: str = "", status_code: int = 0) -> None:
        super().__init__(message)
        self.details = details
        self.status_code = status_code


@dataclass
class GenerationResult:
    """Outcome of an edit request; image is None if no image was returned."""

    image: Optional[str]
    raw: Dict[str, Any]

    @property
    def success(self) -> bool:
        return self.image is not None


def _inline_image(parts: Iterable[Any]) -> Optional[str]:
    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inline_data") or part.get("inlineData")
        if isinstance(inline, dict) and inline.get("data"):
            mime = inline.get("mime_type") or inline.get("mimeType") or "image/png"
            return f"data:{mime};base64,{inline['data']}"
    return None


def extract_generated_image(payload: Dict[str, Any]) -> Optional[str]:
    """
    Finds the generated image in an upstream response.

    Probes, in order: an OpenAI-style ``images`` array, Gemini ``parts`` on
    the message, nested ``content.parts``, a data URI inside text content
    and the native Gemini ``candidates`` array.

    Returns:
        A data URI or URL, or None if the response holds no image.
    """
    if not isinstance(payload, dict):
        return None

    choices = payload.get("choices") or []
    if choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}

        images = message.get("images") or []
        if images and isinstance(images[0], dict):
            image_data = images[0]
            image_url = image_data.get("image_url")
            if isinstance(image_url, dict) and image_url.get("url"):
                return image_url["url"]
            if image_data.get("url"):
                return image_data["url"]

        parts = message.get("parts")
        if isinstance(parts, list):
            for part in parts:
                if not isinstance(part, dict):
                    continue
                found = _inline_image([part])
                if found:
                    return found
                image = part.get("image")
                if isinstance(image, str) and image:
                    if image.startswith("data:"):
                        return image
                    return f"data:image/png;base64,{image}"

        content = message.get("content")
        if isinstance(content, dict) and isinstance(content.get("parts"), list):
            found = _inline_image(content["parts"])
            if found:
                return found

        if isinstance(content, str):
            match = _DATA_URI_IN_TEXT.search(content)
            if match:
                return match.group(0)

    candidates = payload.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content") or {}
        if isinstance(content, dict) and isinstance(content.get("parts"), list):
            return _inline_image(content["parts"])

    return None


class ImageGenerationClient:
    """
    Client for the image-capable chat completions endpoint.

    The API key never leaves the server process.
    """

    def __init__(
        self,
        api_key: str,
        model: str = NANO_BANANA_MODEL,
        base_url: str = OPENROUTER_BASE_URL,
        timeout: int = 120,
        referer: str = DEFAULT_REFERER,
        title: str = DEFAULT_TITLE,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: OpenRouter API key.
            model: Image-capable model identifier.
            base_url: API base URL.
            timeout: Request timeout in seconds.
            referer: Value of the HTTP-Referer header.
            title: Value of the X-Title header.

        Raises:
            ValueError: If api_key is not provided.
        """
        if not api_key:
            raise ValueError("OpenRouter API key is required")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.referer = referer
        self.title = title

    def _make_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.referer,
            "X-Title": self.title,
            "Content-Type": "application/json",
        }

    def fetch_as_data_uri(self, url: str) -> str:
        """
        Downloads an image and encodes it as a data URI.

        Raises:
            requests.exceptions.RequestException: If the download fails.
        """
        response = requests.get(url, timeout=self.timeout)
        response.raise_for_status()
        content_type = response.headers.get("content-type") or "image/jpeg"
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"

    def build_payload(self, prompt: str, image_content: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": image_content}},
                        {
                            "type": "text",
                            "text": f"Edit this image with the following changes: {prompt}",
                        },
                    ],
                }
            ],
            "extra_body": {
                "response_modalities": ["IMAGE"],
                "safetySettings": [
                    {"category": category, "threshold": "BLOCK_NONE"}
                    for category in SAFETY_CATEGORIES
                ],
            },
        }

    def edit_image(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        base64_image: Optional[str] = None,
    ) -> GenerationResult:
        """
        Requests an edited version of an image.

        Args:
            prompt: Description of the requested changes.
            image_url: URL of the source image.
            base64_image: Source image as a data URI (takes precedence).

        Returns:
            GenerationResult: image is None if the model returned no image.

        Raises:
            ValueError: If prompt or image is missing.
            ImageGenerationError: If the API answers with an error status.
            requests.exceptions.RequestException: On connection failures.
        """
        if not prompt:
            raise ValueError("Prompt is required")
        if not image_url and not base64_image:
            raise ValueError("Image URL or base64 image is required")

        image_content = base64_image or self.fetch_as_data_uri(image_url or "")
        logger.info(
            f"Requesting image edit from {self.model} "
            f"(image payload {len(image_content)} chars)"
        )

        response = requests.post(
            f"{self.base_url}/chat/completions",
            json=self.build_payload(prompt, image_content),
            headers=self._make_headers(),
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(
                f"Image generation failed with status {response.status_code}: "
                f"{response.text}"
            )
            raise ImageGenerationError(
                "AI generation failed",
                details=response.text,
                status_code=response.status_code,
            )

        data = response.json()
        image = extract_generated_image(data)
        if image is None:
            logger.warning("No image found in image generation response.")
        else:
            logger.info("Image generation successful.")
        return GenerationResult(image=image, raw=data)
