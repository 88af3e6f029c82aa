"""Fal image generation client."""

from typing import TYPE_CHECKING

from trinity.exceptions import ProviderError
from trinity.logging import get_logger

if TYPE_CHECKING:
    from trinity.transport import AsyncHTTPTransport

logger = get_logger("clients.images")


class ImageClient:
    """Generates images through a Fal model endpoint."""

    def __init__(self, transport: "AsyncHTTPTransport", model: str = "fal-ai/flux/schnell") -> None:
        self.transport = transport
        self.model = model

    async def generate_image(self, prompt: str, width: int, height: int) -> str:
        """
        Generate one image and return its URL.

        Raises:
            ProviderError: If the response carries no image URL
        """
        response = await self.transport.request(
            "POST",
            f"/{self.model}",
            body={
                "prompt": prompt,
                "image_size": {"width": width, "height": height},
                "num_images": 1,
            },
        )

        images = response.get("images") or []
        url = images[0].get("url") if images else (response.get("image") or {}).get("url")
        if not url:
            raise ProviderError("NO_IMAGE", "No image URL in image generation response")

        logger.info("Generated %dx%d image with %s", width, height, self.model)
        return url
