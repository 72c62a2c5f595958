"""Image description service."""

import json
from dataclasses import dataclass

from litellm import acompletion
from loguru import logger

_DESCRIBE_PROMPT = (
    "Describe this image. Reply with a JSON object with two keys: "
    '"title" (a short title) and "description" (one or two sentences).'
)


@dataclass(frozen=True)
class ImageDescription:
    title: str
    description: str

    def as_text(self) -> str:
        return f"[Image: {self.title}\n{self.description}]"


class ImageDescriptionService:
    """Describes an image URL with a vision-capable model."""

    def __init__(self, model: str, api_key: str | None = None, api_base: str | None = None):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base

    async def describe(self, url: str) -> ImageDescription:
        kwargs = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": _DESCRIBE_PROMPT},
                        {"type": "image_url", "image_url": {"url": url}},
                    ],
                }
            ],
            "max_tokens": 300,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        response = await acompletion(**kwargs)
        raw = (response.choices[0].message.content or "").strip()
        return parse_description(raw)


def parse_description(raw: str) -> ImageDescription:
    """Accept either the requested JSON object or free text."""
    text = raw.strip().removeprefix("```json").removeprefix("```").removesuffix("```").strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Image description was not JSON; using raw text")
        first, _, rest = text.partition("\n")
        return ImageDescription(title=first.strip() or "Image", description=rest.strip() or first.strip())
    if not isinstance(data, dict):
        return ImageDescription(title="Image", description=str(data))
    return ImageDescription(
        title=str(data.get("title") or "Image").strip(),
        description=str(data.get("description") or "").strip(),
    )
