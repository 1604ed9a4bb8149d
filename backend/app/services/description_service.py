"""
ScreenShelf Backend - Description Generator
=============================================

What:  Turns OCR text into a two-field summary (carouselText, progressText).
How:   One chat completion with a fixed instruction prompt, then strict JSON
       parsing of the reply.
Who:   Called by UploadPipeline after OCR, before the blob-store write.

Contract:
    generate(extracted_text) → GeneratedDescription, never raises.
    Any failure (provider error, open circuit, unparseable or incomplete
    reply) is logged and replaced by the fallback description, so the
    pipeline always stores *some* description.

Reply parsing:
    1. Strip a surrounding ```json ... ``` fence if the model added one
    2. json.loads the remainder
    3. Otherwise try the first {...} block in the text
    4. Validate both keys are non-blank strings
    Any step failing raises DescriptionGenerationFailure internally.
"""

import json
import logging
import re
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from app.exceptions import DescriptionGenerationFailure
from app.schemas.screenshot import GeneratedDescription
from app.services.llm_base import TextGenerationService

logger = logging.getLogger(__name__)

DESCRIPTION_PROMPT = """You will receive the text that OCR extracted from a picture of a screen.
Work out what the screen is showing and reply with ONLY a JSON object in exactly this format:
{
  "carouselText": <a title of fewer than 5 words>,
  "progressText": <a summary of at least 10 and at most 20 words>
}
Do not add any other keys, commentary or markdown.
Inside the two values, never use the words "screenshot" or "image", and never use quotation marks."""

# Characters the prompt forbids inside values; stripped if the model adds them anyway
_QUOTE_CHARS = "\"'`“”‘’"

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _strip_code_fence(text: str) -> str:
    """Remove a leading ```/```json line and a trailing ``` if present."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    parts = text.split("\n", 1)
    text = parts[1] if len(parts) > 1 else ""
    if text.rstrip().endswith("```"):
        text = text.rstrip()[:-3]
    elif "```" in text:
        text = text.rsplit("```", 1)[0]
    return text.strip()


def _load_json_object(raw: str) -> Dict[str, Any]:
    text = _strip_code_fence(raw)
    try:
        obj = json.loads(text)
    except ValueError:
        match = _JSON_OBJECT.search(text)
        if not match:
            raise DescriptionGenerationFailure(
                message="Model reply is not JSON",
                context={"reply_preview": raw[:200]},
            )
        try:
            obj = json.loads(match.group(0))
        except ValueError as e:
            raise DescriptionGenerationFailure(
                message="Model reply is not JSON",
                context={"reply_preview": raw[:200]},
            ) from e

    if not isinstance(obj, dict):
        raise DescriptionGenerationFailure(
            message="Model reply is not a JSON object",
            context={"json_type": type(obj).__name__},
        )
    return obj


def _clean(value: str) -> str:
    return value.strip().strip(_QUOTE_CHARS).strip()


def parse_description(raw: str) -> GeneratedDescription:
    """
    Parse a model reply into a GeneratedDescription.

    Raises:
        DescriptionGenerationFailure when the reply is empty, not a JSON
        object, or lacks a non-blank string for either field.
    """
    if not raw or not raw.strip():
        raise DescriptionGenerationFailure(message="Model reply is empty")

    obj = _load_json_object(raw)

    try:
        description = GeneratedDescription.model_validate(
            {
                "carouselText": obj.get("carouselText"),
                "progressText": obj.get("progressText"),
            }
        )
    except PydanticValidationError as e:
        raise DescriptionGenerationFailure(
            message="Model reply is missing description fields",
            context={"keys": sorted(obj.keys())[:10]},
        ) from e

    carousel_text = _clean(description.carousel_text)
    progress_text = _clean(description.progress_text)
    if not carousel_text or not progress_text:
        raise DescriptionGenerationFailure(message="Model reply has blank description fields")

    return GeneratedDescription(carousel_text=carousel_text, progress_text=progress_text)


class DescriptionGenerator:
    """
    Total function from OCR text to GeneratedDescription.

    Blank input (empty OCR result) skips the provider call and yields the
    "No description available" placeholder in both fields.
    """

    def __init__(self, text_generation: TextGenerationService, prompt: str = DESCRIPTION_PROMPT):
        self._text_generation = text_generation
        self.prompt = prompt

    async def generate(self, extracted_text: str) -> GeneratedDescription:
        if not extracted_text or not extracted_text.strip():
            logger.info("No text extracted; using placeholder description")
            return GeneratedDescription.unavailable()

        try:
            reply = await self._text_generation.complete(self.prompt, extracted_text)
            logger.debug("Generated description reply: %s", reply)
            description = parse_description(reply)
        except DescriptionGenerationFailure as e:
            logger.warning(
                "Error generating description: %s | Context: %s",
                e.message,
                e.context,
            )
            return GeneratedDescription.failed()
        except Exception as e:
            logger.error(
                "Unexpected error generating description: %s",
                str(e),
                exc_info=True,
            )
            return GeneratedDescription.failed()

        logger.info(
            "Carousel text: %s | Progress text: %s",
            description.carousel_text,
            description.progress_text,
        )
        return description
