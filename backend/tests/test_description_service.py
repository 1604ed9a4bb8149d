"""
ScreenShelf Backend - Description Generator Tests
===================================================

What:  Reply parsing and the never-raises contract of DescriptionGenerator.
How:   parse_description() is pure; the generator gets an AsyncMock provider.
"""

from unittest.mock import AsyncMock

import pytest

from app.exceptions import CircuitBreakerOpenError, DescriptionGenerationFailure
from app.schemas.screenshot import DESCRIPTION_FAILED, NO_DESCRIPTION
from app.services.description_service import (
    DESCRIPTION_PROMPT,
    DescriptionGenerator,
    parse_description,
)

GOOD_REPLY = (
    '{"carouselText": "Flight booking page", '
    '"progressText": "An airline checkout page listing a morning flight to Lisbon with seat and baggage options"}'
)


class TestParseDescription:

    def test_plain_json(self):
        description = parse_description(GOOD_REPLY)
        assert description.carousel_text == "Flight booking page"
        assert description.progress_text.startswith("An airline checkout page")

    def test_fenced_json(self):
        description = parse_description(f"```json\n{GOOD_REPLY}\n```")
        assert description.carousel_text == "Flight booking page"

    def test_json_embedded_in_prose(self):
        description = parse_description(f"Sure! Here it is:\n{GOOD_REPLY}\nHope that helps.")
        assert description.carousel_text == "Flight booking page"

    def test_quotes_and_whitespace_are_stripped(self):
        description = parse_description(
            '{"carouselText": "  \\"Chess puzzle\\" ", "progressText": "\'A chess board with white to move and mate in two\' "}'
        )
        assert description.carousel_text == "Chess puzzle"
        assert description.progress_text == "A chess board with white to move and mate in two"

    def test_extra_keys_are_ignored(self):
        description = parse_description(
            '{"carouselText": "Inbox", "progressText": "An email inbox with unread messages", "mood": "calm"}'
        )
        assert description.carousel_text == "Inbox"

    @pytest.mark.parametrize(
        "reply",
        [
            "",
            "   ",
            "not json at all",
            "[1, 2, 3]",
            '{"carouselText": "Only one field"}',
            '{"carouselText": 42, "progressText": "numbers are not text"}',
            '{"carouselText": "  ", "progressText": "blank title"}',
            '{"carouselText": "Broken", "progressText": ',
        ],
    )
    def test_unusable_replies_raise(self, reply):
        with pytest.raises(DescriptionGenerationFailure):
            parse_description(reply)


class TestDescriptionGenerator:

    def setup_method(self):
        self.provider = AsyncMock()
        self.generator = DescriptionGenerator(self.provider)

    def test_prompt_demands_both_fields(self):
        assert "carouselText" in DESCRIPTION_PROMPT
        assert "progressText" in DESCRIPTION_PROMPT
        assert '"screenshot"' in DESCRIPTION_PROMPT
        assert '"image"' in DESCRIPTION_PROMPT

    @pytest.mark.asyncio
    async def test_generate_success(self):
        self.provider.complete.return_value = GOOD_REPLY

        description = await self.generator.generate("LIS 07:45 Seat 12A Add bag")

        assert description.carousel_text == "Flight booking page"
        self.provider.complete.assert_awaited_once_with(DESCRIPTION_PROMPT, "LIS 07:45 Seat 12A Add bag")

    @pytest.mark.asyncio
    async def test_blank_text_skips_provider(self):
        description = await self.generator.generate("  \n\t ")

        assert description.carousel_text == NO_DESCRIPTION
        assert description.progress_text == NO_DESCRIPTION
        self.provider.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_failure_returns_fallback(self):
        self.provider.complete.side_effect = DescriptionGenerationFailure()

        description = await self.generator.generate("some text")

        assert description.carousel_text == DESCRIPTION_FAILED
        assert description.progress_text == DESCRIPTION_FAILED

    @pytest.mark.asyncio
    async def test_open_circuit_returns_fallback(self):
        self.provider.complete.side_effect = CircuitBreakerOpenError(recovery_time=30)

        description = await self.generator.generate("some text")

        assert description.carousel_text == DESCRIPTION_FAILED

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_fallback(self):
        self.provider.complete.side_effect = RuntimeError("socket exploded")

        description = await self.generator.generate("some text")

        assert description.progress_text == DESCRIPTION_FAILED

    @pytest.mark.asyncio
    async def test_malformed_reply_returns_fallback(self):
        self.provider.complete.return_value = "I cannot help with that."

        description = await self.generator.generate("some text")

        assert description.carousel_text == DESCRIPTION_FAILED
        assert description.progress_text == DESCRIPTION_FAILED
