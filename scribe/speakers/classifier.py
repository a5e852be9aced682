"""Claude-powered speaker identification and paragraph splitting."""

from __future__ import annotations

import json
import logging
from typing import Any

from anthropic import AsyncAnthropic

from scribe.config import settings
from scribe.errors import ClassifierError
from scribe.speakers.models import Confidence, SpeakerIdentification, SpeakerMapping

logger = logging.getLogger(__name__)

# Tool definitions for Claude structured output
SPEAKER_TOOL: dict[str, Any] = {
    "name": "record_speaker_names",
    "description": (
        "Record who each speaker label in the transcript is. "
        "Call this once with an entry for every speaker label."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "speakers": {
                "type": "array",
                "description": "Mapping of speaker labels to identified names.",
                "items": {
                    "type": "object",
                    "properties": {
                        "label": {
                            "type": "string",
                            "description": 'Original speaker label (e.g. "A", "B").',
                        },
                        "name": {
                            "type": "string",
                            "description": "Identified speaker name, or the original label if unknown.",
                        },
                        "confidence": {
                            "type": "string",
                            "enum": ["high", "medium", "low"],
                            "description": "Confidence in the identification.",
                        },
                    },
                    "required": ["label", "name", "confidence"],
                },
            },
            "reasoning": {
                "type": "string",
                "description": "Brief explanation of how speakers were identified.",
            },
        },
        "required": ["speakers", "reasoning"],
    },
}

PARAGRAPH_TOOL: dict[str, Any] = {
    "name": "record_paragraphs",
    "description": "Record the passage split into paragraphs, in order, with the exact original wording.",
    "input_schema": {
        "type": "object",
        "properties": {
            "paragraphs": {
                "type": "array",
                "description": "Consecutive paragraphs whose concatenation is the original passage.",
                "items": {"type": "string"},
            },
        },
        "required": ["paragraphs"],
    },
}

SPEAKER_SYSTEM_PROMPT = (
    "You are a transcript analyst. Identify speakers from conversation context. "
    "Be conservative — only assign names when evidence is clear. If you cannot "
    "identify a speaker, return their original label as the name with low confidence.\n\n"
    "Use the record_speaker_names tool to return your results."
)

PARAGRAPH_SYSTEM_PROMPT = (
    "You are a text formatter. Split long spoken passages into paragraphs for "
    "readability. Preserve the exact wording — never add, remove, or change words.\n\n"
    "Use the record_paragraphs tool to return your results."
)


class TranscriptClassifier:
    """Thin wrapper around the Anthropic Messages API using forced tool calls."""

    def __init__(self, client: AsyncAnthropic | None = None, model: str | None = None) -> None:
        self.client = client or AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.model = model or settings.llm_model

    async def identify(
        self,
        excerpt: str,
        context: str,
        labels: list[str],
    ) -> SpeakerIdentification:
        """Ask Claude who each of *labels* is, based on a transcript *excerpt*.

        Raises:
            ClassifierError: If the request fails or the response is malformed.
        """
        prompt = "\n\n".join(
            part
            for part in [
                "Analyze this transcript and identify who each speaker is.",
                f"Context:\n{context}" if context else "",
                f"Speakers to identify: {', '.join(labels)}",
                f"Transcript excerpt:\n{excerpt}",
                "The excerpt contains samples from the beginning, middle, and end of the transcript. "
                "Identify each speaker based on context clues in the conversation (introductions, "
                "names mentioned, roles discussed). If you cannot identify a speaker, keep their "
                "original label.",
            ]
            if part
        )
        data = await self._call_tool(SPEAKER_TOOL, SPEAKER_SYSTEM_PROMPT, prompt)

        try:
            speakers = [
                SpeakerMapping(
                    label=str(s["label"]),
                    name=str(s["name"]).strip(),
                    confidence=Confidence(s.get("confidence", "low")),
                )
                for s in data["speakers"]
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise ClassifierError(f"Malformed speaker response: {exc}") from exc

        return SpeakerIdentification(speakers=speakers, reasoning=str(data.get("reasoning", "")))

    async def split_paragraphs(self, text: str) -> list[str]:
        """Split *text* into paragraphs without changing its wording.

        Raises:
            ClassifierError: If the request fails or the response is malformed.
        """
        prompt = "\n".join(
            [
                "Split this long spoken passage into paragraphs at natural topic shifts.",
                "Rules:",
                "- Preserve exact wording — only split into chunks",
                "- 3-6 sentences per paragraph (aim for 200-500 characters each)",
                "- Fewer, larger paragraphs are better",
                "",
                text,
            ]
        )
        data = await self._call_tool(PARAGRAPH_TOOL, PARAGRAPH_SYSTEM_PROMPT, prompt)

        paragraphs = data.get("paragraphs")
        if not isinstance(paragraphs, list) or not all(isinstance(p, str) for p in paragraphs):
            raise ClassifierError("Malformed paragraph response: expected a list of strings")
        return paragraphs

    async def _call_tool(self, tool: dict[str, Any], system: str, prompt: str) -> dict[str, Any]:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=8192,
                system=system,
                tools=[tool],
                tool_choice={"type": "tool", "name": tool["name"]},
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            raise ClassifierError(f"{type(exc).__name__}: {exc}") from exc

        return _parse_tool_input(response, tool["name"])


def _parse_tool_input(response: Any, tool_name: str) -> dict[str, Any]:
    """Return the input of the first ``tool_use`` block named *tool_name*."""
    for block in response.content:
        if block.type != "tool_use" or block.name != tool_name:
            continue

        data = block.input
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as exc:
                raise ClassifierError(f"Tool input is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ClassifierError(f"Tool input is not an object: {type(data).__name__}")
        return data

    raise ClassifierError(f"Response contained no {tool_name} tool call")


def create_classifier() -> TranscriptClassifier | None:
    """Build a classifier from settings, or ``None`` when no API key is configured."""
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY not set; speaker identification and paragraphs will be skipped")
        return None
    return TranscriptClassifier()
