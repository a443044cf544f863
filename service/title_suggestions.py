"""Boundary for the hosted title suggestion service."""

from __future__ import annotations

import json
import logging
from typing import Protocol, Tuple

from domain.title_overlay import ConfigError

SUGGESTION_TOPIC_CODE = "burn_titles.suggest.empty_topic"
SUGGESTION_PAYLOAD_CODE = "burn_titles.suggest.invalid_payload"
MAX_SUGGESTIONS = 3
SUGGESTION_SYSTEM_PROMPT = (
    "You are a helpful assistant that generates video titles. Always respond "
    "with valid JSON containing an array of titles."
)
LOGGER = logging.getLogger("burn_titles.suggest")


class TitleSuggester(Protocol):
    """Text generation service returning a JSON object with a titles array."""

    def suggest(self, system_prompt: str, prompt: str) -> str:
        """Return the raw model response text."""


def build_suggestion_prompt(topic: str) -> str:
    """Build the user prompt for a topic."""
    normalized = topic.strip()
    if not normalized:
        raise ConfigError(SUGGESTION_TOPIC_CODE, "topic is required")
    return (
        "Generate exactly 3 relatable, controversial, and hooky video titles "
        f"based on this topic: '{normalized}'. Each title must be 3 to 4 words "
        "long, in ALL CAPS. Do not use quotes."
    )


def parse_suggestions(raw_response: str) -> Tuple[str, ...]:
    """Extract up to three non-empty titles from a model response."""
    try:
        payload = json.loads(raw_response)
    except json.JSONDecodeError as exc:
        raise ConfigError(
            SUGGESTION_PAYLOAD_CODE, "suggestion response is not JSON"
        ) from exc
    if not isinstance(payload, dict):
        raise ConfigError(SUGGESTION_PAYLOAD_CODE, "suggestion response must be an object")
    titles = payload.get("titles")
    if not isinstance(titles, list):
        raise ConfigError(SUGGESTION_PAYLOAD_CODE, "suggestion response has no titles array")
    cleaned = [
        title.strip() for title in titles if isinstance(title, str) and title.strip()
    ]
    return tuple(cleaned[:MAX_SUGGESTIONS])


def suggest_titles(suggester: TitleSuggester, topic: str) -> Tuple[str, ...]:
    """Ask the suggestion service for titles about a topic."""
    prompt = build_suggestion_prompt(topic)
    titles = parse_suggestions(suggester.suggest(SUGGESTION_SYSTEM_PROMPT, prompt))
    LOGGER.info("burn_titles.suggest.done: %d titles for %r", len(titles), topic.strip())
    return titles
