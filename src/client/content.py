"""Helpers for reading tags, mentions and data out of message content.

Data messages embed a JSON object after their mention and tag prefix, for
example ``@project #todo {"title": "x"}``. The object spans from the first
``{`` to the last ``}`` of the content.
"""

import json
import re
from typing import Any


TAG_PATTERN = re.compile(r"(?:\s|^)(#[a-zA-Z0-9_-]+)")
MENTION_PATTERN = re.compile(r"(?:\s|^)(@[a-zA-Z0-9_-]+)")
ANY_TAG_PATTERN = re.compile(r"#[a-zA-Z0-9_-]+")


def _data_span(content: str) -> tuple[int, int] | None:
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return start, end + 1


def get_data(content: str | None) -> Any:
    """Parse the embedded JSON object of a data message.

    Returns:
        The parsed value, or None when the content carries no valid JSON.
    """
    if not content:
        return None
    span = _data_span(content)
    if span is None:
        return None
    try:
        return json.loads(content[span[0] : span[1]])
    except json.JSONDecodeError:
        return None


def is_data(content: str | None) -> bool:
    """Whether the content embeds a parsable JSON object."""
    if not content:
        return False
    span = _data_span(content)
    if span is None:
        return False
    try:
        json.loads(content[span[0] : span[1]])
    except json.JSONDecodeError:
        return False
    return True


def content_without_data(content: str) -> str:
    """Remove the embedded JSON object, keeping text on both sides."""
    if not is_data(content):
        return content
    start, end = _data_span(content)  # type: ignore[misc]
    return content[:start] + content[end:]


def get_tags(content: str | None) -> list[str]:
    """Tags (``#name``) outside the data part, in order of appearance."""
    if not content:
        return []
    return TAG_PATTERN.findall(content_without_data(content))


def get_mentions(content: str | None) -> list[str]:
    """Mentions (``@name``) outside the data part, in order of appearance."""
    if not content:
        return []
    return MENTION_PATTERN.findall(content_without_data(content))
