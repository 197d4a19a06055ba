# src/processing/prompts.py — v1
"""Prompt templates and output normalisation per prompt style.

Templates live in processing/templates/<style>.txt and are filled with
str.format(file_name=..., content=...).
"""

from __future__ import annotations

import re
from pathlib import Path

_PROMPT_DIR = Path(__file__).parent / "templates"
_LIST_NUMBER = re.compile(r"^\d+\.\s*")

PROMPT_STYLES = ("briefing", "question")
BRIEFING_MAX_LINES = 3


class PromptBuilder:
    """Build the generation prompt and clean up the reply for one style."""

    def __init__(self, style: str = "briefing", max_input_chars: int = 10_000) -> None:
        if style not in PROMPT_STYLES:
            raise ValueError(f"Unknown prompt style: {style!r}")
        self._style = style
        self._max_input_chars = max_input_chars
        self._template: str | None = None

    @property
    def style(self) -> str:
        return self._style

    def _load_template(self) -> str:
        """Load and cache prompt template."""
        if self._template is None:
            path = _PROMPT_DIR / f"{self._style}.txt"
            self._template = path.read_text(encoding="utf-8")
        return self._template

    def build(self, file_name: str, text: str) -> str:
        """Fill the template; text is capped at max_input_chars."""
        return self._load_template().format(
            file_name=file_name,
            content=text[: self._max_input_chars],
        )

    def normalize(self, raw: str) -> str:
        """Apply the style's output rules to the model reply.

        briefing: first three non-empty lines.
        question: a leading list number such as "1. " is removed.
        """
        text = raw.strip()
        if self._style == "question":
            return _LIST_NUMBER.sub("", text).strip()
        lines = [line for line in text.split("\n") if line.strip()]
        return "\n".join(lines[:BRIEFING_MAX_LINES])
