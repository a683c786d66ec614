"""Prompt/response classification with fingerprint deduplication.

Each text fragment walked from the target window is tested against two
independent heuristics:

    prompt:   role is a text area and the trimmed text is shorter than 500
    response: the trimmed text is longer than 100

A fragment is accepted for a category only when its fingerprint differs
from the last accepted fingerprint of that category, so the same UI
content observed on every poll tick produces one event. A response equal
to the last accepted prompt is rejected. Fragments between 101 and 499
characters in a text area pass both tests and produce both events.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import xxhash

from .element_tree import AXRole

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_MAX_LENGTH = 500
DEFAULT_RESPONSE_MIN_LENGTH = 100


class ContentKind(str, Enum):
    """Category of an accepted text fragment."""

    PROMPT = "prompt"
    RESPONSE = "response"


@dataclass(frozen=True)
class ClassifiedContent:
    """Accepted fragment ready to be reported."""

    kind: ContentKind
    text: str
    correlation_id: str
    role: str


@dataclass
class ClassifierState:
    """Last-seen fingerprints per category.

    Never reset: dedup spans the whole process lifetime, across sessions.
    """

    last_prompt_hash: Optional[int] = None
    last_response_hash: Optional[int] = None
    last_prompt_text: str = ""
    last_response_text: str = ""
    accepted_prompts: int = field(default=0)
    accepted_responses: int = field(default=0)


def fingerprint(text: str) -> int:
    """Non-cryptographic 64-bit hash of raw text, for change detection."""
    return xxhash.xxh64_intdigest(text.encode("utf-8", errors="surrogatepass"))


def generate_correlation_id(now: Optional[float] = None, rng: Optional[random.Random] = None) -> str:
    """Build a ``{unix_seconds}-{4 digit random}`` correlation id.

    Only used to pair related events on the receiving side; not unique.
    """
    timestamp = int(time.time() if now is None else now)
    suffix = (rng or random).randint(1000, 9999)
    return f"{timestamp}-{suffix}"


class ContentClassifier:
    """Decides whether a walked text fragment is a new prompt or response.

    Owned by the AccessibilityMonitor and only called from its poll tick,
    so the dedup state needs no locking.
    """

    def __init__(
        self,
        prompt_max_length: int = DEFAULT_PROMPT_MAX_LENGTH,
        response_min_length: int = DEFAULT_RESPONSE_MIN_LENGTH,
        state: Optional[ClassifierState] = None,
    ) -> None:
        """Initialize classifier.

        Args:
            prompt_max_length: Prompts must be strictly shorter (trimmed chars)
            response_min_length: Responses must be strictly longer (trimmed chars)
            state: Existing dedup state to continue from
        """
        self.prompt_max_length = prompt_max_length
        self.response_min_length = response_min_length
        self.state = state or ClassifierState()

    @property
    def last_prompt(self) -> str:
        """Most recently accepted prompt text (trimmed)."""
        return self.state.last_prompt_text

    @property
    def last_response(self) -> str:
        """Most recently accepted response text (trimmed)."""
        return self.state.last_response_text

    def is_likely_prompt(self, trimmed: str, role: str) -> bool:
        return role == AXRole.TEXT_AREA and len(trimmed) < self.prompt_max_length

    def is_likely_response(self, trimmed: str) -> bool:
        return len(trimmed) > self.response_min_length

    def classify(self, text: str, role: str) -> list[ClassifiedContent]:
        """Classify one fragment and update dedup state.

        Args:
            text: Raw text as read from the UI tree
            role: Accessibility role of the node the text came from

        Returns:
            Accepted items, prompt first; empty when the fragment is
            noise or unchanged since the last acceptance
        """
        trimmed = text.strip()
        if not trimmed:
            return []

        text_hash = fingerprint(text)
        accepted: list[ClassifiedContent] = []
        # Both tests see the state as it was before this fragment
        previous_prompt_text = self.state.last_prompt_text

        if self.is_likely_prompt(trimmed, role) and text_hash != self.state.last_prompt_hash:
            self.state.last_prompt_hash = text_hash
            self.state.last_prompt_text = trimmed
            self.state.accepted_prompts += 1
            accepted.append(
                ClassifiedContent(
                    kind=ContentKind.PROMPT,
                    text=trimmed,
                    correlation_id=generate_correlation_id(),
                    role=role,
                )
            )
            logger.debug(f"Prompt captured: {trimmed[:50]}...")

        if (
            self.is_likely_response(trimmed)
            and text_hash != self.state.last_response_hash
            and trimmed != previous_prompt_text
        ):
            self.state.last_response_hash = text_hash
            self.state.last_response_text = trimmed
            self.state.accepted_responses += 1
            accepted.append(
                ClassifiedContent(
                    kind=ContentKind.RESPONSE,
                    text=trimmed,
                    correlation_id=generate_correlation_id(),
                    role=role,
                )
            )
            logger.debug(f"Response captured: {trimmed[:50]}...")

        return accepted
