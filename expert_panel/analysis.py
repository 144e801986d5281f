"""Heuristic post-processing of expert completions.

Scores are approximate by nature. ``ContentAnalyzer`` is the seam for a
better classifier; the synthesizer only depends on ``analyze``.
"""

import re
from typing import Protocol

from expert_panel.models import (
    ContributionMetadata,
    ContributionType,
    Message,
    MessageRef,
)

BASE_CONFIDENCE = 0.5
BASE_AGREEMENT = 0.5

_REFERENCE_BONUS = 0.3
_TECHNICAL_BONUS = 0.3
_HEDGING_PENALTY = 0.2
_AGREEMENT_STEP = 0.2

MIN_QUOTE_CHARS = 10
MIN_QUOTE_WORDS = 2
QUOTE_CONTEXT_CHARS = 50

_TECHNICAL = re.compile(r"\b(specifically|technically|in detail)\b", re.IGNORECASE)
_HEDGING = re.compile(r"\b(might|maybe|perhaps|possibly)\b", re.IGNORECASE)
_AGREEMENT = re.compile(r"\b(agree|concur|support|correct|right)\b", re.IGNORECASE)
_DISAGREEMENT = re.compile(r"\b(disagree|differ|contrary|however|but)\b", re.IGNORECASE)
_ALTERNATIVE = re.compile(
    r"\b(alternatively|alternative|different approach|another way|instead)\b", re.IGNORECASE
)
_SUPPORTING = re.compile(r"\b(additionally|furthermore|moreover|building on)\b", re.IGNORECASE)

_WORD = re.compile(r"\S+")


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def confidence_score(content: str, refs: list[MessageRef]) -> float:
    score = BASE_CONFIDENCE
    if refs:
        score += _REFERENCE_BONUS
    if _TECHNICAL.search(content):
        score += _TECHNICAL_BONUS
    if _HEDGING.search(content):
        score -= _HEDGING_PENALTY
    return round(_clamp(score), 4)


def agreement_level(content: str) -> float:
    agree = len(_AGREEMENT.findall(content))
    disagree = len(_DISAGREEMENT.findall(content))
    return round(_clamp(BASE_AGREEMENT + _AGREEMENT_STEP * (agree - disagree)), 4)


def contribution_type(content: str, refs: list[MessageRef]) -> ContributionType:
    # alternative framing outranks supporting vocabulary and references
    if _ALTERNATIVE.search(content):
        return "alternative"
    if _SUPPORTING.search(content) or refs:
        return "supporting"
    return "primary"


def _find_verbatim(quote: str, text: str) -> re.Match[str] | None:
    """First occurrence of ``quote`` in ``text`` that does not start or end mid-word."""
    left = r"(?<!\w)" if re.match(r"\w", quote) else ""
    right = r"(?!\w)" if re.search(r"\w\Z", quote) else ""
    return re.search(left + re.escape(quote) + right, text)


def find_shared_quotes(source: str, target: str) -> list[str]:
    """Word runs of ``source`` that appear verbatim in ``target``.

    Scans left to right taking the longest run at each position and jumping
    past it once accepted. Runs need at least MIN_QUOTE_WORDS words and
    MIN_QUOTE_CHARS characters, so a single long word on its own never counts
    as a quote. A run only matches whole words in ``target``: "the ledger"
    does not match inside "bathe ledgers".
    """
    words = list(_WORD.finditer(source))
    quotes: list[str] = []
    i = 0
    while i < len(words):
        best_end: int | None = None
        j = i
        while j < len(words):
            candidate = source[words[i].start():words[j].end()]
            if _find_verbatim(candidate, target) is None:
                break
            if j - i + 1 >= MIN_QUOTE_WORDS:
                best_end = j
            j += 1
        if best_end is not None:
            quote = source[words[i].start():words[best_end].end()]
            if len(quote) >= MIN_QUOTE_CHARS:
                quotes.append(quote)
                i = best_end + 1
                continue
        i += 1
    return quotes


def quote_context(content: str, quote: str) -> str:
    match = _find_verbatim(quote, content)
    if match is None:
        return ""
    start = max(0, match.start() - QUOTE_CONTEXT_CHARS)
    end = min(len(content), match.end() + QUOTE_CONTEXT_CHARS)
    return content[start:end]


def extract_references(content: str, context: list[Message]) -> list[MessageRef]:
    """Cross-references from a new completion back to earlier expert messages.

    User-authored context messages are not scanned: a reference always points
    at an expert, and echoing the user's question is not a citation.
    """
    refs: list[MessageRef] = []
    if not content:
        return refs
    for msg in context:
        if msg.is_user:
            continue
        for quote in find_shared_quotes(msg.content, content):
            refs.append(
                MessageRef(
                    message_id=msg.id,
                    expert_id=msg.author,
                    quote=quote,
                    context=quote_context(content, quote),
                )
            )
    return refs


class ContentAnalyzer(Protocol):
    def analyze(
        self, content: str, context: list[Message]
    ) -> tuple[list[MessageRef], ContributionMetadata]: ...


class HeuristicAnalyzer:
    """Keyword and quote-matching analyzer."""

    def analyze(
        self, content: str, context: list[Message]
    ) -> tuple[list[MessageRef], ContributionMetadata]:
        refs = extract_references(content, context)
        metadata = ContributionMetadata(
            confidence=confidence_score(content, refs),
            agreement_level=agreement_level(content),
            contribution_type=contribution_type(content, refs),
        )
        return refs, metadata
