"""
Message language shaping.

Applied to advice that survived arbitration, in this order:
1. Soften by confidence
2. Append caveats when the operator wants detailed explanations
3. Format for the stress level implied by the priority class
"""

import re
from typing import List

from advisory_kernel.confidence.scorer import FULLY_RELIABLE_CAVEAT
from advisory_kernel.models.advice import AdvicePriority

KEYWORDS = ["NOW", "END", "PUSH", "BACK", "GROUP", "FIGHT", "DANGER", "RETREAT"]

# Phrase replacements run in list order; longer phrases come first so
# "PUSH NOW" is not half-consumed by the bare "NOW" rule.
MODERATE_REPLACEMENTS = [
    ("NOW", "likely now"),
    ("MUST", "should"),
    ("CRITICAL", "important"),
]

HEDGED_REPLACEMENTS = [
    ("PUSH NOW", "push opportunity"),
    ("END NOW", "ending opportunity"),
    ("NOW", "consider"),
    ("MUST", "might want to"),
    ("CRITICAL", "worth considering"),
]

HIGH_STRESS_MAX_WORDS = 8
MEDIUM_STRESS_MAX_WORDS = 12

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def _replace_all(message: str, replacements) -> str:
    for phrase, replacement in replacements:
        message = re.sub(rf"\b{re.escape(phrase)}\b", replacement, message)
    return message


def soften_language(message: str, confidence: float) -> str:
    """Tone down imperative wording as confidence drops."""
    if confidence >= 0.8:
        return message
    if confidence >= 0.6:
        return _replace_all(message, MODERATE_REPLACEMENTS)
    return _replace_all(message, HEDGED_REPLACEMENTS)


def add_explanation(message: str, caveats: List[str]) -> str:
    if not caveats or caveats == [FULLY_RELIABLE_CAVEAT]:
        return message
    return f"{message} ({', '.join(caveats)})"


def _sentences(message: str, max_words: int) -> List[str]:
    sentences = []
    for part in _SENTENCE_SPLIT.split(message):
        words = part.split()
        if not words:
            continue
        if len(words) > max_words:
            mid = len(words) // 2
            sentences.append(" ".join(words[:mid]))
            sentences.append(" ".join(words[mid:]))
        else:
            sentences.append(" ".join(words))
    return sentences


def _capitalize_keywords(sentence: str) -> str:
    for word in KEYWORDS:
        sentence = re.sub(rf"\b{word}\b", word, sentence, flags=re.IGNORECASE)
    return sentence


def _calm_keywords(sentence: str) -> str:
    for word in KEYWORDS:
        sentence = re.sub(rf"\b{word}\b", word.lower(), sentence)
    return sentence[0].upper() + sentence[1:]


def format_for_priority(message: str, priority: AdvicePriority) -> str:
    """
    Stress-aware formatting.

    GAME_ENDING / CRITICAL: short sentences, action keywords upper-cased.
    HIGH: medium-length sentences, shouted keywords back in lower case,
          everything else as written.
    Everything else: only the first letter is capitalised.
    """
    if not message:
        return message

    if priority in (AdvicePriority.GAME_ENDING, AdvicePriority.CRITICAL):
        sentences = _sentences(message, HIGH_STRESS_MAX_WORDS)
        if not sentences:
            return message
        return ". ".join(_capitalize_keywords(s) for s in sentences) + "."

    if priority == AdvicePriority.HIGH:
        sentences = _sentences(message, MEDIUM_STRESS_MAX_WORDS)
        if not sentences:
            return message
        return ". ".join(_calm_keywords(s) for s in sentences) + "."

    return message[0].upper() + message[1:]
