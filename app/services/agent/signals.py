"""Text signals read from caller and assistant utterances."""
import re
from typing import Iterable, Optional

from pydantic import BaseModel

from app.services.agent.constants import (
    AFFIRMATIVE_PATTERN,
    AFFIRMATIVE_TRANSFER_PATTERN,
    AVAILABILITY_NOUN_PATTERN,
    CHECK_VERB_PATTERN,
    HANDOFF_REQUEST_PATTERN,
    MISUNDERSTANDING_MARKERS,
    NEGATIVE_PATTERN,
    NEGATIVE_PHRASES,
    NUMBER_WORDS,
)

_NUMBER_WORD = "(" + "|".join(sorted(NUMBER_WORDS, key=len, reverse=True)) + ")"
_UNITS = r"(personen|leute|gaeste|gaste|pax)"


def normalize_umlauts(text: Optional[str]) -> str:
    return (
        (text or "")
        .lower()
        .replace("ä", "ae")
        .replace("ö", "oe")
        .replace("ü", "ue")
        .replace("ß", "ss")
    )


def extract_party_size(text: Optional[str]) -> Optional[int]:
    """Party size from phrases like "4 Personen", "für zwei", "wir sind 6"."""
    if not text:
        return None
    normalized = normalize_umlauts(text)
    digit_patterns = [
        rf"\b(\d{{1,2}})\s*{_UNITS}\b",
        r"\bfue?r\s*(\d{1,2})\b(?![:.]\d|\s*uhr)",
        r"\bwir\s+sind\s+(?:zu\s+)?(\d{1,2})\b",
    ]
    for pattern in digit_patterns:
        match = re.search(pattern, normalized)
        if match:
            return int(match.group(1))

    word_patterns = [
        rf"\b{_NUMBER_WORD}\s*{_UNITS}\b",
        rf"\bfue?r\s*{_NUMBER_WORD}\b(?!\s*uhr)",
        rf"\bwir\s+sind\s+(?:zu\s+|so\s+)?{_NUMBER_WORD}\b",
        rf"\bzu\s+{_NUMBER_WORD}\b",
    ]
    for pattern in word_patterns:
        match = re.search(pattern, normalized)
        if match:
            return NUMBER_WORDS[match.group(1)]
    return None


class ConversationSignals(BaseModel):
    has_date: bool = False
    has_time: bool = False
    has_party_size: bool = False
    has_name: bool = False

    @property
    def has_availability_inputs(self) -> bool:
        return self.has_date and self.has_time and self.has_party_size


def conversation_signals(user_texts: Iterable[str]) -> ConversationSignals:
    """Which reservation details the caller has already said out loud."""
    combined = " ".join(user_texts)
    lower = combined.lower()
    has_date = bool(
        re.search(r"\b(heute|morgen|übermorgen|uebermorgen)\b", lower)
        or re.search(r"\b\d{1,2}\.\s?\d{1,2}\.", lower)
        or re.search(r"\b\d{4}-\d{2}-\d{2}\b", lower)
        or re.search(r"\b(montag|dienstag|mittwoch|donnerstag|freitag|samstag|sonntag)\b", lower)
    )
    has_time = bool(
        re.search(r"\b\d{1,2}[:.]\d{2}\b", lower)
        or re.search(r"\b\d{1,2}\s?uhr\b", lower)
        or re.search(r"\b\d{1,2}\s\d{2}\b", lower)
    )
    has_name = bool(
        re.search(r"\b(ich hei(ss|ß)e|mein name ist|name ist|auf den namen|den namen)\b", lower)
    )
    return ConversationSignals(
        has_date=has_date,
        has_time=has_time,
        has_party_size=extract_party_size(combined) is not None,
        has_name=has_name,
    )


def announces_availability_check(text: Optional[str]) -> bool:
    """Reply text says it will check for a free table."""
    if not text:
        return False
    lower = text.lower()
    return bool(re.search(CHECK_VERB_PATTERN, lower) and re.search(AVAILABILITY_NOUN_PATTERN, lower))


def is_explicit_handoff_request(text: Optional[str]) -> bool:
    if not text:
        return False
    return bool(re.search(HANDOFF_REQUEST_PATTERN, text, re.IGNORECASE))


def is_affirmative(text: Optional[str]) -> bool:
    normalized = normalize_umlauts(text)
    return bool(re.search(AFFIRMATIVE_PATTERN, normalized) or re.search(AFFIRMATIVE_TRANSFER_PATTERN, normalized))


def is_negative(text: Optional[str]) -> bool:
    normalized = normalize_umlauts(text)
    return bool(re.search(NEGATIVE_PATTERN, normalized)) or any(p in normalized for p in NEGATIVE_PHRASES)


def signals_misunderstanding(text: Optional[str]) -> bool:
    lower = (text or "").lower()
    return any(marker in lower for marker in MISUNDERSTANDING_MARKERS)
