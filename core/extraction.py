from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from memory.schemas import ExtractedFact, utcnow


_I_AM = r"(?:i['’]?m|i\s+am)"
_CLAUSE_TAIL = r"\s+(?:and|but|with|so|because|since)\b|\s*[,.!?;]|$"
_CLAUSE_END = rf"(?={_CLAUSE_TAIL})"
_PET_SPECIES = (
    r"(?:dogs?|cats?|pets?|puppy|puppies|kittens?|birds?|parrots?|fish|hamsters?|rabbits?|bunny|bunnies|turtles?|horses?)"
)

_WORD_NUMBERS = {"a": "1", "an": "1", "one": "1", "two": "2", "three": "3", "four": "4", "five": "5", "six": "6"}

# Words that commonly follow "I'm" / "I am" / "call me" but are not names.
_NOT_A_NAME = {
    "a", "an", "the", "not", "so", "just", "very", "really", "fine", "good", "great", "okay", "ok",
    "here", "back", "sorry", "glad", "happy", "sad", "tired", "sure", "going", "trying", "looking",
    "from", "in", "at", "on", "doing", "feeling", "well", "bored", "busy", "hungry", "new", "still",
    "also", "working", "living", "interested", "learning", "thinking", "curious", "confused", "done",
    "ready", "married", "single", "home", "late", "later", "excited", "afraid", "sick", "maybe",
    "tomorrow", "pregnant", "retired", "alone", "lost",
}

_NOT_A_PET_NAME = {"name", "names", "pet", "pets", "dog", "dogs", "cat", "cats", "and", "the", "me", "him", "her", "it", "them"}

_NOT_A_PREFERENCE = {"it", "that", "this", "you", "them", "him", "her", "to", "when", "how", "what"}

_NOT_A_PLACE = {"here", "there", "a house", "an apartment", "the city", "town", "a flat"}

# Capitalised words that describe a person rather than name them.
_IDENTITY_WORDS = {
    "american", "british", "english", "french", "german", "italian", "spanish", "canadian", "mexican",
    "australian", "indian", "chinese", "japanese", "korean", "russian", "brazilian", "irish", "scottish",
    "welsh", "dutch", "swiss", "greek", "polish", "swedish", "norwegian", "danish", "finnish", "turkish",
    "thai", "vietnamese", "filipino", "african", "european", "asian", "latino", "latina", "israeli",
    "iraqi", "iranian", "pakistani", "egyptian", "nigerian", "kenyan", "portuguese", "argentinian",
    "colombian", "ukrainian", "austrian", "belgian", "hungarian", "romanian", "czech", "peruvian",
    "chilean", "cuban", "jamaican", "arab", "persian", "christian", "catholic", "protestant", "muslim",
    "jewish", "hindu", "buddhist", "sikh", "mormon", "atheist", "agnostic", "vegan", "vegetarian",
    "pescatarian", "republican", "democrat", "liberal", "conservative", "libertarian",
}
_IDENTITY_SUFFIXES = ("ish", "ese", "ican")

# "I'm a ..." openers and endings that describe a mood or habit, not a job.
_NOT_A_JOB = {
    "bit", "little", "lot", "fan", "big", "huge", "bad", "good", "great", "real", "total", "complete",
    "kind", "sort", "very", "pretty", "proud", "new", "person", "people", "guy", "girl", "lover",
    "owl", "mess", "wreck", "morning", "night",
}

_NAME_END = rf"(?=(?i:\s+(?:from|here|by\s+the\s+way)\b|{_CLAUSE_TAIL}))"


def _clean(value: str) -> str:
    value = re.sub(r"\s+", " ", value or "").strip()
    return value.strip(" \t\"'.,!?;:")


def _title(value: str) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in _clean(value).split(" "))


def _is_name(value: str) -> bool:
    v = value.lower()
    return len(v) >= 2 and v not in _NOT_A_NAME and any(ch.isalpha() for ch in v)


def _is_pet_name(value: str) -> bool:
    return len(value) >= 2 and value.lower() not in _NOT_A_PET_NAME


def _is_introduced_name(value: str) -> bool:
    v = value.lower()
    if v in _IDENTITY_WORDS or (len(v) >= 6 and v.endswith(_IDENTITY_SUFFIXES)):
        return False
    return _is_name(value)


def _is_job(value: str) -> bool:
    words = value.lower().split()
    return bool(words) and words[0] not in _NOT_A_JOB and words[-1] not in _NOT_A_JOB


def _is_place(value: str) -> bool:
    return len(value) >= 2 and value.lower() not in _NOT_A_PLACE


def _is_preference(value: str) -> bool:
    first = value.lower().split(" ", 1)[0]
    return len(value) >= 2 and first not in _NOT_A_PREFERENCE


def _single_value(m: re.Match[str]) -> list[str]:
    return [m.group("value")]


def _pet_count(m: re.Match[str]) -> list[str]:
    count = m.group("count").lower()
    return [f"{_WORD_NUMBERS.get(count, count)} {m.group('species').lower()}"]


@dataclass(frozen=True)
class FactRule:
    """One row of the extraction table.

    `capture_to_value` turns a match into the values it produces. A row that
    yields more than one value stores them under `key_1`, `key_2`, ... so a
    compound answer like "named Rex and Max" never collapses into one string.

    A `provisional` row only fills a key that no firm row has set, in this
    utterance or an earlier one.
    """

    name: str
    pattern: re.Pattern[str]
    key: str
    importance: float
    capture_to_value: Callable[[re.Match[str]], list[str]] = _single_value
    normalize: Callable[[str], str] = _clean
    accept: Callable[[str], bool] = field(default=bool)
    key_from: Callable[[re.Match[str]], str] | None = None
    provisional: bool = False

    def apply(self, text: str) -> list[tuple[str, str]]:
        m = self.pattern.search(text)
        if not m:
            return []
        values = [self.normalize(v) for v in self.capture_to_value(m) if v]
        values = [v for v in values if v and self.accept(v)]
        if not values:
            return []
        key = self.key_from(m) if self.key_from else self.key
        if len(values) == 1:
            return [(key, values[0])]
        return [(f"{key}_{i}", v) for i, v in enumerate(values, start=1)]


def _rule(name: str, pattern: str, key: str, importance: float, *, flags: int = re.IGNORECASE, **kw) -> FactRule:
    return FactRule(name=name, pattern=re.compile(pattern, flags), key=key, importance=importance, **kw)


# Row order matters: when two rows produce the same key, the later row's value wins.
FACT_RULES: tuple[FactRule, ...] = (
    # "I'm Alex" only counts when the word after it is capitalised and ends the clause.
    _rule(
        "name_introduction",
        rf"(?i:\b{_I_AM})\s+(?P<value>[A-Z][a-zA-Z'-]{{1,40}}){_NAME_END}",
        "name",
        0.9,
        flags=0,
        normalize=_title,
        accept=_is_introduced_name,
        provisional=True,
    ),
    _rule(
        "name_declaration",
        r"\b(?:my\s+name\s+is|my\s+name's|call\s+me)\s+(?P<value>[a-z][a-z'-]{1,40})\b",
        "name",
        0.9,
        normalize=_title,
        accept=_is_name,
    ),
    _rule(
        "age",
        rf"\b{_I_AM}\s+(?P<value>\d{{1,3}})(?:\s*(?:years?|yrs?)(?:\s+old)?|\s*y/?o)\b",
        "age",
        0.7,
    ),
    _rule("age_declaration", r"\bmy\s+age\s+is\s+(?P<value>\d{1,3})\b", "age", 0.7),
    _rule(
        "origin",
        rf"\b{_I_AM}\s+from\s+(?P<value>[a-z][a-z .'-]{{1,60}}?){_CLAUSE_END}",
        "location",
        0.7,
        normalize=_title,
        accept=_is_place,
    ),
    _rule(
        "residence",
        rf"\bi\s+(?:live|reside)\s+in\s+(?P<value>[a-z][a-z .'-]{{1,60}}?){_CLAUSE_END}",
        "location",
        0.7,
        normalize=_title,
        accept=_is_place,
    ),
    _rule(
        "job_identity",
        rf"\b{_I_AM}\s+an?\s+(?P<value>[a-z][a-z '-]{{1,60}}?)(?=\s+(?:at|for|in)\b|{_CLAUSE_TAIL})",
        "job",
        0.8,
        accept=_is_job,
    ),
    _rule(
        "job",
        rf"\b(?:i\s+work\s+as|my\s+(?:job|profession|occupation)\s+is)\s+(?:an?\s+)?"
        rf"(?P<value>[a-z][a-z '-]{{1,60}}?)(?=\s+(?:at|for)\b|{_CLAUSE_TAIL})",
        "job",
        0.8,
    ),
    _rule(
        "employer",
        rf"\bi\s+work\b[^.!?]*?\b(?:at|for)\s+(?P<value>[a-z0-9][a-z0-9 .&'-]{{1,60}}?){_CLAUSE_END}",
        "employer",
        0.7,
    ),
    _rule(
        "pets",
        rf"\bi\s+(?:have|own|got)\s+(?P<count>\d+|an?|one|two|three|four|five|six)\s+(?P<species>{_PET_SPECIES})\b",
        "pets",
        0.7,
        capture_to_value=_pet_count,
    ),
    _rule(
        "pet_name",
        rf"\bmy\s+{_PET_SPECIES}(?:'s\s+name\s+is|\s+is\s+(?:called|named)|\s+named|\s+called)\s+(?P<value>[a-z][a-z'-]{{1,30}})\b",
        "pet_name",
        0.75,
        normalize=_title,
        accept=_is_pet_name,
    ),
    _rule(
        "pet_named",
        rf"\b{_PET_SPECIES}\b[^.!?]*?\b(?:named|called)\s+(?P<value>[a-z][a-z'-]{{1,30}})\b",
        "pet_name",
        0.75,
        normalize=_title,
        accept=_is_pet_name,
    ),
    # Runs after pet_named so a two-name match replaces its single value.
    _rule(
        "pet_names",
        rf"\b{_PET_SPECIES}\b[^.!?]*?\b(?:named|called)\s+(?P<first>[a-z][a-z'-]{{1,30}})\s+and\s+(?P<second>[a-z][a-z'-]{{1,30}})\b",
        "pet_name",
        0.75,
        capture_to_value=lambda m: [m.group("first"), m.group("second")],
        normalize=_title,
        accept=_is_pet_name,
    ),
    _rule(
        "spouse",
        r"\bmy\s+(?:wife|husband|spouse|partner)(?:'s\s+name\s+is|\s+is\s+(?:called|named)|\s+named)\s+(?P<value>[a-z][a-z'-]{1,40})\b",
        "spouse",
        0.85,
        normalize=_title,
        accept=_is_name,
    ),
    _rule(
        "mother",
        r"\bmy\s+(?:mother|mom|mum)(?:'s\s+name\s+is|\s+is\s+(?:called|named)|\s+named)\s+(?P<value>[a-z][a-z'-]{1,40})\b",
        "mother",
        0.8,
        normalize=_title,
        accept=_is_name,
    ),
    _rule(
        "father",
        r"\bmy\s+(?:father|dad)(?:'s\s+name\s+is|\s+is\s+(?:called|named)|\s+named)\s+(?P<value>[a-z][a-z'-]{1,40})\b",
        "father",
        0.8,
        normalize=_title,
        accept=_is_name,
    ),
    _rule(
        "birthday",
        rf"\b(?:i\s+was\s+born\s+(?:on|in)|my\s+birthday\s+is(?:\s+on)?)\s+(?P<value>[a-z0-9][a-z0-9 /'-]{{1,40}}?){_CLAUSE_END}",
        "birthday",
        0.8,
    ),
    _rule(
        "favorite",
        rf"\bmy\s+favou?rite\s+(?P<thing>[a-z]+)\s+is\s+(?P<value>[a-z0-9][a-z0-9 '-]{{0,40}}?){_CLAUSE_END}",
        "favorite",
        0.6,
        key_from=lambda m: f"favorite_{m.group('thing').lower()}",
    ),
    _rule(
        "likes",
        rf"\bi\s+(?:really\s+)?(?:like|love|enjoy)\s+(?P<value>[a-z][a-z0-9 '-]{{1,60}}?){_CLAUSE_END}",
        "likes",
        0.5,
        accept=_is_preference,
    ),
)


def extract(utterance: str, *, now: datetime | None = None, rules: tuple[FactRule, ...] = FACT_RULES) -> list[ExtractedFact]:
    """Run every rule against the utterance and merge the results.

    Same-key conflicts resolve to the later rule's value with the higher of the
    two importances, except that a provisional rule never replaces a firm one.
    A numbered set (`key_1`, `key_2`) replaces a single `key` from an earlier
    rule. Output keeps first-seen key order.
    """
    text = (utterance or "").strip()
    if not text:
        return []
    ts = now or utcnow()

    merged: dict[str, ExtractedFact] = {}
    for rule in rules:
        pairs = rule.apply(text)
        if len(pairs) > 1:
            merged.pop(rule.key, None)
        for key, value in pairs:
            prev = merged.get(key)
            if prev is not None and rule.provisional and not prev.provisional:
                continue
            importance = rule.importance if prev is None else max(prev.importance, rule.importance)
            merged[key] = ExtractedFact(
                key=key,
                value=value,
                importance=importance,
                source="conversation",
                timestamp=ts,
                provisional=rule.provisional,
            )
    return list(merged.values())


def shares_personal_fact(utterance: str) -> bool:
    return bool(extract(utterance))
