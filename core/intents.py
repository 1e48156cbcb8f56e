from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from core.extraction import shares_personal_fact


class IntentKind(str, Enum):
    MATH = "math"
    PERSONAL_INFO_SHARE = "personalInfoShare"
    PERSONAL_INFO_RECALL = "personalInfoRecall"
    DEFINITION_REQUEST = "definitionRequest"
    KNOWLEDGE_QUERY = "knowledgeQuery"
    MEMORY_DELETION = "memoryDeletion"
    CONVERSATIONAL = "conversational"


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    confidence: float
    reasoning: str
    subject: str | None = None


_SELF_REFERENCE = re.compile(r"^(?:me|myself|us|you|yourself|(?:my|your|our)\b.*)$", re.IGNORECASE)
_LEADING_ARTICLE = re.compile(r"^(?:the|an?)\s+", re.IGNORECASE)


def _subject(raw: str | None) -> str | None:
    if raw is None:
        return None
    s = re.sub(r"\s+", " ", raw).strip(" \t\"'.,!?;:")
    s = _LEADING_ARTICLE.sub("", s)
    return s or None


def _not_self(subject: str | None) -> bool:
    return subject is not None and not _SELF_REFERENCE.match(subject)


_SMALL_TALK_SUBJECTS = {"up", "new", "going on", "happening", "good", "wrong", "that", "this", "it"}


def _definable(subject: str | None) -> bool:
    return _not_self(subject) and subject.lower() not in _SMALL_TALK_SUBJECTS


@dataclass(frozen=True)
class IntentRule:
    """One row of the routing table.

    A row matches when any pattern matches (or `test` returns True), `unless`
    does not veto it, and `subject_ok` accepts the captured subject.
    """

    kind: IntentKind
    confidence: float
    reasoning: str
    patterns: tuple[re.Pattern[str], ...] = ()
    test: Callable[[str], bool] | None = None
    unless: Callable[[str], bool] | None = None
    subject_ok: Callable[[str | None], bool] | None = None

    def match(self, text: str) -> Intent | None:
        if self.unless is not None and self.unless(text):
            return None
        if self.test is not None and self.test(text):
            return Intent(self.kind, self.confidence, self.reasoning)
        for pattern in self.patterns:
            m = pattern.search(text)
            if not m:
                continue
            raw = m.groupdict().get("subject")
            subject = _subject(raw)
            if self.subject_ok is not None and not self.subject_ok(subject):
                continue
            return Intent(self.kind, self.confidence, self.reasoning, subject)
        return None


def _patterns(*sources: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(s, re.IGNORECASE) for s in sources)


ARITHMETIC_RE = re.compile(r"-?\d+(?:\.\d+)?\s*(?:[-+*/^%×÷x])\s*-?\d+(?:\.\d+)?")


INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(
        kind=IntentKind.MATH,
        confidence=0.9,
        reasoning="Detected an arithmetic expression",
        patterns=(ARITHMETIC_RE,),
        # A personal declaration that happens to carry numbers is still a declaration.
        unless=shares_personal_fact,
    ),
    IntentRule(
        kind=IntentKind.PERSONAL_INFO_SHARE,
        confidence=0.95,
        reasoning="User is sharing personal information",
        test=shares_personal_fact,
    ),
    IntentRule(
        kind=IntentKind.DEFINITION_REQUEST,
        confidence=0.9,
        reasoning="User is asking for a definition",
        patterns=_patterns(
            r"^\s*what\s+does\s+(?P<subject>.+?)\s+mean\b",
            r"^\s*(?:what\s+is\s+)?the\s+(?:meaning|definition)\s+of\s+(?P<subject>.+)$",
            r"^\s*(?:define|definition\s+of|meaning\s+of)\s+(?P<subject>.+)$",
            r"^\s*what(?:'s|\s+is|\s+are)\s+(?P<subject>(?!the\s+capital\b).+?)\s*[?.!]*$",
        ),
        subject_ok=_definable,
    ),
    IntentRule(
        kind=IntentKind.KNOWLEDGE_QUERY,
        confidence=0.8,
        reasoning="User is asking for general knowledge",
        patterns=_patterns(
            r"\btell\s+me\s+(?:something\s+)?about\s+(?P<subject>.+)$",
            r"\bexplain\s+(?P<subject>.+)$",
            r"\bhow\s+does\s+(?P<subject>.+?)\s+work\b",
            r"\b(?:who|what)\s+(?:was|were)\s+(?P<subject>.+)$",
            r"\bwho\s+is\s+(?P<subject>.+)$",
            r"\bwhat\s+do\s+you\s+know\s+about\s+(?P<subject>.+)$",
            r"^\s*what(?:'s|\s+is)\s+(?P<subject>the\s+capital\b.+)$",
        ),
        subject_ok=_not_self,
    ),
    IntentRule(
        kind=IntentKind.PERSONAL_INFO_RECALL,
        confidence=0.85,
        reasoning="User wants me to recall what I know about them",
        patterns=_patterns(
            r"\bdo\s+you\s+remember(?:\s+(?:my\s+|about\s+|when\s+)?(?P<subject>.+))?",
            r"\bwhat\s+do\s+you\s+(?:know|remember)\s+about\s+me\b",
            r"\bwho\s+am\s+i\b",
            r"\bwhat(?:'s|\s+is|\s+are)\s+my\s+(?P<subject>.+)$",
            r"\bdo\s+you\s+know\s+(?:my\s+)?(?P<subject>.+)$",
            r"\b(?:recall|remind\s+me(?:\s+of)?)\b(?:\s+(?:my\s+)?(?P<subject>.+))?",
        ),
    ),
    IntentRule(
        kind=IntentKind.MEMORY_DELETION,
        confidence=0.9,
        reasoning="User wants me to forget something",
        patterns=_patterns(
            r"\bforget\s+(?:about\s+)?(?:that\s+)?(?:my\s+)?(?P<subject>.+)$",
            r"\b(?:delete|remove|erase)\s+(?:the\s+)?memor(?:y|ies)\s+(?:of\s+|about\s+)?(?:my\s+)?(?P<subject>.+)$",
        ),
    ),
)


_DEFAULT = Intent(IntentKind.CONVERSATIONAL, 0.7, "No specific pattern matched; treating as conversation")


def classify(utterance: str, rules: tuple[IntentRule, ...] = INTENT_RULES) -> Intent:
    """Return the first matching row's intent, falling back to conversation."""
    text = (utterance or "").strip()
    if not text:
        return _DEFAULT
    for rule in rules:
        intent = rule.match(text)
        if intent is not None:
            return intent
    return _DEFAULT
