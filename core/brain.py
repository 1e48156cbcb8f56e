from __future__ import annotations

import asyncio
import contextlib
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable
from uuid import uuid4

from core.arithmetic import UndefinedResult, evaluate
from core.config import AssistantConfig
from core.extraction import extract
from core.intents import Intent, IntentKind, classify
from core.learning import KnowledgeLearner
from core.logging_setup import get_logger
from core.tool_router import LookupRouter
from memory.facts import label_for
from memory.knowledge import tokenize
from memory.schemas import ExtractedFact, KnowledgeEntry, MemoryRecord, utcnow
from memory.unifier import MemoryUnifier
from plugins.registry import LookupFailed


logger = get_logger(__name__)

APOLOGY_CONFIDENCE = 0.1
IMMEDIATE_CONFIDENCE = 0.95
PARTIAL_MATCH_CEILING = 0.4
DEGRADED_FACTOR = 0.8


class TurnState(str, Enum):
    RECEIVED = "received"
    EXTRACTED = "extracted"
    IMMEDIATE_REPLY = "immediate_reply"
    CLASSIFIED = "classified"
    DISPATCHED = "dispatched"
    RECORDED = "recorded"
    DONE = "done"


_TRANSITIONS: dict[TurnState, set[TurnState]] = {
    TurnState.RECEIVED: {TurnState.EXTRACTED},
    TurnState.EXTRACTED: {TurnState.IMMEDIATE_REPLY, TurnState.CLASSIFIED},
    TurnState.IMMEDIATE_REPLY: {TurnState.DISPATCHED},
    TurnState.CLASSIFIED: {TurnState.DISPATCHED},
    TurnState.DISPATCHED: {TurnState.RECORDED},
    TurnState.RECORDED: {TurnState.DONE},
    TurnState.DONE: set(),
}


@dataclass(frozen=True)
class Utterance:
    text: str
    received_at: datetime
    session_id: str
    facts: tuple[ExtractedFact, ...] = ()
    held_back: tuple[ExtractedFact, ...] = ()


@dataclass
class Answer:
    content: str
    confidence: float
    reasoning: list[str] = field(default_factory=list)


@dataclass
class TurnResult:
    content: str
    confidence: float
    reasoning: list[str]
    session_id: str
    intent: str | None = None
    facts: list[dict[str, Any]] = field(default_factory=list)
    degraded: bool = False


@dataclass
class _Turn:
    session_id: str
    state: TurnState = TurnState.RECEIVED
    trail: list[TurnState] = field(default_factory=lambda: [TurnState.RECEIVED])

    def advance(self, nxt: TurnState) -> None:
        if nxt not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal turn transition {self.state.value} -> {nxt.value}")
        logger.debug("turn_state", session_id=self.session_id, frm=self.state.value, to=nxt.value)
        self.state = nxt
        self.trail.append(nxt)


# ---- reply templates ----

_ACKNOWLEDGEMENTS: dict[str, str] = {
    "name": "Nice to meet you, {value}! I'll remember your name.",
    "age": "Thanks for telling me you're {value}. I'll remember that.",
    "location": "{value} sounds like a great place! I'll remember that's where you are.",
    "job": "Being {article} {value} sounds interesting! I'll remember that.",
    "employer": "Got it, you work at {value}. I'll remember that.",
    "pets": "You have {value}? That's lovely! I'll remember them.",
    "pet_name": "{value} is a great name for a pet! I'll remember it.",
    "spouse": "I'll remember that your partner is {value}.",
    "mother": "I'll remember that your mother is {value}.",
    "father": "I'll remember that your father is {value}.",
    "birthday": "I'll remember your birthday: {value}.",
}

_GREETING_RE = re.compile(r"^\s*(?:hi|hello|hey|howdy|greetings|good\s+(?:morning|afternoon|evening))\b", re.IGNORECASE)
_HOW_ARE_YOU_RE = re.compile(r"\bhow\s+are\s+you\b|\bhow's\s+it\s+going\b", re.IGNORECASE)
_THANKS_RE = re.compile(r"\b(?:thanks|thank\s+you|thx|cheers)\b", re.IGNORECASE)
_BYE_RE = re.compile(r"\b(?:bye|goodbye|see\s+you|good\s+night)\b", re.IGNORECASE)
_WHO_ARE_YOU_RE = re.compile(r"\b(?:what(?:'s|\s+is)\s+your\s+name|who\s+are\s+you)\b", re.IGNORECASE)
_EVERYTHING = {"everything", "all", "it all", "all of it", "everything about me", "me"}


def _acknowledge(top: ExtractedFact, facts: list[ExtractedFact]) -> str:
    base = re.sub(r"_\d+$", "", top.key)
    if base == "pet_name":
        names = [f.value for f in facts if re.sub(r"_\d+$", "", f.key) == "pet_name"]
        if len(names) > 1:
            text = f"{' and '.join(names)} are great names! I'll remember them."
        else:
            text = _ACKNOWLEDGEMENTS["pet_name"].format(value=top.value)
    elif base in _ACKNOWLEDGEMENTS:
        article = "an" if top.value[:1].lower() in "aeiou" else "a"
        text = _ACKNOWLEDGEMENTS[base].format(value=top.value, article=article)
    else:
        text = f"Thanks for sharing that your {label_for(top.key).lower()} is {top.value}. I'll remember it."

    others = sorted({label_for(f.key).lower() for f in facts if label_for(f.key) != label_for(top.key)})
    if others:
        text += f" I've also noted your {', '.join(others)}."
    return text


def render_entry(entry: KnowledgeEntry) -> str:
    p = entry.payload
    if entry.category == "vocabulary" and p.get("definition"):
        pos = f" ({p['part_of_speech']})" if p.get("part_of_speech") else ""
        text = f"{entry.term}{pos}: {p['definition']}"
        if p.get("synonyms"):
            text += f" Similar words: {', '.join(map(str, p['synonyms'][:5]))}."
        return text
    if p.get("synonyms") and not p.get("definition"):
        return f"Words similar to {entry.term}: {', '.join(map(str, p['synonyms'][:10]))}."
    if entry.category == "mathematics":
        text = f"{entry.term}: {p.get('definition', '')}".strip()
        if p.get("formula"):
            text += f" Formula: {p['formula']}."
        return text
    if p.get("summary"):
        return f"{p.get('title') or entry.term}: {p['summary']}"
    if p.get("fact"):
        return str(p["fact"])
    return f"{entry.term}: {p.get('definition') or p.get('extract') or 'no details stored'}"


def _covers(query: str, entry: KnowledgeEntry) -> bool:
    """True when every query word is literally one of the entry's term words."""
    term_tokens = set(tokenize(entry.term))
    q_tokens = tokenize(query)
    return bool(q_tokens) and all(t in term_tokens for t in q_tokens)


Handler = Callable[[Intent, Utterance], Awaitable[Answer]]


class Brain:
    """Per-turn orchestrator: extract, route, answer, record."""

    def __init__(
        self,
        memory: MemoryUnifier,
        lookups: LookupRouter | None = None,
        config: AssistantConfig | None = None,
        session_id: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._memory = memory
        self._cfg = config or AssistantConfig()
        self._clock = clock
        self._session_id = session_id or uuid4().hex
        self._learner = (
            KnowledgeLearner(memory.knowledge, lookups, timeout_s=self._cfg.lookup_timeout_s) if lookups is not None else None
        )
        self._turn_lock = asyncio.Lock()
        self._sweeper: asyncio.Task | None = None
        self._turns = 0
        self._last: TurnResult | None = None
        self._handlers: dict[IntentKind, Handler] = {
            IntentKind.MATH: self._handle_math,
            IntentKind.PERSONAL_INFO_SHARE: self._handle_share,
            IntentKind.PERSONAL_INFO_RECALL: self._handle_recall,
            IntentKind.DEFINITION_REQUEST: self._handle_definition,
            IntentKind.KNOWLEDGE_QUERY: self._handle_knowledge,
            IntentKind.MEMORY_DELETION: self._handle_deletion,
            IntentKind.CONVERSATIONAL: self._handle_conversational,
        }

    @property
    def session_id(self) -> str:
        return self._session_id

    async def new_session(self) -> str:
        async with self._turn_lock:
            self._session_id = uuid4().hex
            logger.info("session_started", session_id=self._session_id)
            return self._session_id

    # ---- turn pipeline ----

    async def chat(self, message: str, session_id: str | None = None) -> TurnResult:
        # Turns queue on the lock; none is ever interrupted.
        async with self._turn_lock:
            if session_id and session_id != self._session_id:
                logger.info("session_switched", frm=self._session_id, to=session_id)
                self._session_id = session_id
            utt = Utterance(text=(message or "").strip(), received_at=self._clock(), session_id=self._session_id)
            result = await self._run_turn(utt)
            self._turns += 1
            self._last = result
            return result

    async def _run_turn(self, utt: Utterance) -> TurnResult:
        await self._memory.initialize()
        turn = _Turn(session_id=utt.session_id)
        reasoning: list[str] = []
        degraded = False

        facts, held = await self._memory.facts.admit(utt.session_id, extract(utt.text, now=utt.received_at))
        utt = replace(utt, facts=tuple(facts), held_back=tuple(held))
        if held:
            reasoning.append("Kept stored " + ", ".join(f.key for f in held) + " over a passing mention")
        if facts:
            if not await self._memory.facts.upsert(utt.session_id, facts):
                degraded = True
                reasoning.append("Facts kept in memory only; storage did not confirm the write")
            reasoning.append("Extracted facts: " + ", ".join(f"{f.key}={f.value}" for f in facts))
        turn.advance(TurnState.EXTRACTED)

        intent: Intent | None = None
        immediate = self._immediate_reply(facts)
        if immediate is not None:
            turn.advance(TurnState.IMMEDIATE_REPLY)
            answer = immediate
        else:
            intent = classify(utt.text)
            turn.advance(TurnState.CLASSIFIED)
            reasoning.append(f"Intent {intent.kind.value} ({intent.confidence:.2f}): {intent.reasoning}")
            answer = await self._dispatch(intent, utt)
        turn.advance(TurnState.DISPATCHED)
        reasoning.extend(answer.reasoning)

        if not await self._record(utt, answer):
            degraded = True
            reasoning.append("Conversation kept in memory only; storage did not confirm the write")
        turn.advance(TurnState.RECORDED)

        confidence = answer.confidence
        if degraded:
            confidence = round(confidence * DEGRADED_FACTOR, 3)
        turn.advance(TurnState.DONE)

        logger.info(
            "turn_complete",
            session_id=utt.session_id,
            intent=intent.kind.value if intent else "immediate_reply",
            confidence=confidence,
            facts=len(facts),
        )
        return TurnResult(
            content=answer.content,
            confidence=confidence,
            reasoning=reasoning,
            session_id=utt.session_id,
            intent=intent.kind.value if intent else None,
            facts=[f.model_dump(mode="json") for f in facts],
            degraded=degraded,
        )

    def _immediate_reply(self, facts: list[ExtractedFact]) -> Answer | None:
        if not self._cfg.immediate_response_enabled or not facts:
            return None
        top = max(facts, key=lambda f: f.importance)
        if top.importance < self._cfg.immediate_response_importance_floor:
            return None
        return Answer(
            content=_acknowledge(top, facts),
            confidence=IMMEDIATE_CONFIDENCE,
            reasoning=[f"Acknowledged {top.key} directly (importance {top.importance:.2f})"],
        )

    async def _dispatch(self, intent: Intent, utt: Utterance) -> Answer:
        handler = self._handlers[intent.kind]
        try:
            return await handler(intent, utt)
        except Exception as e:  # noqa: BLE001
            logger.exception("handler_failed", intent=intent.kind.value, error=str(e))
            return Answer(
                content="I'm sorry, something went wrong while I was working on that. Could you try again?",
                confidence=APOLOGY_CONFIDENCE,
                reasoning=[f"Handler {intent.kind.value} failed: {e}"],
            )

    async def _record(self, utt: Utterance, answer: Answer) -> bool:
        conv = self._memory.conversation
        user = MemoryRecord(role="user", content=utt.text, timestamp=utt.received_at, session_id=utt.session_id)
        reply = MemoryRecord(
            role="assistant",
            content=answer.content,
            timestamp=max(self._clock(), utt.received_at),
            session_id=utt.session_id,
        )
        durable = await conv.append(user)
        # The user turn must survive trimming until its answer lands next to it.
        async with conv.pinned(utt.session_id, [user.id]):
            durable = await conv.append(reply) and durable
        return durable

    # ---- capabilities ----

    async def _handle_math(self, intent: Intent, utt: Utterance) -> Answer:
        try:
            calc = evaluate(utt.text)
        except UndefinedResult as e:
            return Answer(f"I can't work that out: {e}.", 0.3, [f"Arithmetic undefined: {e}"])
        if calc is not None:
            return Answer(calc.render(), 0.95, ["Evaluated the arithmetic expression"])

        hits = [h for h in self._memory.knowledge.search_scored(utt.text, limit=5) if h.entry.category == "mathematics"]
        if hits:
            return Answer(render_entry(hits[0].entry), min(PARTIAL_MATCH_CEILING, hits[0].score), ["No expression; closest math concept"])
        return Answer("I couldn't find a calculation in that. Try something like '12 * 7'.", 0.3, ["No expression found"])

    async def _handle_definition(self, intent: Intent, utt: Utterance) -> Answer:
        return await self._answer_from_knowledge(intent.subject or utt.text, ("dictionary", "encyclopedia"))

    async def _handle_knowledge(self, intent: Intent, utt: Utterance) -> Answer:
        return await self._answer_from_knowledge(intent.subject or utt.text, ("encyclopedia", "dictionary"))

    async def _answer_from_knowledge(self, term: str, kinds: tuple[str, ...]) -> Answer:
        knowledge = self._memory.knowledge
        hits = knowledge.search_scored(term, limit=3)

        strong = knowledge.peek(term) or next((h.entry for h in hits if _covers(term, h.entry)), None)
        if strong is not None:
            entry = await knowledge.get(strong.term) or strong
            return Answer(render_entry(entry), entry.confidence, [f"Found '{entry.term}' in the knowledge store"])

        reasoning = [f"No direct entry for '{term}'"]
        lookup_failed = False
        if self._learner is not None:
            try:
                learned = await self._learner.learn(term, kinds)
            except LookupFailed as e:
                lookup_failed = True
                reasoning.append(f"Lookup unavailable: {e}")
            else:
                if learned is not None:
                    reasoning.append(f"Learned '{learned.term}' from {learned.source}")
                    return Answer(render_entry(learned), learned.confidence, reasoning)
                reasoning.append("No external source knew the term")

        if hits:
            best = hits[0]
            confidence = min(PARTIAL_MATCH_CEILING, round(best.entry.confidence * best.score, 3))
            if lookup_failed:
                confidence = round(confidence / 2, 3)
            reasoning.append(f"Closest local match '{best.entry.term}' (score {best.score:.2f})")
            return Answer(
                f"I'm not sure about '{term}', but here's the closest thing I know: {render_entry(best.entry)}",
                confidence,
                reasoning,
            )

        return Answer(
            f"I don't know what '{term}' is yet. Would you like to teach me?",
            0.2 if lookup_failed else 0.3,
            reasoning,
        )

    async def _handle_recall(self, intent: Intent, utt: Utterance) -> Answer:
        sid = utt.session_id
        subject = intent.subject
        if subject:
            recalled = await self._memory.recall(sid, subject)
            if recalled.found:
                return Answer(recalled.summary, 0.85, [f"Recalled {len(recalled.facts)} fact(s) and {len(recalled.records)} turn(s) for '{subject}'"])

        summary = await self._memory.facts.summary(sid)
        if subject and summary:
            return Answer(f"I don't remember anything about '{subject}', but {summary[0].lower()}{summary[1:]}", 0.6, ["Subject not found; gave full summary"])
        if summary:
            return Answer(summary, 0.9, ["Summarised stored facts"])
        if subject:
            return Answer(f"I don't have any memories about '{subject}' yet.", 0.4, ["Nothing stored"])
        return Answer("I don't know much about you yet. Tell me about yourself!", 0.4, ["Nothing stored"])

    async def _handle_deletion(self, intent: Intent, utt: Utterance) -> Answer:
        sid = utt.session_id
        subject = (intent.subject or "").strip()
        if not subject:
            return Answer("What would you like me to forget?", 0.5, ["No deletion target"])
        if subject.lower() in _EVERYTHING:
            n = await self._memory.facts.clear(sid)
            return Answer(f"Done. I've forgotten everything I knew about you ({n} facts).", 0.9, ["Cleared all facts"])

        removed = await self._memory.facts.forget(sid, subject)
        if not removed:
            return Answer(f"I couldn't find anything about '{subject}' to forget.", 0.3, [f"No fact matched '{subject}'"])
        labels = sorted({label_for(f.key).lower() for f in removed})
        return Answer(f"Okay, I've forgotten your {', '.join(labels)}.", 0.9, [f"Removed {', '.join(f.key for f in removed)}"])

    async def _handle_share(self, intent: Intent, utt: Utterance) -> Answer:
        facts = utt.facts
        if not facts and utt.held_back:
            fact = utt.held_back[0]
            stored = await self._memory.facts.get(utt.session_id, fact.key)
            label = label_for(fact.key).lower()
            return Answer(
                f"I already have your {label} as {stored.value}. If that has changed, tell me \"my {label} is {fact.value}\".",
                0.6,
                [f"Kept stored {fact.key}"],
            )
        if not facts:
            return Answer("Thanks for sharing!", 0.5, ["Nothing extractable"])
        noted = ", ".join(f"{label_for(f.key).lower()}: {f.value}" for f in facts)
        return Answer(f"Thanks, I'll remember that ({noted}).", 0.8, ["Acknowledged shared facts"])

    async def _handle_conversational(self, intent: Intent, utt: Utterance) -> Answer:
        name_fact = await self._memory.facts.get(utt.session_id, "name")
        you = f", {name_fact.value}" if name_fact else ""
        text = utt.text

        if _WHO_ARE_YOU_RE.search(text):
            return Answer("I'm Zac, your assistant. I remember what you tell me and can look things up.", 0.8, ["Self introduction"])
        if _GREETING_RE.search(text):
            return Answer(f"Hello{you}! How can I help you today?", 0.7, ["Greeting"])
        if _HOW_ARE_YOU_RE.search(text):
            return Answer(f"I'm doing well, thanks for asking{you}! What's on your mind?", 0.7, ["Small talk"])
        if _THANKS_RE.search(text):
            return Answer(f"You're welcome{you}!", 0.7, ["Thanks"])
        if _BYE_RE.search(text):
            return Answer(f"Goodbye{you}! Talk to you soon.", 0.7, ["Farewell"])
        return Answer(
            f"I'm not sure how to respond to that yet{you}. You can tell me about yourself, "
            "ask me what a word means, or give me some math to do.",
            0.5,
            ["No conversational template matched"],
        )

    # ---- maintenance ----

    async def sweep_once(self) -> list[str]:
        # Holding the turn lock keeps eviction out of any in-flight turn.
        async with self._turn_lock:
            return await self._memory.conversation.evict()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cfg.eviction_interval_s)
            try:
                await self.sweep_once()
            except Exception as e:  # noqa: BLE001
                logger.exception("eviction_sweep_failed", error=str(e))

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def clear_session(self) -> dict[str, int]:
        async with self._turn_lock:
            return await self._memory.clear_session(self._session_id)

    def status(self) -> dict[str, Any]:
        """Lock-free diagnostics snapshot; may trail an in-flight turn."""
        last = self._last
        return {
            "session_id": self._session_id,
            "busy": self._turn_lock.locked(),
            "turns": self._turns,
            "sweeper_running": self._sweeper is not None and not self._sweeper.done(),
            "importance": round(self._memory.conversation.current_importance(self._session_id), 3),
            "last_turn": (
                {"intent": last.intent, "confidence": last.confidence, "degraded": last.degraded} if last else None
            ),
            "memory": self._memory.status(self._session_id),
        }
