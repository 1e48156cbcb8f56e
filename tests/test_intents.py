import re

import pytest

from core.intents import IntentKind, IntentRule, classify


@pytest.mark.parametrize(
    "utterance,kind,subject",
    [
        ("2 + 2", IntentKind.MATH, None),
        ("what is 12 * 7?", IntentKind.MATH, None),
        ("My name is Alex", IntentKind.PERSONAL_INFO_SHARE, None),
        ("What is serendipity", IntentKind.DEFINITION_REQUEST, "serendipity"),
        ("What does ephemeral mean?", IntentKind.DEFINITION_REQUEST, "ephemeral"),
        ("define algorithm", IntentKind.DEFINITION_REQUEST, "algorithm"),
        ("Tell me about black holes", IntentKind.KNOWLEDGE_QUERY, "black holes"),
        ("Explain photosynthesis", IntentKind.KNOWLEDGE_QUERY, "photosynthesis"),
        ("What is the capital of France?", IntentKind.KNOWLEDGE_QUERY, "capital of France"),
        ("Do you remember my dog?", IntentKind.PERSONAL_INFO_RECALL, "dog"),
        ("What do you know about me?", IntentKind.PERSONAL_INFO_RECALL, None),
        ("What is my name?", IntentKind.PERSONAL_INFO_RECALL, "name"),
        ("Who am I?", IntentKind.PERSONAL_INFO_RECALL, None),
        ("Forget my location", IntentKind.MEMORY_DELETION, "location"),
        ("delete memory of Berlin", IntentKind.MEMORY_DELETION, "Berlin"),
        ("hello there", IntentKind.CONVERSATIONAL, None),
        ("what's up?", IntentKind.CONVERSATIONAL, None),
    ],
)
def test_classify(utterance, kind, subject):
    intent = classify(utterance)
    assert intent.kind is kind
    assert intent.subject == subject


def test_confidences_follow_rows():
    assert classify("2 + 2").confidence == 0.9
    assert classify("My name is Alex").confidence == 0.95
    assert classify("hmm").confidence == 0.7


def test_empty_input_is_conversational():
    intent = classify("")
    assert intent.kind is IntentKind.CONVERSATIONAL
    assert intent.reasoning


@pytest.mark.parametrize(
    "utterance",
    [
        "I am 25 years old, what is 3 * 4",
        "My name is Sam and 2+2",
        "I have 2 dogs and 3+3",
    ],
)
def test_personal_share_beats_math(utterance):
    assert classify(utterance).kind is IntentKind.PERSONAL_INFO_SHARE


def test_first_matching_row_wins():
    rules = (
        IntentRule(IntentKind.KNOWLEDGE_QUERY, 0.6, "first", patterns=(re.compile("cat"),)),
        IntentRule(IntentKind.DEFINITION_REQUEST, 0.9, "second", patterns=(re.compile("cat"),)),
    )
    intent = classify("a cat", rules=rules)
    assert intent.kind is IntentKind.KNOWLEDGE_QUERY
    assert intent.reasoning == "first"


def test_rejected_subject_falls_through_to_next_row():
    rules = (
        IntentRule(
            IntentKind.DEFINITION_REQUEST,
            0.9,
            "definition",
            patterns=(re.compile(r"what is (?P<subject>.+)"),),
            subject_ok=lambda s: s != "it",
        ),
    )
    assert classify("what is it", rules=rules).kind is IntentKind.CONVERSATIONAL
    assert classify("what is rain", rules=rules).subject == "rain"
