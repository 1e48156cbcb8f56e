import re
from datetime import datetime, timezone

from core.extraction import FactRule, extract, shares_personal_fact


def _as_dict(facts):
    return {f.key: f.value for f in facts}


def test_name_declaration():
    facts = extract("My name is Alex")
    assert len(facts) == 1
    assert facts[0].key == "name"
    assert facts[0].value == "Alex"
    assert facts[0].importance == 0.9
    assert facts[0].source == "conversation"


def test_multiple_facts_in_one_sentence():
    facts = _as_dict(extract("My name is Alex and I live in Berlin"))
    assert facts == {"name": "Alex", "location": "Berlin"}


def test_pet_names_are_split_into_separate_keys():
    facts = _as_dict(extract("I have two dogs named Rex and Max"))
    assert facts["pets"] == "2 dogs"
    assert facts["pet_name_1"] == "Rex"
    assert facts["pet_name_2"] == "Max"
    assert "pet_name" not in facts


def test_single_pet_name():
    facts = _as_dict(extract("My dog's name is rex"))
    assert facts == {"pet_name": "Rex"}


def test_job_and_employer():
    facts = _as_dict(extract("I work as a developer at Google"))
    assert facts["job"] == "developer"
    assert facts["employer"] == "Google"


def test_age():
    assert _as_dict(extract("I am 30 years old")) == {"age": "30"}


def test_favorite_uses_thing_in_key():
    facts = extract("My favorite color is blue")
    assert [(f.key, f.value, f.importance) for f in facts] == [("favorite_color", "blue", 0.6)]


def test_likes_rejects_pronouns():
    assert _as_dict(extract("I like pizza")) == {"likes": "pizza"}
    assert extract("I like it") == []


def test_feelings_are_not_names():
    assert extract("I'm tired today") == []
    assert extract("I'm Tired") == []
    assert _as_dict(extract("Hi, I'm Sam")) == {"name": "Sam"}


def test_empty_input():
    assert extract("") == []
    assert extract("   ") == []


def test_timestamp_comes_from_caller():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    facts = extract("Call me Jo", now=now)
    assert facts[0].timestamp == now


def test_later_rule_wins_value_and_max_importance_is_kept():
    rules = (
        FactRule("first", re.compile(r"color (?P<value>\w+)"), "color", 0.9),
        FactRule("second", re.compile(r"(?P<value>\w+) is my color"), "color", 0.5),
    )
    facts = extract("color red, blue is my color", rules=rules)
    assert len(facts) == 1
    assert facts[0].value == "blue"
    assert facts[0].importance == 0.9


def test_shares_personal_fact():
    assert shares_personal_fact("I live in Paris")
    assert not shares_personal_fact("what is 2 + 2")


def test_nationality_is_not_a_name():
    assert extract("I'm American") == []
    assert extract("I am Italian") == []
    assert extract("I'm Japanese") == []
    assert extract("I'm Sam's friend") == []


def test_declared_name_beats_introduction():
    facts = extract("My name is Alex, I'm Sam")
    assert _as_dict(facts) == {"name": "Alex"}
    assert facts[0].provisional is False


def test_introduction_is_provisional():
    facts = extract("I'm Sam")
    assert _as_dict(facts) == {"name": "Sam"}
    assert facts[0].provisional is True


def test_job_from_i_am_a():
    assert _as_dict(extract("I am a teacher")) == {"job": "teacher"}
    assert _as_dict(extract("I'm a software engineer")) == {"job": "software engineer"}
    assert _as_dict(extract("I'm an architect at a small firm")) == {"job": "architect"}


def test_moods_and_habits_are_not_jobs():
    assert extract("I'm a bit tired") == []
    assert extract("I'm a big fan of jazz") == []
    assert extract("I'm a morning person") == []


def test_pet_with_one_name():
    assert _as_dict(extract("I have a dog named Rex")) == {"pets": "1 dog", "pet_name": "Rex"}
    assert _as_dict(extract("I have a cat called whiskers")) == {"pets": "1 cat", "pet_name": "Whiskers"}
