import pytest

from domain.rules.entity import MatchMode, ResponseAction
from domain.rules.matcher import NO_MATCH, match, partial_equal, predicate_holds
from domain.rules.entity import Predicate
from domain.rules.store import RuleStore
from tests.factories import SAY, make_rule


def _store(registry, *rules):
    return RuleStore.build(registry, rules)


def test_fallback_applies_when_no_specific_rule_matches(echo_registry):
    ping = make_rule(SAY, ("text", "ping"), action=ResponseAction({"text": "pong"}), index=0)
    fallback = make_rule(SAY, action=ResponseAction({"text": "?"}), index=1)
    store = _store(echo_registry, ping, fallback)

    assert match(store, SAY.path, {"text": "hello"}) is store.for_method(SAY.path).fallback
    assert match(store, SAY.path, {"text": "ping"}).action.payload == {"text": "pong"}


def test_first_rule_in_document_order_wins(echo_registry):
    broad = make_rule(SAY, ("n", 5), index=0, description="broad")
    narrow = make_rule(SAY, ("n", 5), ("text", "ping"), index=1, description="narrow")
    store = _store(echo_registry, broad, narrow)

    assert match(store, SAY.path, {"n": 5, "text": "ping"}).description == "broad"


def test_fallback_position_does_not_shadow_later_rules(echo_registry):
    fallback = make_rule(SAY, index=0, description="fallback")
    specific = make_rule(SAY, ("text", "ping"), index=1, description="specific")
    store = _store(echo_registry, fallback, specific)

    assert match(store, SAY.path, {"text": "ping"}).description == "specific"
    assert match(store, SAY.path, {"text": "x"}).description == "fallback"


def test_no_match_without_fallback(echo_registry):
    store = _store(echo_registry, make_rule(SAY, ("text", "ping")))
    result = match(store, SAY.path, {"text": "hello"})
    assert result is NO_MATCH
    assert not result


def test_unknown_method_path_is_no_match(echo_registry):
    store = _store(echo_registry, make_rule(SAY))
    assert match(store, "/demo.Echo/Nope", {}) is NO_MATCH


def test_exact_predicate():
    p = Predicate(field="x", value=5)
    assert predicate_holds(p, {"x": 5})
    assert not predicate_holds(p, {"x": 6})


def test_partial_predicate_ignores_extra_fields():
    p = Predicate(field=None, value=None, mode=MatchMode.PARTIAL)
    assert predicate_holds(p, {"anything": 1})

    p = Predicate(field="inner", value={"id": "a"}, mode=MatchMode.PARTIAL)
    assert predicate_holds(p, {"inner": {"id": "a", "values": [1, 2]}})
    assert not predicate_holds(p, {"inner": {"id": "b"}})


def test_exact_object_requires_same_keys():
    p = Predicate(field="inner", value={"id": "a"})
    assert predicate_holds(p, {"inner": {"id": "a"}})
    assert not predicate_holds(p, {"inner": {"id": "a", "values": []}})


def test_partial_lists_compare_by_position():
    assert partial_equal([1, 2], [1, 2, 3])
    assert not partial_equal([2], [1, 2])
    assert not partial_equal([1, 2, 3], [1, 2])


def test_nested_path_and_list_index():
    assert predicate_holds(Predicate(field="inner.id", value="a"), {"inner": {"id": "a"}})
    assert predicate_holds(Predicate(field="tags.1", value="b"), {"tags": ["a", "b"]})
    assert not predicate_holds(Predicate(field="tags.5", value="b"), {"tags": ["a", "b"]})


def test_missing_field_matches_only_null():
    assert not predicate_holds(Predicate(field="text", value="x"), {})
    assert predicate_holds(Predicate(field="text", value=None), {})


def test_int64_rendered_as_string_compares_numerically():
    assert predicate_holds(Predicate(field="big", value=9007199254740993), {"big": "9007199254740993"})
    assert predicate_holds(Predicate(field="n", value="7"), {"n": 7})


def test_bool_is_not_a_number():
    assert not predicate_holds(Predicate(field="flag", value=1), {"flag": True})
    assert predicate_holds(Predicate(field="flag", value=True), {"flag": True})


@pytest.mark.parametrize(
    "pattern,text,expected",
    [("^pi", "ping", True), ("ng$", "ping", True), ("^x", "ping", False)],
)
def test_regex_predicate(pattern, text, expected):
    p = Predicate(field="text", value=pattern, mode=MatchMode.REGEX)
    assert predicate_holds(p, {"text": text}) is expected


def test_regex_does_not_match_objects():
    p = Predicate(field="inner", value=".*", mode=MatchMode.REGEX)
    assert not predicate_holds(p, {"inner": {"id": "a"}})
