"""Rule matching.

`match` is a pure function of (rule store snapshot, method path, payload):
the first rule in document order whose predicates all hold wins, then the
method's fallback rule, otherwise `NO_MATCH`.

Payloads are the JSON mapping of the request message (dicts, lists and
scalars). 64-bit integers arrive as decimal strings in that mapping, so
numeric comparison accepts them.
"""
from __future__ import annotations

from typing import Any, Mapping, Union

from domain.rules.entity import MatchMode, Predicate, Rule
from domain.rules.store import RuleStore


class NoMatch:
    """Sentinel returned when neither a rule nor a fallback applies."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_MATCH"


NO_MATCH = NoMatch()

_MISSING = object()


def match(store: RuleStore, method: str, payload: Mapping[str, Any]) -> Union[Rule, NoMatch]:
    entry = store.for_method(method)
    for rule in entry.rules:
        if rule_matches(rule, payload):
            return rule
    if entry.fallback is not None:
        return entry.fallback
    return NO_MATCH


def rule_matches(rule: Rule, payload: Mapping[str, Any]) -> bool:
    return all(predicate_holds(p, payload) for p in rule.predicates)


def predicate_holds(predicate: Predicate, payload: Mapping[str, Any]) -> bool:
    if predicate.is_wildcard:
        return True
    actual = lookup(payload, predicate.path)
    if actual is _MISSING:
        return predicate.value is None
    if predicate.mode is MatchMode.EXACT:
        return exact_equal(predicate.value, actual)
    if predicate.mode is MatchMode.PARTIAL:
        return partial_equal(predicate.value, actual)
    if predicate.mode is MatchMode.REGEX:
        if isinstance(actual, (dict, list)):
            return False
        return predicate.pattern.search(_scalar_text(actual)) is not None
    return False


def lookup(payload: Any, path: tuple[str, ...]) -> Any:
    current = payload
    for segment in path:
        if isinstance(current, Mapping):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            idx = int(segment)
            if idx >= len(current):
                return _MISSING
            current = current[idx]
        else:
            return _MISSING
    return current


def exact_equal(expected: Any, actual: Any) -> bool:
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping) or set(expected) != set(actual):
            return False
        return all(exact_equal(v, actual[k]) for k, v in expected.items())
    if isinstance(expected, list):
        if not isinstance(actual, list) or len(expected) != len(actual):
            return False
        return all(exact_equal(e, a) for e, a in zip(expected, actual))
    return _scalar_equal(expected, actual)


def partial_equal(expected: Any, actual: Any) -> bool:
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return False
        return all(k in actual and partial_equal(v, actual[k]) for k, v in expected.items())
    if isinstance(expected, list):
        if not isinstance(actual, list) or len(expected) > len(actual):
            return False
        return all(partial_equal(e, a) for e, a in zip(expected, actual))
    return _scalar_equal(expected, actual)


def _scalar_equal(expected: Any, actual: Any) -> bool:
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected == actual
    if isinstance(expected, (int, float)):
        number = _as_number(actual)
        return number is not None and number == expected
    if isinstance(expected, str) and isinstance(actual, (int, float)):
        # rule written with a quoted 64-bit value, payload rendered as a number
        number = _as_number(expected)
        return number is not None and number == actual
    if isinstance(expected, (Mapping, list)) or isinstance(actual, (Mapping, list)):
        return False
    return expected == actual


def _as_number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                return None
    return None


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
