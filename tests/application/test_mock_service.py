import pytest

from application.services.mock_service import MockApplicationService
from domain.common.exceptions import RuleDocumentError
from domain.rules.entity import ResponseAction
from domain.rules.matcher import NO_MATCH
from domain.rules.store import RuleStore, RuleStoreHolder
from shared.codes import RpcStatus
from tests.factories import SAY, make_rule


async def _no_sleep(_):
    return None


def _service(registry, *rules, **kwargs):
    holder = RuleStoreHolder(RuleStore.build(registry, rules))
    return MockApplicationService(registry, holder, sleep=_no_sleep, **kwargs)


async def test_respond_matched_and_unmatched(echo_registry):
    service = _service(echo_registry, make_rule(SAY, ("text", "ping"), action=ResponseAction({"text": "pong"})))

    async with service.call(SAY) as store:
        events = [e async for e in service.respond(SAY, {"text": "ping"}, store)]
        missed = [e async for e in service.respond(SAY, {"text": "other"}, store)]

    assert events[-1].payload == {"text": "pong"}
    assert missed[-1].code is RpcStatus.UNIMPLEMENTED
    assert "/demo.Echo/Say" in missed[-1].message
    metrics = service.metrics.to_dict()
    assert metrics["total_calls"] == 1
    assert metrics["matched_calls"] == 1 and metrics["unmatched_calls"] == 1
    assert metrics["active_calls"] == 0


async def test_no_match_status_is_configurable(echo_registry):
    service = _service(echo_registry, no_match_status=RpcStatus.NOT_FOUND)
    events = [e async for e in service.events(SAY, NO_MATCH)]
    assert events[0].code is RpcStatus.NOT_FOUND


async def test_reload_keeps_in_flight_snapshot(echo_registry):
    service = _service(echo_registry, make_rule(SAY, action=ResponseAction({"text": "old"})))
    replacement = RuleStore.build(echo_registry, [make_rule(SAY, action=ResponseAction({"text": "new"}))])

    async with service.call(SAY) as store:
        service.reload(replacement)
        rule = service.select(SAY, {}, store)
        assert rule.action.payload == {"text": "old"}

    assert service.select(SAY, {}, service.snapshot()).action.payload == {"text": "new"}
    assert service.snapshot().version == 1
    assert service.metrics.reloads == 1
    assert replacement.version == 0


async def test_active_calls_released_on_error(echo_registry):
    service = _service(echo_registry)
    with pytest.raises(RuntimeError):
        async with service.call(SAY):
            assert service.metrics.active_calls == 1
            raise RuntimeError("boom")
    assert service.metrics.active_calls == 0


def test_reload_from_source_failure_keeps_current(echo_registry):
    def broken(_registry):
        raise RuleDocumentError("bad document")

    service = _service(echo_registry, make_rule(SAY), rule_source=broken)
    before = service.snapshot()
    with pytest.raises(RuleDocumentError):
        service.reload()
    assert service.snapshot() is before
    assert service.metrics.reloads == 0


def test_describe_rules_and_services(echo_registry):
    service = _service(
        echo_registry,
        make_rule(SAY, ("text", "a"), index=0, description="a"),
        make_rule(SAY, index=1),
    )
    summary = service.describe_rules()
    assert summary.total == 2
    assert [r.fallback for r in summary.rules] == [False, True]
    assert summary.rules[0].action == "response"

    say = next(m for m in service.describe_services()[0].methods if m.name == "Say")
    assert say.rules == 2 and say.has_fallback
    assert say.mode == "unary_unary"


def test_ok_is_not_a_no_match_status(echo_registry):
    with pytest.raises(ValueError):
        _service(echo_registry, no_match_status=RpcStatus.OK)
