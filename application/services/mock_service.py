"""
Mock 应用服务：编排 方法解析 -> 规则匹配 -> 响应合成，并负责规则热重载与调用统计。
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Union

from core.logging_config import get_logger
from application.services.synthesizer import ResponseEvent, Sleep, synthesize
from application.dto import MethodSummaryDTO, RuleSetSummaryDTO, RuleSummaryDTO, ServiceSummaryDTO
from domain.rules.entity import ErrorAction, ResponseAction, Rule, StreamAction
from domain.rules.matcher import NO_MATCH, NoMatch, match
from domain.rules.store import RuleStore, RuleStoreHolder
from domain.schema.entity import MethodDescriptor
from domain.schema.registry import Registry
from shared.codes import RpcStatus


logger = get_logger(__name__)


@dataclass
class MockMetrics:
    """调用计数；只在事件循环线程中修改"""

    total_calls: int = 0
    active_calls: int = 0
    matched_calls: int = 0
    unmatched_calls: int = 0
    reloads: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        uptime = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        decided = self.matched_calls + self.unmatched_calls
        return {
            "total_calls": self.total_calls,
            "active_calls": self.active_calls,
            "matched_calls": self.matched_calls,
            "unmatched_calls": self.unmatched_calls,
            "match_rate": round(self.matched_calls / decided * 100, 2) if decided else 0.0,
            "reloads": self.reloads,
            "uptime_seconds": round(uptime, 2),
        }


class MockApplicationService:
    def __init__(
        self,
        registry: Registry,
        rules: RuleStoreHolder,
        *,
        no_match_status: RpcStatus = RpcStatus.UNIMPLEMENTED,
        sleep: Sleep = asyncio.sleep,
        rule_source: Optional[Callable[[Registry], RuleStore]] = None,
    ) -> None:
        if no_match_status is RpcStatus.OK:
            raise ValueError("no_match_status must not be OK")
        self.registry = registry
        self.rules = rules
        self.no_match_status = no_match_status
        self.metrics = MockMetrics()
        self._sleep = sleep
        self._rule_source = rule_source

    def snapshot(self) -> RuleStore:
        return self.rules.current

    @asynccontextmanager
    async def call(self, method: MethodDescriptor) -> AsyncIterator[RuleStore]:
        """Scope of one inbound call; yields the rule snapshot it must use."""
        self.metrics.total_calls += 1
        self.metrics.active_calls += 1
        try:
            yield self.rules.current
        finally:
            self.metrics.active_calls -= 1

    def select(
        self,
        method: MethodDescriptor,
        payload: Mapping[str, Any],
        store: RuleStore,
    ) -> Union[Rule, NoMatch]:
        return self.record_decision(method, match(store, method.path, payload))

    def record_decision(self, method: MethodDescriptor, rule: Union[Rule, NoMatch]) -> Union[Rule, NoMatch]:
        """Count the rule that decides a reply; call once per reply."""
        if rule is NO_MATCH:
            self.metrics.unmatched_calls += 1
            logger.info("rule_no_match", method=method.path)
        else:
            self.metrics.matched_calls += 1
            logger.debug("rule_matched", method=method.path, rule=rule.label())
        return rule

    async def events(self, method: MethodDescriptor, rule: Union[Rule, NoMatch]) -> AsyncIterator[ResponseEvent]:
        if rule is NO_MATCH:
            yield ResponseEvent.status(self.no_match_status, f"No rule matches request for {method.path}")
            return
        async for event in synthesize(method, rule, sleep=self._sleep):
            yield event

    def respond(
        self,
        method: MethodDescriptor,
        payload: Mapping[str, Any],
        store: RuleStore,
    ) -> AsyncIterator[ResponseEvent]:
        return self.events(method, self.select(method, payload, store))

    def load_rules(self) -> RuleStore:
        """Re-read the configured rule source. Blocking; safe to run off the event loop."""
        if self._rule_source is None:
            raise RuntimeError("No rule source configured for reload")
        return self._rule_source(self.registry)

    def reload(self, store: Optional[RuleStore] = None) -> RuleStore:
        """Swap in a new rule snapshot; in-flight calls keep the old one.

        Without an explicit store the rule source is re-read. Load errors
        propagate and leave the active snapshot untouched.
        """
        if store is None:
            store = self.load_rules()
        installed = self.rules.swap(store)
        self.metrics.reloads += 1
        logger.info("rules_reloaded", version=installed.version, rules=len(installed))
        return installed

    # -- inspection (admin API) -----------------------------------------

    def describe_services(self) -> list[ServiceSummaryDTO]:
        store = self.rules.current
        return [
            ServiceSummaryDTO(
                name=svc.full_name,
                source=svc.source,
                methods=[
                    MethodSummaryDTO(
                        name=m.name,
                        path=m.path,
                        mode=m.mode.value,
                        request_type=m.request_type,
                        response_type=m.response_type,
                        rules=len(store.for_method(m.path)),
                        has_fallback=store.for_method(m.path).fallback is not None,
                    )
                    for m in svc.methods
                ],
            )
            for svc in self.registry
        ]

    def describe_rules(self) -> RuleSetSummaryDTO:
        store = self.rules.current
        rules = sorted(
            (
                rule
                for entry in store.methods.values()
                for rule in (*entry.rules, *((entry.fallback,) if entry.fallback else ()))
            ),
            key=lambda r: r.index,
        )
        return RuleSetSummaryDTO(
            version=store.version,
            total=len(rules),
            rules=[
                RuleSummaryDTO(
                    index=r.index,
                    method=r.method,
                    description=r.description,
                    predicates=len(r.predicates),
                    action=_ACTION_NAMES.get(type(r.action), type(r.action).__name__),
                    fallback=r.is_fallback,
                )
                for r in rules
            ],
        )


_ACTION_NAMES = {ResponseAction: "response", ErrorAction: "error", StreamAction: "stream"}
