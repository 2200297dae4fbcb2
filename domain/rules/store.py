"""Rule store: rules indexed by method, in document order.

A `RuleStore` is an immutable snapshot. Reloading rules builds a new
snapshot and swaps the reference held by `RuleStoreHolder`; calls keep the
snapshot they started with.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from domain.common.exceptions import DuplicateRuleError, InvalidRuleError
from domain.rules.entity import Rule, StreamAction
from domain.schema.registry import Registry


@dataclass(frozen=True)
class MethodRules:
    rules: tuple[Rule, ...] = ()
    fallback: Optional[Rule] = None

    def __len__(self) -> int:
        return len(self.rules) + (1 if self.fallback is not None else 0)


_EMPTY = MethodRules()


class RuleStore:
    def __init__(self, index: Mapping[str, MethodRules], version: int = 0) -> None:
        self._index = MappingProxyType(dict(index))
        self._version = version

    @classmethod
    def build(cls, registry: Registry, rules: Iterable[Rule], version: int = 0) -> "RuleStore":
        """Index rules by method path.

        Method references are resolved against the registry and stored as
        wire paths. At most one fallback per method.
        """
        specific: dict[str, list[Rule]] = {}
        fallbacks: dict[str, Rule] = {}
        for rule in rules:
            method = registry.get(rule.method) or registry.resolve(rule.method)
            if rule.method != method.path:
                rule = replace(rule, method=method.path)
            if isinstance(rule.action, StreamAction) and not method.mode.server_streaming:
                raise InvalidRuleError(
                    f"Stream action on {method.path} which returns a single message",
                    method=method.path,
                    index=rule.index,
                )
            if rule.is_fallback:
                if method.path in fallbacks:
                    raise DuplicateRuleError(method.path, rule.index)
                fallbacks[method.path] = rule
            else:
                specific.setdefault(method.path, []).append(rule)

        index = {
            path: MethodRules(tuple(specific.get(path, ())), fallbacks.get(path))
            for path in set(specific) | set(fallbacks)
        }
        return cls(index, version=version)

    @classmethod
    def empty(cls) -> "RuleStore":
        return cls({})

    def for_method(self, path: str) -> MethodRules:
        return self._index.get(path, _EMPTY)

    @property
    def version(self) -> int:
        return self._version

    @property
    def methods(self) -> Mapping[str, MethodRules]:
        return self._index

    def __len__(self) -> int:
        return sum(len(r) for r in self._index.values())


class RuleStoreHolder:
    """Holds the active snapshot; `swap` replaces it in one assignment."""

    def __init__(self, store: Optional[RuleStore] = None) -> None:
        self._store = store if store is not None else RuleStore.empty()
        self._lock = threading.Lock()

    @property
    def current(self) -> RuleStore:
        return self._store

    def swap(self, store: RuleStore) -> RuleStore:
        """Install a copy of `store` numbered after the current snapshot; returns the new one."""
        with self._lock:
            installed = RuleStore(store.methods, version=self._store.version + 1)
            self._store = installed
        return installed
