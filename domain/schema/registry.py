"""Service registry: (service, method) -> MethodDescriptor.

Populated through a `RegistryBuilder` while schemas load, then frozen into
an immutable `Registry` that is shared by every call.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from domain.common.exceptions import (
    AmbiguousMethodError,
    DuplicateServiceError,
    UnknownMethodError,
)
from domain.schema.entity import MethodDescriptor, ServiceDescriptor


class Registry:
    def __init__(self, services: Iterable[ServiceDescriptor] = ()) -> None:
        by_name: dict[str, ServiceDescriptor] = {}
        by_path: dict[str, MethodDescriptor] = {}
        for svc in services:
            if svc.full_name in by_name:
                raise DuplicateServiceError(svc.full_name)
            by_name[svc.full_name] = svc
            for m in svc.methods:
                by_path[m.path] = m
        self._services: Mapping[str, ServiceDescriptor] = MappingProxyType(by_name)
        self._methods: Mapping[str, MethodDescriptor] = MappingProxyType(by_path)

    @property
    def services(self) -> Mapping[str, ServiceDescriptor]:
        return self._services

    @property
    def methods(self) -> Mapping[str, MethodDescriptor]:
        return self._methods

    def __iter__(self) -> Iterator[ServiceDescriptor]:
        return iter(self._services.values())

    def __len__(self) -> int:
        return len(self._services)

    def get(self, path: str) -> MethodDescriptor | None:
        return self._methods.get(path)

    def resolve(self, reference: str) -> MethodDescriptor:
        """Resolve a method reference as written in a rule document.

        Accepted forms: ``/pkg.Service/Method``, ``pkg.Service/Method``,
        ``pkg.Service.Method`` and a bare ``Method`` when only one service
        declares it.
        """
        ref = reference.strip()
        if "/" in ref:
            service, _, method = ref.strip("/").rpartition("/")
            found = self._methods.get(f"/{service}/{method}")
            if found is None:
                raise UnknownMethodError(reference)
            return found
        if "." in ref:
            service, _, method = ref.rpartition(".")
            found = self._methods.get(f"/{service}/{method}")
            if found is not None:
                return found
        candidates = [m for m in self._methods.values() if m.name == ref]
        if not candidates:
            raise UnknownMethodError(reference)
        if len(candidates) > 1:
            raise AmbiguousMethodError(reference, sorted(m.path for m in candidates))
        return candidates[0]


class RegistryBuilder:
    """Mutable accumulator used only during startup."""

    def __init__(self) -> None:
        self._services: dict[str, ServiceDescriptor] = {}

    def add(self, services: Iterable[ServiceDescriptor]) -> None:
        # Check the whole batch first so a failed load registers nothing
        batch = list(services)
        seen: set[str] = set()
        for svc in batch:
            if svc.full_name in self._services or svc.full_name in seen:
                raise DuplicateServiceError(svc.full_name)
            seen.add(svc.full_name)
        for svc in batch:
            self._services[svc.full_name] = svc

    def __contains__(self, full_name: str) -> bool:
        return full_name in self._services

    def build(self) -> Registry:
        return Registry(self._services.values())
