"""Rule document loader (JSON -> validated RuleStore snapshot)."""
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Optional, Union

from google.protobuf import json_format
from pydantic import ValidationError

from core.logging_config import get_logger
from application.dto import RuleDocumentDTO, RuleEntryDTO
from domain.common.exceptions import InvalidRuleError, RuleDocumentError
from domain.rules.entity import ErrorAction, ResponseAction, Rule, StreamAction
from domain.rules.store import RuleStore
from domain.schema.entity import MethodDescriptor
from domain.schema.registry import Registry
from infrastructure.protos.codec import MessageCodec


logger = get_logger(__name__)


def parse_document(data: Any) -> RuleDocumentDTO:
    """Accept either a bare list of rule entries or ``{"rules": [...]}``."""
    if isinstance(data, list):
        data = {"rules": data}
    try:
        return RuleDocumentDTO.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        raise RuleDocumentError(
            f"Invalid rule document at {where or '<root>'}: {first.get('msg', exc)}",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


class RuleLoader:
    """Reads the rule document and builds a snapshot against a registry.

    When a codec is given, payloads and predicate field paths are checked
    against the method's message types at load time.
    """

    def __init__(self, path: Optional[Union[str, Path]], codec: Optional[MessageCodec] = None) -> None:
        self.path = Path(path) if path else None
        self.codec = codec

    def __call__(self, registry: Registry) -> RuleStore:
        return self.load(registry)

    def load(self, registry: Registry) -> RuleStore:
        if self.path is None:
            logger.warning("rules_not_configured", message="No rule document configured, every call is unmatched")
            return RuleStore.empty()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise RuleDocumentError(f"Cannot read rule document {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise RuleDocumentError(f"Rule document {self.path} is not valid JSON: {exc}") from exc
        store = self.build(registry, parse_document(raw))
        logger.info("rules_loaded", path=str(self.path), rules=len(store), methods=len(store.methods))
        return store

    def build(self, registry: Registry, document: RuleDocumentDTO) -> RuleStore:
        rules = [self._to_rule(registry, i, entry) for i, entry in enumerate(document.rules)]
        return RuleStore.build(registry, rules)

    def _to_rule(self, registry: Registry, index: int, entry: RuleEntryDTO) -> Rule:
        method = registry.resolve(entry.method)
        try:
            rule = entry.to_entity(index, method.path)
        except (ValueError, re.error) as exc:
            raise InvalidRuleError(str(exc), method=method.path, index=index) from exc
        if self.codec is not None:
            self._check_against_schema(method, rule)
        return rule

    def _check_against_schema(self, method: MethodDescriptor, rule: Rule) -> None:
        for p in rule.predicates:
            if p.field and not self.codec.has_field_path(method.request_type, p.path):
                raise InvalidRuleError(
                    f"Field {p.field} does not exist in {method.request_type}",
                    method=method.path,
                    index=rule.index,
                )
        action = rule.action
        payloads: list[dict] = []
        if isinstance(action, ResponseAction):
            payloads.append(action.payload)
        elif isinstance(action, StreamAction):
            payloads.extend(item.payload for item in action.items)
        elif isinstance(action, ErrorAction):
            return
        for payload in payloads:
            try:
                self.codec.from_dict(method.response_type, payload)
            except json_format.ParseError as exc:
                raise InvalidRuleError(
                    f"Payload does not fit {method.response_type}: {exc}",
                    method=method.path,
                    index=rule.index,
                ) from exc
