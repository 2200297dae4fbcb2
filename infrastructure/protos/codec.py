"""Dynamic message codec.

Converts between wire bytes, dynamic protobuf messages built from the
loaded descriptor pool, and the JSON-mapping dicts rules are written in.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Literal, Mapping

from google.protobuf import descriptor_pool, json_format, message_factory
from google.protobuf.descriptor import Descriptor, FieldDescriptor
from google.protobuf.message import Message


@dataclass(frozen=True)
class CodecOptions:
    """How request messages are rendered for matching.

    enum_mode: enum values as symbolic names ("string") or numbers ("number").
    include_defaults: render fields that hold their default value.
    keep_case: keep proto field names instead of lowerCamelCase JSON names.
    """

    enum_mode: Literal["string", "number"] = "string"
    include_defaults: bool = True
    keep_case: bool = True


class MessageCodec:
    def __init__(self, pool: descriptor_pool.DescriptorPool, options: CodecOptions | None = None) -> None:
        self.pool = pool
        self.options = options or CodecOptions()
        self._classes: dict[str, type[Message]] = {}

    def descriptor(self, type_name: str) -> Descriptor:
        return self.pool.FindMessageTypeByName(type_name)

    def message_class(self, type_name: str) -> type[Message]:
        cls = self._classes.get(type_name)
        if cls is None:
            cls = message_factory.GetMessageClass(self.descriptor(type_name))
            self._classes[type_name] = cls
        return cls

    def deserializer(self, type_name: str) -> Callable[[bytes], Message]:
        return self.message_class(type_name).FromString

    @staticmethod
    def serializer(message: Message) -> bytes:
        return message.SerializeToString()

    def to_dict(self, message: Message) -> dict[str, Any]:
        return json_format.MessageToDict(
            message,
            preserving_proto_field_name=self.options.keep_case,
            use_integers_for_enums=self.options.enum_mode == "number",
            always_print_fields_with_no_presence=self.options.include_defaults,
        )

    def from_dict(self, type_name: str, payload: Mapping[str, Any]) -> Message:
        """Build a message from a payload; raises json_format.ParseError."""
        return json_format.ParseDict(dict(payload), self.message_class(type_name)())

    def merge(self, type_name: str, messages: Iterable[Message]) -> Message:
        merged = self.message_class(type_name)()
        for m in messages:
            merged.MergeFrom(m)
        return merged

    def has_field_path(self, type_name: str, path: tuple[str, ...]) -> bool:
        """Whether a dotted predicate path can exist in messages of `type_name`.

        Numeric segments index repeated fields; paths into map fields or
        well-known JSON types (Struct, Any, ...) are not checked further.
        """
        desc = self.descriptor(type_name)
        repeated = False
        for segment in path:
            if repeated:
                repeated = False
                if segment.isdigit():
                    continue
                return False
            if desc is None:
                # scalars have no sub-fields
                return False
            field = _find_field(desc, segment)
            if field is None:
                return False
            if field.message_type is not None and field.message_type.GetOptions().map_entry:
                return True
            repeated = field.is_repeated
            desc = field.message_type
            if desc is not None and desc.full_name.startswith("google.protobuf."):
                return True
        return True


def _find_field(desc: Descriptor, name: str) -> FieldDescriptor | None:
    field = desc.fields_by_name.get(name)
    if field is not None:
        return field
    for f in desc.fields:
        if f.json_name == name:
            return f
    return None
