import pytest

from domain.schema.registry import RegistryBuilder
from infrastructure.protos import CodecOptions, MessageCodec, SchemaLoader


@pytest.fixture
def pool(echo_proto):
    loader = SchemaLoader()
    loader.load([echo_proto], RegistryBuilder())
    return loader.pool


def test_defaults_and_enum_names(pool):
    codec = MessageCodec(pool)
    request = codec.from_dict("demo.SayRequest", {"text": "hi", "tone": "LOUD", "big": "12"})

    rendered = codec.to_dict(codec.deserializer("demo.SayRequest")(MessageCodec.serializer(request)))

    assert rendered["text"] == "hi"
    assert rendered["tone"] == "LOUD"
    assert rendered["n"] == 0
    assert rendered["tags"] == []
    assert rendered["big"] == "12"


def test_number_enums_without_defaults_and_json_names(pool):
    codec = MessageCodec(pool, CodecOptions(enum_mode="number", include_defaults=False, keep_case=False))
    request = codec.from_dict("demo.SayRequest", {"tone": "QUIET"})
    assert codec.to_dict(request) == {"tone": 2}


def test_merge_follows_protobuf_semantics(pool):
    codec = MessageCodec(pool)
    parts = [
        codec.from_dict("demo.SayRequest", {"text": "a", "tags": ["x"]}),
        codec.from_dict("demo.SayRequest", {"n": 2, "tags": ["y"]}),
    ]
    merged = codec.to_dict(codec.merge("demo.SayRequest", parts))
    assert merged["text"] == "a" and merged["n"] == 2
    assert merged["tags"] == ["x", "y"]


@pytest.mark.parametrize(
    "path,expected",
    [
        (("text",), True),
        (("inner", "id"), True),
        (("inner", "values", "0"), True),
        (("inner", "values", "x"), False),
        (("labels", "anything"), True),
        (("missing",), False),
        (("text", "deeper"), False),
        (("tags", "1"), True),
        (("tags",), True),
        (("inner", "id", "0"), False),
    ],
)
def test_has_field_path(pool, path, expected):
    assert MessageCodec(pool).has_field_path("demo.SayRequest", path) is expected
