"""Runtime protobuf schema loading and dynamic message conversion."""
from .codec import CodecOptions, MessageCodec
from .loader import SchemaLoader, SchemaSource

__all__ = [
    "CodecOptions",
    "MessageCodec",
    "SchemaLoader",
    "SchemaSource",
]
