"""Schema loader: protocol-buffer service definitions -> ServiceDescriptors.

Loading runs in two phases so a failed load never leaves a half-populated
registry behind:

1. parse every source into FileDescriptorProtos (``.proto`` files through
   ``grpc_tools.protoc`` with ``--include_imports``, compiled descriptor
   sets read as-is);
2. add the files to the descriptor pool in dependency order and resolve
   every method's request/response type, failing on the first unresolved
   import or symbol.
"""
from __future__ import annotations

import tempfile
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.message import DecodeError
from grpc_tools import protoc

# Registers the well-known types in the default pool
from google.protobuf import (  # noqa: F401
    any_pb2,
    duration_pb2,
    empty_pb2,
    field_mask_pb2,
    struct_pb2,
    timestamp_pb2,
    wrappers_pb2,
)

from core.logging_config import get_logger
from domain.common.exceptions import SchemaError
from domain.schema.entity import MethodDescriptor, ServiceDescriptor, StreamingMode
from domain.schema.registry import RegistryBuilder


logger = get_logger(__name__)

PROTOSET_SUFFIXES = {".protoset", ".pb", ".desc", ".binpb"}


@dataclass(frozen=True)
class SchemaSource:
    """One schema file, optionally narrowed to a package and/or service."""

    path: str
    package: Optional[str] = None
    service: Optional[str] = None

    def selects(self, package: str, service: str) -> bool:
        if self.package and package != self.package:
            return False
        if self.service:
            full_name = f"{package}.{service}" if package else service
            return self.service in (service, full_name)
        return True


@dataclass
class _Parsed:
    source: SchemaSource
    files: list[descriptor_pb2.FileDescriptorProto]
    targets: set[str]


class SchemaLoader:
    def __init__(
        self,
        include_dirs: Sequence[Union[str, Path]] = (),
        pool: Optional[descriptor_pool.DescriptorPool] = None,
    ) -> None:
        self.include_dirs = [Path(d) for d in include_dirs]
        self.pool = pool or descriptor_pool.DescriptorPool()
        self._files: dict[str, descriptor_pb2.FileDescriptorProto] = {}

    def load(
        self,
        sources: Iterable[Union[SchemaSource, str]],
        registry: Optional[RegistryBuilder] = None,
    ) -> list[ServiceDescriptor]:
        """Load sources, register their services and return them."""
        batch = [s if isinstance(s, SchemaSource) else SchemaSource(str(s)) for s in sources]

        # Phase 1: parse
        parsed = [self._parse(src) for src in batch]

        # Phase 2: resolve
        pending: dict[str, descriptor_pb2.FileDescriptorProto] = {}
        for item in parsed:
            for f in item.files:
                known = pending.get(f.name) or self._files.get(f.name)
                if known is not None and known != f:
                    raise SchemaError(
                        f"File {f.name} loaded twice with different content",
                        source=item.source.path,
                    )
                pending[f.name] = f
        self._add_files(pending)

        services: list[ServiceDescriptor] = []
        for item in parsed:
            found = [
                self._describe(f, svc, item.source)
                for f in item.files
                if f.name in item.targets
                for svc in f.service
                if item.source.selects(f.package, svc.name)
            ]
            if not found and (item.source.package or item.source.service):
                raise SchemaError(
                    f"No service matching package={item.source.package!r} "
                    f"service={item.source.service!r} in {item.source.path}",
                    source=item.source.path,
                )
            services.extend(found)

        if registry is not None:
            registry.add(services)
        for svc in services:
            logger.info("schema_service_loaded", service=svc.full_name, methods=len(svc.methods), source=svc.source)
        return services

    # -- phase 1 ---------------------------------------------------------

    def _parse(self, source: SchemaSource) -> _Parsed:
        if Path(source.path).suffix.lower() in PROTOSET_SUFFIXES:
            return self._read_descriptor_set(source)
        return self._compile(source)

    def _read_descriptor_set(self, source: SchemaSource) -> _Parsed:
        path = Path(source.path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise SchemaError(f"Cannot read descriptor set {path}: {exc}", source=source.path) from exc
        try:
            fds = descriptor_pb2.FileDescriptorSet.FromString(data)
        except DecodeError as exc:
            raise SchemaError(f"Malformed descriptor set {path}: {exc}", source=source.path) from exc
        files = list(fds.file)
        return _Parsed(source, files, {f.name for f in files})

    def _compile(self, source: SchemaSource) -> _Parsed:
        root, relative = self._locate(source.path)
        target = relative.as_posix()
        proto_paths = [root] + [d for d in self.include_dirs if d.resolve() != root]
        with tempfile.TemporaryDirectory(prefix="grpc-mockd-") as tmp:
            out = Path(tmp) / "schema.protoset"
            args = [
                "grpc_tools.protoc",
                *(f"--proto_path={p}" for p in proto_paths),
                f"--proto_path={_well_known_include()}",
                "--include_imports",
                f"--descriptor_set_out={out}",
                target,
            ]
            code = protoc.main(args)
            if code != 0 or not out.exists():
                raise SchemaError(
                    f"protoc failed to parse {source.path} (exit code {code})",
                    source=source.path,
                )
            fds = descriptor_pb2.FileDescriptorSet.FromString(out.read_bytes())
        files = list(fds.file)
        if not any(f.name == target for f in files):
            target = files[-1].name
        return _Parsed(source, files, {target})

    def _locate(self, path: str) -> tuple[Path, Path]:
        """Return (proto root, path relative to it) for a .proto source."""
        p = Path(path)
        if p.exists():
            p = p.resolve()
            for inc in self.include_dirs:
                try:
                    return inc.resolve(), p.relative_to(inc.resolve())
                except ValueError:
                    continue
            return p.parent, Path(p.name)
        if not p.is_absolute():
            for inc in self.include_dirs:
                if (inc / p).exists():
                    return inc.resolve(), p
        raise SchemaError(f"Schema source not found: {path}", source=path)

    # -- phase 2 ---------------------------------------------------------

    def _add_files(self, files: dict[str, descriptor_pb2.FileDescriptorProto]) -> None:
        visiting: set[str] = set()

        def visit(name: str, importer: Optional[str]) -> None:
            if name in self._files:
                return
            proto = files.get(name) or _well_known_file(name)
            if proto is None:
                raise SchemaError(f"Unresolved import {name} (imported by {importer})", source=importer)
            if name in visiting:
                raise SchemaError(f"Import cycle through {name}", source=importer)
            visiting.add(name)
            for dep in proto.dependency:
                visit(dep, name)
            visiting.discard(name)
            try:
                self.pool.AddSerializedFile(proto.SerializeToString())
            except (TypeError, KeyError, ValueError) as exc:
                raise SchemaError(f"Cannot resolve {name}: {exc}", source=name) from exc
            self._files[name] = proto

        for name in files:
            visit(name, None)

    def _describe(
        self,
        file: descriptor_pb2.FileDescriptorProto,
        service: descriptor_pb2.ServiceDescriptorProto,
        source: SchemaSource,
    ) -> ServiceDescriptor:
        full_name = f"{file.package}.{service.name}" if file.package else service.name
        methods = []
        for m in service.method:
            request_type = self._resolve_type(m.input_type, file.name)
            response_type = self._resolve_type(m.output_type, file.name)
            methods.append(
                MethodDescriptor(
                    name=m.name,
                    service=full_name,
                    request_type=request_type,
                    response_type=response_type,
                    mode=StreamingMode.from_flags(m.client_streaming, m.server_streaming),
                )
            )
        return ServiceDescriptor(full_name=full_name, methods=tuple(methods), source=source.path)

    def _resolve_type(self, type_name: str, file_name: str) -> str:
        name = type_name.lstrip(".")
        try:
            self.pool.FindMessageTypeByName(name)
        except KeyError as exc:
            raise SchemaError(f"Unresolved message type {type_name} in {file_name}", source=file_name) from exc
        return name


def _well_known_include() -> str:
    return str(resources.files("grpc_tools") / "_proto")


def _well_known_file(name: str) -> Optional[descriptor_pb2.FileDescriptorProto]:
    if not name.startswith("google/protobuf/"):
        return None
    try:
        fd = descriptor_pool.Default().FindFileByName(name)
    except KeyError:
        return None
    proto = descriptor_pb2.FileDescriptorProto()
    fd.CopyToProto(proto)
    return proto
