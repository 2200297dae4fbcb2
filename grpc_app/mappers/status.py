from __future__ import annotations

import grpc

from shared.codes import RpcStatus


def to_grpc_status(code: RpcStatus) -> grpc.StatusCode:
    return grpc.StatusCode[RpcStatus(code).name]
