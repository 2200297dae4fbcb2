import asyncio

import grpc
import pytest
from grpc_health.v1 import health_pb2, health_pb2_grpc
from grpc_reflection.v1alpha import reflection_pb2, reflection_pb2_grpc

from core.config import GrpcSettings, MockSettings
from grpc_app.bootstrap import build_runtime
from grpc_app.server import create_server


pytestmark = pytest.mark.asyncio


ECHO_RULES = [
    {
        "method": "Say",
        "predicates": [{"field": "text", "value": "ping"}],
        "action": {"type": "response", "payload": {"text": "pong"}},
    },
    {"method": "Say", "action": {"type": "response", "payload": {"text": "?"}}},
]


@pytest.fixture
async def mock_server(echo_proto, write_rules):
    """Start the mock server for a rule document; returns (target, runtime)."""
    servers = []

    async def start(rules, **mock_options):
        mock = MockSettings(
            protos=[{"path": str(echo_proto)}],
            rules_path=str(write_rules(rules)),
            **mock_options,
        )
        runtime = build_runtime(mock)
        server, port = await create_server(runtime.servicer, GrpcSettings(), address="127.0.0.1:0")
        await server.start()
        servers.append(server)
        return f"127.0.0.1:{port}", runtime

    try:
        yield start
    finally:
        for server in servers:
            await server.stop(grace=None)


class EchoClient:
    """Dynamic stubs built from the server's own message classes."""

    def __init__(self, channel: grpc.aio.Channel, runtime):
        self.SayRequest = runtime.codec.message_class("demo.SayRequest")
        reply = runtime.codec.message_class("demo.Reply")
        kwargs = dict(request_serializer=self.SayRequest.SerializeToString, response_deserializer=reply.FromString)
        self.Say = channel.unary_unary("/demo.Echo/Say", **kwargs)
        self.Count = channel.unary_stream("/demo.Echo/Count", **kwargs)
        self.Collect = channel.stream_unary("/demo.Echo/Collect", **kwargs)
        self.Chat = channel.stream_stream("/demo.Echo/Chat", **kwargs)


async def test_unary_rule_and_fallback(mock_server):
    target, runtime = await mock_server(ECHO_RULES)
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)

        pong = await client.Say(client.SayRequest(text="ping"))
        other = await client.Say(client.SayRequest(text="hello"))

    assert pong.text == "pong"
    assert other.text == "?"


async def test_unmatched_call_is_unimplemented(mock_server):
    target, runtime = await mock_server(ECHO_RULES[:1])
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        with pytest.raises(grpc.aio.AioRpcError) as ei:
            await client.Say(client.SayRequest(text="hello"))

    assert ei.value.code() == grpc.StatusCode.UNIMPLEMENTED
    assert runtime.service.metrics.unmatched_calls == 1


async def test_no_match_status_from_settings(mock_server):
    target, runtime = await mock_server([], no_match_status="NOT_FOUND")
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        with pytest.raises(grpc.aio.AioRpcError) as ei:
            await client.Say(client.SayRequest())
    assert ei.value.code() == grpc.StatusCode.NOT_FOUND


async def test_error_action(mock_server):
    target, runtime = await mock_server([
        {"method": "Say", "action": {"type": "error", "code": "PERMISSION_DENIED", "message": "no entry"}},
    ])
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        with pytest.raises(grpc.aio.AioRpcError) as ei:
            await client.Say(client.SayRequest())

    assert ei.value.code() == grpc.StatusCode.PERMISSION_DENIED
    assert ei.value.details() == "no entry"


async def test_server_stream_items_then_status(mock_server):
    target, runtime = await mock_server([
        {
            "method": "Count",
            "predicates": [{"field": "n", "value": 3}],
            "action": {
                "type": "stream",
                "items": [{"payload": {"n": 1}}, {"payload": {"n": 2}, "delay_ms": 5}, {"payload": {"n": 3}}],
                "status": {"code": "RESOURCE_EXHAUSTED", "message": "that's all"},
            },
        },
    ])
    received = []
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        with pytest.raises(grpc.aio.AioRpcError) as ei:
            async for reply in client.Count(client.SayRequest(n=3)):
                received.append(reply.n)

    assert received == [1, 2, 3]
    assert ei.value.code() == grpc.StatusCode.RESOURCE_EXHAUSTED


async def test_server_stream_with_single_response(mock_server):
    target, runtime = await mock_server([
        {"method": "Count", "action": {"type": "response", "payload": {"text": "only"}}},
    ])
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        replies = [r.text async for r in client.Count(client.SayRequest())]
    assert replies == ["only"]


async def test_client_stream_matches_assembled_request(mock_server):
    target, runtime = await mock_server([
        {
            "method": "Collect",
            "predicates": [{"field": "text", "value": "a"}, {"field": "n", "value": 2}],
            "action": {"type": "response", "payload": {"text": "both"}},
        },
    ])
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        reply = await client.Collect(iter([client.SayRequest(text="a"), client.SayRequest(n=2)]))
    assert reply.text == "both"


async def test_bidi_stream_per_message(mock_server):
    target, runtime = await mock_server(
        [
            {
                "method": "Chat",
                "predicates": [{"field": "text", "value": "ping"}],
                "action": {"type": "response", "payload": {"text": "pong"}},
            },
            {"method": "Chat", "action": {"type": "response", "payload": {"text": "?"}}},
        ],
        stream_match="per_message",
    )
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        requests = [client.SayRequest(text=t) for t in ("ping", "x", "ping")]
        replies = [r.text async for r in client.Chat(iter(requests))]
    assert replies == ["pong", "?", "pong"]


async def test_client_stream_per_message_answers_final_message(mock_server):
    target, runtime = await mock_server(
        [
            {
                "method": "Collect",
                "predicates": [{"field": "text", "value": "ok"}],
                "action": {"type": "response", "payload": {"text": "fine"}},
            },
            {
                "method": "Collect",
                "predicates": [{"field": "text", "value": "stop"}],
                "action": {"type": "error", "code": "ABORTED", "message": "stopped"},
            },
        ],
        stream_match="per_message",
    )
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        reply = await client.Collect(iter([client.SayRequest(text="bad"), client.SayRequest(text="ok")]))
        assert reply.text == "fine"

        with pytest.raises(grpc.aio.AioRpcError) as unmatched:
            await client.Collect(iter([client.SayRequest(text="ok"), client.SayRequest(text="bad")]))
        with pytest.raises(grpc.aio.AioRpcError) as aborted:
            await client.Collect(iter([client.SayRequest(text="stop"), client.SayRequest(text="ok")]))

    assert unmatched.value.code() == grpc.StatusCode.UNIMPLEMENTED
    assert aborted.value.code() == grpc.StatusCode.ABORTED
    assert aborted.value.details() == "stopped"


async def test_client_stream_per_message_counts_one_decision(mock_server):
    target, runtime = await mock_server(
        [
            {
                "method": "Collect",
                "predicates": [{"field": "text", "value": "c"}],
                "action": {"type": "response", "payload": {"text": "done"}},
            },
        ],
        stream_match="per_message",
    )
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        reply = await client.Collect(iter([client.SayRequest(text=t) for t in ("a", "b", "c")]))

    assert reply.text == "done"
    metrics = runtime.service.metrics
    assert metrics.total_calls == 1
    assert metrics.matched_calls == 1
    assert metrics.unmatched_calls == 0


async def test_client_cancellation_stops_stream(mock_server):
    target, runtime = await mock_server([
        {
            "method": "Count",
            "action": {
                "type": "stream",
                "items": [{"payload": {"n": 1}}, {"payload": {"n": 2}, "delay_ms": 60000}],
            },
        },
    ])
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        call = client.Count(client.SayRequest())
        first = await call.read()
        assert first.n == 1
        call.cancel()

        for _ in range(200):
            if runtime.service.metrics.active_calls == 0:
                break
            await asyncio.sleep(0.01)

    assert runtime.service.metrics.active_calls == 0
    assert runtime.service.metrics.total_calls == 1


async def test_request_id_is_echoed(mock_server):
    target, runtime = await mock_server(ECHO_RULES)
    async with grpc.aio.insecure_channel(target) as channel:
        client = EchoClient(channel, runtime)
        call = client.Say(client.SayRequest(text="ping"), metadata=(("x-request-id", "req-1"),))
        await call
        trailing = await call.trailing_metadata()
    assert dict(trailing)["x-request-id"] == "req-1"


async def test_health_reports_each_service(mock_server):
    target, _ = await mock_server(ECHO_RULES)
    async with grpc.aio.insecure_channel(target) as channel:
        stub = health_pb2_grpc.HealthStub(channel)
        overall = await stub.Check(health_pb2.HealthCheckRequest(service=""))
        echo = await stub.Check(health_pb2.HealthCheckRequest(service="demo.Echo"))
    assert overall.status == health_pb2.HealthCheckResponse.SERVING
    assert echo.status == health_pb2.HealthCheckResponse.SERVING


async def test_reflection_lists_mocked_services(mock_server):
    target, _ = await mock_server(ECHO_RULES)
    async with grpc.aio.insecure_channel(target) as channel:
        stub = reflection_pb2_grpc.ServerReflectionStub(channel)
        responses = [
            r async for r in stub.ServerReflectionInfo(iter([reflection_pb2.ServerReflectionRequest(list_services="")]))
        ]
    names = {s.name for s in responses[0].list_services_response.service}
    assert "demo.Echo" in names
