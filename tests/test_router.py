"""Tests for Router dispatch."""

import pytest

from agentflow.workflow import ExecutionContext, NodeConfigurationError, Router, RoutingError, Step
from conftest import TransformAgent, suffix


def has_digit(ctx: ExecutionContext) -> str:
    return "calc" if any(c.isdigit() for c in ctx.output) else "chat"


@pytest.fixture
def routes():
    calc = TransformAgent(suffix(" -> calculator"))
    chat = TransformAgent(suffix(" -> chat"))
    return calc, chat, {"calc": Step(agent=calc, id="calc"), "chat": Step(agent=chat, id="chat")}


class TestRouterConstruction:
    def test_router_function_required(self, routes):
        *_, route_map = routes
        with pytest.raises(NodeConfigurationError):
            Router(router=None, routes=route_map)

    def test_routes_required(self):
        with pytest.raises(NodeConfigurationError):
            Router(router=has_digit, routes={})


class TestRouterExecution:
    @pytest.mark.asyncio
    async def test_dispatches_to_selected_route(self, routes):
        calc, chat, route_map = routes
        router = Router(has_digit, route_map, id="dispatch")
        ctx = ExecutionContext(input="2 + 2", output="2 + 2")

        result = await router.execute(ctx)

        assert result == "2 + 2 -> calculator"
        assert ctx.get("router_dispatch_selected") == "calc"
        assert calc.call_count == 1
        assert chat.call_count == 0

    @pytest.mark.asyncio
    async def test_other_route(self, routes):
        calc, chat, route_map = routes
        router = Router(has_digit, route_map, id="dispatch")
        ctx = ExecutionContext(input="hello", output="hello")

        assert await router.execute(ctx) == "hello -> chat"
        assert ctx.get("router_dispatch_selected") == "chat"
        assert calc.call_count == 0

    @pytest.mark.asyncio
    async def test_unknown_label_raises_routing_error(self, routes):
        calc, chat, route_map = routes
        router = Router(lambda ctx: "weather", route_map, id="dispatch")
        ctx = ExecutionContext(input="x", output="x")

        with pytest.raises(RoutingError) as exc_info:
            await router.execute(ctx)

        error = exc_info.value
        assert error.node_id == "dispatch"
        assert error.label == "weather"
        assert error.available == ["calc", "chat"]
        assert "weather" in str(error)
        assert ctx.get("router_dispatch_selected") == "weather"
        assert calc.call_count == 0
        assert chat.call_count == 0

    @pytest.mark.asyncio
    async def test_none_route_is_noop(self, routes):
        *_, route_map = routes
        router = Router(lambda ctx: "skip", {**route_map, "skip": None}, id="dispatch")
        ctx = ExecutionContext(input="x", output="kept")

        assert await router.execute(ctx) == "kept"
        assert ctx.get("router_dispatch_selected") == "skip"
