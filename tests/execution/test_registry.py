"""Tests for HandlerRegistry."""

import pytest

from jobspine.core.errors import HandlerNotFoundError
from jobspine.core.models import Failure, Job, Success, utcnow
from jobspine.execution import (
    HandlerRegistry,
    get_default_registry,
    register_handler,
    reset_default_registry,
)


def _job(name: str = "send_report", **kwargs) -> Job:
    return Job(name=name, scheduled_at=utcnow(), **kwargs)


class TestHandlerRegistry:
    def test_register_and_get(self):
        registry = HandlerRegistry()

        def handler(job):
            return None

        registry.register("a", handler, description="does a")
        assert registry.get("a") is handler
        assert registry.has("a")
        assert registry.describe("a") == "does a"
        assert registry.list_handlers() == ["a"]

    def test_get_missing_lists_available(self):
        registry = HandlerRegistry()
        registry.register("known", lambda job: None)
        with pytest.raises(HandlerNotFoundError) as exc_info:
            registry.get("unknown")
        assert "known" in str(exc_info.value)
        assert exc_info.value.context["handler"] == "unknown"

    def test_unregister(self):
        registry = HandlerRegistry()
        registry.register("a", lambda job: None)
        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        assert registry.list_handlers() == []

    def test_handler_name_prefers_payload(self):
        assert HandlerRegistry.handler_name(_job("x", payload={"handler": "y"})) == "y"
        assert HandlerRegistry.handler_name(_job("x", payload={"other": 1})) == "x"


class TestExecute:
    def test_outcomes_pass_through(self):
        registry = HandlerRegistry()
        registry.register("ok", lambda job: Success("sent"))
        registry.register("bad", lambda job: Failure("smtp down"))
        assert registry.execute(_job("ok")) == Success("sent")
        assert registry.execute(_job("bad")) == Failure("smtp down")

    def test_plain_return_values(self):
        registry = HandlerRegistry()
        registry.register("none", lambda job: None)
        registry.register("count", lambda job: 42)
        assert registry.execute(_job("none")) == Success()
        assert registry.execute(_job("count")) == Success(detail="42")

    def test_exceptions_propagate(self):
        registry = HandlerRegistry()

        def boom(job):
            raise ValueError("boom")

        registry.register("boom", boom)
        with pytest.raises(ValueError):
            registry.execute(_job("boom"))

    def test_unknown_handler_raises(self):
        with pytest.raises(HandlerNotFoundError):
            HandlerRegistry().execute(_job("nobody"))

    def test_handler_receives_job(self):
        registry = HandlerRegistry()
        received = []
        registry.register("echo", received.append)
        job = _job("other", payload={"handler": "echo", "n": 1})
        registry.execute(job)
        assert received == [job]


class TestDefaultRegistry:
    def test_decorator_registers_on_default(self):
        @register_handler("cleanup")
        def cleanup(job):
            """Purge old rows."""

        registry = get_default_registry()
        assert registry.get("cleanup") is cleanup
        assert registry.describe("cleanup") == "Purge old rows."

    def test_decorator_with_explicit_registry(self):
        registry = HandlerRegistry()

        @register_handler("x", registry=registry)
        def x(job):
            return None

        assert registry.has("x")
        assert not get_default_registry().has("x")

    def test_reset(self):
        register_handler("temp")(lambda job: None)
        reset_default_registry()
        assert get_default_registry().list_handlers() == []
