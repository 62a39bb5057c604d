"""Tests for the activity / orchestrator Registry."""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial

import pytest

from durable_mr.core.errors import RegistrationError
from durable_mr.execution.registry import Registry


@dataclass(frozen=True)
class _FileInput:
    file_name: str
    container_in: str


class _Doubler:
    """Object-style activity."""

    def execute(self, input):
        return input * 2


def _orchestrator(ctx):
    yield ctx.call_activity("double", 1)


def _orchestrator_with_option(ctx, combine=max):
    yield ctx.call_activity("double", 1)


# ── Activities ───────────────────────────────────────────────────────────


class TestActivityRegistration:
    """Tests for registering and resolving activities."""

    def test_register_function(self, registry: Registry):
        registry.register_activity("double", lambda x: x * 2)
        assert registry.get_activity("double").execute(21) == 42

    def test_register_execute_object(self, registry: Registry):
        registry.register_activity("double", _Doubler())
        assert registry.get_activity("double").execute(4) == 8

    def test_decorator(self, registry: Registry):
        @registry.activity("upper")
        def upper(text):
            """Uppercase text."""
            return text.upper()

        definition = registry.get_activity("upper")
        assert definition.execute("abc") == "ABC"
        assert definition.description == "Uppercase text."
        assert upper("x") == "X"

    def test_input_type_rebuilt_from_dict(self, registry: Registry):
        registry.register_activity("name_of", lambda f: f.file_name, input_type=_FileInput)
        definition = registry.get_activity("name_of")
        assert definition.execute({"file_name": "a.txt", "container_in": "datain"}) == "a.txt"
        assert definition.execute(_FileInput("b.txt", "datain")) == "b.txt"

    def test_input_type_rejects_scalar_payload(self, registry: Registry):
        registry.register_activity("name_of", lambda f: f.file_name, input_type=_FileInput)
        with pytest.raises(RegistrationError):
            registry.get_activity("name_of").execute("a.txt")

    def test_duplicate_rejected(self, registry: Registry):
        registry.register_activity("a", lambda x: x)
        with pytest.raises(RegistrationError, match="already registered"):
            registry.register_activity("a", lambda x: x)

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_invalid_name(self, registry: Registry, name):
        with pytest.raises(RegistrationError):
            registry.register_activity(name, lambda x: x)

    def test_not_callable(self, registry: Registry):
        with pytest.raises(RegistrationError):
            registry.register_activity("a", 42)

    def test_input_type_must_be_dataclass(self, registry: Registry):
        with pytest.raises(RegistrationError):
            registry.register_activity("a", lambda x: x, input_type=dict)

    def test_non_positive_timeout(self, registry: Registry):
        with pytest.raises(RegistrationError):
            registry.register_activity("a", lambda x: x, timeout_seconds=0)

    def test_unknown_lists_available(self, registry: Registry):
        registry.register_activity("known", lambda x: x)
        with pytest.raises(RegistrationError, match="known"):
            registry.get_activity("missing")
        assert registry.has_activity("known")
        assert not registry.has_activity("missing")


# ── Orchestrators ────────────────────────────────────────────────────────


class TestOrchestratorRegistration:
    """Tests for registering and resolving orchestrators."""

    def test_register_generator(self, registry: Registry):
        definition = registry.register_orchestrator("flow", _orchestrator)
        assert registry.get_orchestrator("flow") is definition

    def test_partial_of_generator(self, registry: Registry):
        registry.register_orchestrator("flow", partial(_orchestrator_with_option, combine=min))
        assert registry.has_orchestrator("flow")

    def test_plain_function_rejected(self, registry: Registry):
        with pytest.raises(RegistrationError, match="generator"):
            registry.register_orchestrator("flow", lambda ctx: None)

    def test_build_input(self, registry: Registry):
        registry.register_orchestrator("flow", _orchestrator, input_type=_FileInput)
        definition = registry.get_orchestrator("flow")
        assert definition.build_input({"file_name": "a", "container_in": "b"}) == _FileInput("a", "b")
        assert definition.build_input(None) is None

    def test_build_input_rejects_mismatched_payload(self, registry: Registry):
        registry.register_orchestrator("flow", _orchestrator, input_type=_FileInput)
        with pytest.raises(RegistrationError, match="_FileInput") as exc_info:
            registry.get_orchestrator("flow").build_input({"file_name": "a", "size": 3})
        assert exc_info.value.retryable is False
        assert isinstance(exc_info.value.__cause__, TypeError)

    def test_unknown(self, registry: Registry):
        with pytest.raises(RegistrationError):
            registry.get_orchestrator("missing")

    def test_list_names(self, registry: Registry):
        registry.register_activity("b", lambda x: x)
        registry.register_activity("a", lambda x: x)
        registry.register_orchestrator("flow", _orchestrator)
        assert registry.list_names() == {"activities": ["a", "b"], "orchestrators": ["flow"]}
