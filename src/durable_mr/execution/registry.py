"""Callback registry — typed name → activity / orchestrator lookup.

Orchestration code refers to callbacks by name (that is what history records),
so names are resolved through a registry. Registration validates the callback
up front instead of failing in the middle of a run:

- names must be non-empty and unique per kind
- activities must be callables or objects with an ``execute(input)`` method
- orchestrators must be generator functions (they ``yield`` tasks)
- an optional ``input_type`` dataclass is rebuilt from the recorded payload

ARCHITECTURE
────────────
::

    Registry
      ├── .register_activity(name, handler, input_type, timeout_seconds)
      ├── .register_orchestrator(name, function, input_type)
      ├── .activity(name) / .orchestrator(name)   ─ decorator forms
      ├── .get_activity(name) → ActivityDefinition
      └── .get_orchestrator(name) → OrchestratorDefinition

There is no module-level registry: each runtime owns one.
"""

from __future__ import annotations

import dataclasses
import inspect
from collections.abc import Callable, Generator
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from durable_mr.core.errors import RegistrationError
from durable_mr.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Activity(Protocol):
    """Capability every activity callback implements."""

    def execute(self, input: Any) -> Any:
        ...


def _build_input(input_type: type | None, payload: Any) -> Any:
    if input_type is None or payload is None or isinstance(payload, input_type):
        return payload
    if isinstance(payload, dict):
        try:
            return input_type(**payload)
        except TypeError as e:
            raise RegistrationError(
                f"Cannot build {input_type.__name__} from payload: {e}"
            ) from e
    raise RegistrationError(
        f"Cannot build {input_type.__name__} from {type(payload).__name__} payload"
    )


@dataclass(frozen=True)
class ActivityDefinition:
    """A registered activity: a name bound to an ``execute(input)`` capability."""

    name: str
    handler: Callable[[Any], Any]
    input_type: type | None = None
    timeout_seconds: float | None = None
    description: str | None = None

    def execute(self, input: Any) -> Any:
        return self.handler(_build_input(self.input_type, input))


@dataclass(frozen=True)
class OrchestratorDefinition:
    """A registered orchestrator generator function."""

    name: str
    function: Callable[..., Generator[Any, Any, Any]]
    input_type: type | None = None
    description: str | None = None

    def build_input(self, payload: Any) -> Any:
        return _build_input(self.input_type, payload)


def _is_generator_function(fn: Any) -> bool:
    target = getattr(fn, "func", fn)  # functools.partial
    return inspect.isgeneratorfunction(target)


class Registry:
    """Registry of activities and orchestrators for one runtime.

    Example:
        >>> registry = Registry()
        >>> @registry.activity("double")
        ... def double(x):
        ...     return x * 2
        >>> registry.get_activity("double").execute(21)
        42
    """

    def __init__(self) -> None:
        self._activities: dict[str, ActivityDefinition] = {}
        self._orchestrators: dict[str, OrchestratorDefinition] = {}

    # ── Activities ───────────────────────────────────────────────

    def register_activity(
        self,
        name: str,
        handler: Callable[[Any], Any] | Activity,
        *,
        input_type: type | None = None,
        timeout_seconds: float | None = None,
        description: str | None = None,
    ) -> ActivityDefinition:
        """Register an activity callback.

        Raises:
            RegistrationError: invalid name, duplicate, or unusable handler
        """
        self._check_name(name, self._activities, "activity")
        if isinstance(handler, Activity) and not inspect.isroutine(handler):
            func = handler.execute
        elif callable(handler):
            func = handler
        else:
            raise RegistrationError(
                f"Activity '{name}' must be callable or implement execute(input)"
            )
        if input_type is not None and not dataclasses.is_dataclass(input_type):
            raise RegistrationError(f"Activity '{name}' input_type must be a dataclass")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise RegistrationError(f"Activity '{name}' timeout must be positive")

        definition = ActivityDefinition(
            name=name,
            handler=func,
            input_type=input_type,
            timeout_seconds=timeout_seconds,
            description=description or inspect.getdoc(func),
        )
        self._activities[name] = definition
        logger.debug("activity_registered", name=name)
        return definition

    def activity(self, name: str, **kwargs: Any) -> Callable[[Callable], Callable]:
        """Decorator form of :meth:`register_activity`."""

        def decorator(func: Callable) -> Callable:
            self.register_activity(name, func, **kwargs)
            return func

        return decorator

    def get_activity(self, name: str) -> ActivityDefinition:
        try:
            return self._activities[name]
        except KeyError:
            available = sorted(self._activities) or "none"
            raise RegistrationError(
                f"No activity registered as '{name}'. Available: {available}"
            ) from None

    def has_activity(self, name: str) -> bool:
        return name in self._activities

    # ── Orchestrators ────────────────────────────────────────────

    def register_orchestrator(
        self,
        name: str,
        function: Callable[..., Generator[Any, Any, Any]],
        *,
        input_type: type | None = None,
        description: str | None = None,
    ) -> OrchestratorDefinition:
        """Register an orchestrator generator function.

        Raises:
            RegistrationError: invalid name, duplicate, or not a generator function
        """
        self._check_name(name, self._orchestrators, "orchestrator")
        if not _is_generator_function(function):
            raise RegistrationError(
                f"Orchestrator '{name}' must be a generator function that yields tasks"
            )
        if input_type is not None and not dataclasses.is_dataclass(input_type):
            raise RegistrationError(f"Orchestrator '{name}' input_type must be a dataclass")

        definition = OrchestratorDefinition(
            name=name,
            function=function,
            input_type=input_type,
            description=description or inspect.getdoc(function),
        )
        self._orchestrators[name] = definition
        logger.debug("orchestrator_registered", name=name)
        return definition

    def orchestrator(self, name: str, **kwargs: Any) -> Callable[[Callable], Callable]:
        """Decorator form of :meth:`register_orchestrator`."""

        def decorator(func: Callable) -> Callable:
            self.register_orchestrator(name, func, **kwargs)
            return func

        return decorator

    def get_orchestrator(self, name: str) -> OrchestratorDefinition:
        try:
            return self._orchestrators[name]
        except KeyError:
            available = sorted(self._orchestrators) or "none"
            raise RegistrationError(
                f"No orchestrator registered as '{name}'. Available: {available}"
            ) from None

    def has_orchestrator(self, name: str) -> bool:
        return name in self._orchestrators

    def list_names(self) -> dict[str, list[str]]:
        return {
            "activities": sorted(self._activities),
            "orchestrators": sorted(self._orchestrators),
        }

    @staticmethod
    def _check_name(name: str, existing: dict[str, Any], kind: str) -> None:
        if not isinstance(name, str) or not name.strip():
            raise RegistrationError(f"{kind.capitalize()} name must be a non-empty string")
        if name in existing:
            raise RegistrationError(f"{kind.capitalize()} '{name}' is already registered")
