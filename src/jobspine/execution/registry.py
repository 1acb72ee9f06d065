"""Handler Registry: name → job handler lookup, usable as the execution callback.

Manifesto:
The dispatcher only knows the ``JobExecutor`` shape: ``execute(job)``
returns ``Success`` or ``Failure``. The registry decouples registration
(at import time or startup) from resolution (at dispatch time) so a worker
process can route any job row to plain Python functions.

ARCHITECTURE
────────────
::

    HandlerRegistry
      ├── .register(name, handler)   ─ store handler
      ├── .get(name)                 ─ lookup, raises HandlerNotFoundError
      ├── .has(name)                 ─ existence check
      ├── .list_handlers()           ─ all registered names
      └── .execute(job)              ─ JobExecutor implementation

    Resolution order for a job:
      1. job.payload["handler"]  (when present)
      2. job.name

    Handler return values:
      Success / Failure   ─ passed through
      anything else       ─ Success(detail=str(value)) or Success()
      raises              ─ propagated; the dispatcher turns it into Failure

    get_default_registry()     ─ module-level singleton
    reset_default_registry()   ─ clear for testing
    register_handler(name)     ─ decorator on the default registry

BEST PRACTICES
──────────────
- Use ``register_handler`` in worker modules; pass explicit
  ``HandlerRegistry`` instances in tests.
- Call ``reset_default_registry()`` in test fixtures.

Tags:
    jobspine, execution, registry, handler-registry, lookup

Doc-Types:
    api-reference
"""

from collections.abc import Callable
from typing import Any

from jobspine.core.errors import HandlerNotFoundError
from jobspine.core.models import ExecutionOutcome, Failure, Job, Success

JobHandler = Callable[[Job], Any]

HANDLER_PAYLOAD_KEY = "handler"


class HandlerRegistry:
    """Injectable handler registry that doubles as a ``JobExecutor``.

    Example:
        >>> registry = HandlerRegistry()
        >>>
        >>> @register_handler("send_report", registry=registry)
        ... def send_report(job):
        ...     return Success("sent")
        >>>
        >>> registry.execute(Job(name="send_report", scheduled_at=utcnow()))
        Success(detail='sent')
    """

    def __init__(self):
        self._handlers: dict[str, JobHandler] = {}
        self._descriptions: dict[str, str | None] = {}

    def register(self, name: str, handler: JobHandler, description: str | None = None) -> None:
        """Register *handler* under *name*, replacing any previous one."""
        self._handlers[name] = handler
        self._descriptions[name] = description

    def get(self, name: str) -> JobHandler:
        """Get a handler.

        Raises:
            HandlerNotFoundError: If no handler is registered under *name*
        """
        if name not in self._handlers:
            raise HandlerNotFoundError(
                f"No handler registered for {name!r}. "
                f"Available handlers: {self.list_handlers() or 'none'}"
            ).with_context(handler=name)
        return self._handlers[name]

    def has(self, name: str) -> bool:
        return name in self._handlers

    def describe(self, name: str) -> str | None:
        return self._descriptions.get(name)

    def list_handlers(self) -> list[str]:
        return sorted(self._handlers)

    def unregister(self, name: str) -> bool:
        """Remove a handler. Returns False if it was not registered."""
        self._descriptions.pop(name, None)
        return self._handlers.pop(name, None) is not None

    def clear(self) -> None:
        """Clear all handlers (for testing)."""
        self._handlers.clear()
        self._descriptions.clear()

    @staticmethod
    def handler_name(job: Job) -> str:
        """Name used to resolve *job*: ``payload['handler']`` or the job name."""
        name = job.payload.get(HANDLER_PAYLOAD_KEY) if job.payload else None
        return str(name) if name else job.name

    def execute(self, job: Job) -> ExecutionOutcome:
        handler = self.get(self.handler_name(job))
        result = handler(job)
        if isinstance(result, Success | Failure):
            return result
        return Success(detail=None if result is None else str(result))


# === GLOBAL DEFAULT REGISTRY ===

_default_registry: HandlerRegistry | None = None


def get_default_registry() -> HandlerRegistry:
    """Get the global default registry.

    Creates it lazily on first access.
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = HandlerRegistry()
    return _default_registry


def reset_default_registry() -> None:
    """Reset the global registry (for testing)."""
    global _default_registry
    _default_registry = None


# === DECORATOR API ===


def register_handler(
    name: str,
    registry: HandlerRegistry | None = None,
    description: str | None = None,
):
    """Decorator to register a job handler.

    Example:
        >>> @register_handler("cleanup")
        ... def cleanup(job):
        ...     purge(job.payload["table"])
    """
    target = registry or get_default_registry()

    def decorator(func: JobHandler) -> JobHandler:
        target.register(name, func, description=description or func.__doc__)
        return func

    return decorator
