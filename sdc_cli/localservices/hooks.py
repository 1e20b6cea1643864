"""
Pre-call hooks for local test doubles.

Every public operation of a service double runs its hooks before doing any
work. A hook can observe the call, or fail it by raising or returning an
exception; the operation is then skipped and that exception reaches the
caller unchanged.
"""

import functools
from collections.abc import Callable
from typing import Any, TypeVar

Hook = Callable[["ServiceInstance", str, tuple[Any, ...]], BaseException | None]

F = TypeVar("F", bound=Callable[..., Any])


class ServiceInstance:
    """Common state for a local service double."""

    def __init__(self, user_account: str = ""):
        self.user_account = user_account
        self.hook: Hook | None = None
        self.control_hooks: dict[str, Hook] = {}

    def set_hook(self, hook: Hook | None) -> None:
        """Install a hook called before every operation (None removes it)."""
        self.hook = hook

    def register_control_point(self, operation: str, hook: Hook | None) -> None:
        """Install a hook for a single operation, by method name (None removes it)."""
        if hook is None:
            self.control_hooks.pop(operation, None)
        else:
            self.control_hooks[operation] = hook

    def process_function_hook(self, operation: str, *args: Any) -> None:
        """Run the hooks for an operation, raising whatever error they report."""
        for hook in (self.hook, self.control_hooks.get(operation)):
            if hook is None:
                continue
            err = hook(self, operation, args)
            if err is not None:
                raise err


def hooked(method: F) -> F:
    """Run the service's pre-call hooks before the wrapped operation."""

    @functools.wraps(method)
    def wrapper(self: ServiceInstance, *args: Any, **kwargs: Any) -> Any:
        self.process_function_hook(method.__name__, *args, *kwargs.values())
        return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]
