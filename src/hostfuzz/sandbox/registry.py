"""Syscall name to handler registry of the reference sandbox.

Handlers are plain functions taking the sandbox host followed by the
host-native arguments of the instruction, registered with a decorator:

    @SYSCALLS.register("syscalls::buf::bytes_len")
    def bytes_len(host: SandboxHost, b: Handle) -> int:
        return len(host.bytes_of(b))

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator

__all__ = [
    "SYSCALLS",
    "SyscallHandler",
    "SyscallRegistry",
]

type SyscallHandler = Callable[..., object]


class SyscallRegistry:
    """Maps syscall names to handler functions.

    Supports dict-like introspection:
        - __contains__: Check if a syscall has a handler
        - __iter__: Iterate over registered syscall names
        - __len__: Count registered handlers

    Example:
        >>> registry = SyscallRegistry()
        >>> @registry.register("syscalls::test::dummy0")
        ... def dummy0(host):
        ...     return None
        >>> "syscalls::test::dummy0" in registry
        True
        >>> len(registry)
        1
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._handlers: dict[str, SyscallHandler] = {}

    def register[F: SyscallHandler](self, syscall: str) -> Callable[[F], F]:
        """Decorator registering a handler under syscall.

        Raises:
            ValueError: If syscall already has a handler
        """

        def decorator(func: F) -> F:
            if syscall in self._handlers:
                msg = f"duplicate handler for {syscall}"
                raise ValueError(msg)
            self._handlers[syscall] = func
            return func

        return decorator

    def lookup(self, syscall: str) -> SyscallHandler:
        """Handler registered for syscall.

        Raises:
            KeyError: If syscall has no handler
        """
        return self._handlers[syscall]

    def missing(self, syscalls: Iterable[str]) -> list[str]:
        """Names from syscalls that have no handler, in input order."""
        return [name for name in syscalls if name not in self._handlers]

    def __contains__(self, syscall: object) -> bool:
        return syscall in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


SYSCALLS = SyscallRegistry()
"""Registry populated by the hostfuzz.sandbox.syscalls modules."""
