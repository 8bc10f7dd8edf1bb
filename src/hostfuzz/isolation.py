"""Execution isolator: one host call inside a failure boundary.

    Ready -> Completed   host returned, or rejected the call with HostError
    Ready -> Aborted     any other exception escaped the host call

Both states are terminal. There is one invocation per adapted instruction and
no retry.

The boundary recovers raised exceptions only. It cannot recover a crash of
the interpreter process or an operation that never returns. KeyboardInterrupt
and SystemExit are not Exception subclasses and pass through untouched.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from hostfuzz.adapter import AdaptedInstruction
from hostfuzz.errors import ForeignHandleError, HostError
from hostfuzz.host import HostEnvironment

__all__ = [
    "Aborted",
    "Completed",
    "Outcome",
    "run_isolated",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Completed:
    """Host call returned, either with a result or an explicit error.

    Attributes:
        value: Host result, None when the call was rejected
        error: HostError reported by the host, None on success
    """

    value: object = None
    error: HostError | None = None

    @property
    def is_error(self) -> bool:
        """True when the host rejected the call."""
        return self.error is not None


@dataclass(frozen=True, slots=True)
class Aborted:
    """Host call terminated abruptly.

    Attributes:
        exception: Exception that escaped the host call
    """

    exception: Exception


type Outcome = Completed | Aborted


def run_isolated(adapted: AdaptedInstruction, host: HostEnvironment) -> Outcome:
    """Execute adapted on host and classify the result.

    Args:
        adapted: Instruction adapted against host
        host: Environment to execute on

    Returns:
        Completed or Aborted, never raises for failures inside the call

    Raises:
        ForeignHandleError: If adapted was bound to a different host
    """
    if adapted.context is not host:
        msg = f"{adapted.syscall} was adapted for a different host environment"
        raise ForeignHandleError(msg)

    try:
        value = host.try_run(adapted)
    except HostError as error:
        return Completed(error=error)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.debug("Host call %s aborted: %r", adapted.syscall, exc)
        return Aborted(exc)
    return Completed(value=value)
