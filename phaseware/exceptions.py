"""Exception hierarchy for phaseware.

Registration-time problems (bad phase names, ordering conflicts, invalid
handlers or config records) are raised synchronously to the caller.
Errors that happen while a request is being dispatched are not raised;
they travel through the ``next(err)`` continuation instead.
"""


class PhasewareError(Exception):
    """Base class for all phaseware errors."""


class InvalidPhaseError(PhasewareError, ValueError):
    """A phase name is empty, malformed or duplicated."""


class UnknownPhaseError(PhasewareError, ValueError):
    """A handler was registered into a phase that was never defined."""

    def __init__(self, phase: str):
        super().__init__(f"Unknown middleware phase {phase}")
        self.phase = phase


class PhaseOrderingConflict(PhasewareError, ValueError):
    """Two phase lists disagree on the relative order of two phases."""

    def __init__(self, phase: str, previous: str):
        super().__init__(
            f'Ordering conflict: cannot add "{phase}" after "{previous}", '
            "because the opposite order was already specified"
        )
        self.phase = phase
        self.previous = previous


class InvalidHandlerError(PhasewareError, TypeError):
    """A registered handler is neither callable nor an application."""


class MiddlewareConfigError(PhasewareError, ValueError):
    """A declarative middleware config record is invalid."""


class MiddlewareNotInstalled(PhasewareError, RuntimeError):
    """An optional middleware was used but its distribution is missing."""

    def __init__(self, name: str, distribution: str):
        super().__init__(
            f"The middleware phaseware.contrib.{name} is not installed.\n"
            f"Run `pip install {distribution}` to fix the problem."
        )
        self.name = name
        self.distribution = distribution
