"""
errors.py

Exceptions raised by particlemorph.

Input problems subclass ValueError so callers that already guard image
loading with `except ValueError` keep working.
"""


class MorphError(Exception):
    """Base class for every particlemorph error."""


class SettingsError(MorphError, ValueError):
    pass


class GridMismatchError(MorphError, ValueError):
    pass


class SolveError(MorphError):
    """Numerical failure or broken invariant inside a solver."""


class SolveCancelled(MorphError):
    """The job's cancellation token was observed by the solver."""


class SimulationError(MorphError, RuntimeError):
    pass


class AssignmentError(SimulationError, ValueError):
    pass
