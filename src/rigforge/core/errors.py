"""Exception hierarchy raised by the surgery engines.

Every failure the engines report derives from :class:`SurgeryError`, so a
caller previewing parameters can catch one type and keep its last good
result.  Input problems are detected before any working copy is touched.
"""

from typing import Optional


class SurgeryError(Exception):
    """Base class for all mesh surgery failures."""


class InputError(SurgeryError, ValueError):
    """Malformed input: bad indices, bindings or parameters."""


class GeometryDegenerate(InputError):
    """Geometry too degenerate to operate on (coincident points, zero-length bone).

    ``entity`` names the offending item, e.g. ``"bone 3"``.
    """

    def __init__(self, message: str, entity: Optional[str] = None):
        if entity:
            message = f"{entity}: {message}"
        super().__init__(message)
        self.entity = entity


class TopologyError(SurgeryError):
    """The mesh connectivity cannot be stitched or traversed as required."""

    def __init__(self, message: str, region: Optional[str] = None):
        if region:
            message = f"{region}: {message}"
        super().__init__(message)
        self.region = region


class SolveError(SurgeryError):
    """A linear system was not symmetric positive definite.

    ``system`` names the failed system, e.g. ``"skin weights bone 2"``.
    """

    def __init__(self, message: str, system: Optional[str] = None):
        if system:
            message = f"{system}: {message}"
        super().__init__(message)
        self.system = system
