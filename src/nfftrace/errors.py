"""Exception taxonomy for the ray tracer.

Errors fall into three groups that the command line maps to distinct exit
codes:

- Scene errors (parse failures, degenerate geometry, bad camera setup) are
  raised before any rendering starts.
- Render errors are raised when a built scene cannot be traced (for example
  when it exceeds the preallocated device tables).
- Output errors are raised when the finished image cannot be written.

Per-ray numerical edge cases are never reported through exceptions; the
intersection and shading routines treat them as "no hit" or "no
contribution".
"""

from __future__ import annotations


class RaytracerError(Exception):
    """Base class for all errors raised by nfftrace."""


class SceneError(RaytracerError):
    """The scene description cannot produce a valid Scene."""


class GeometryError(SceneError, ValueError):
    """A primitive has degenerate geometry (zero radius, non-planar, ...)."""


class CameraError(SceneError, ValueError):
    """The view parameters cannot produce an orthonormal camera basis."""


class NFFParseError(SceneError):
    """A directive in an NFF scene could not be parsed.

    Attributes:
        directive: The directive being parsed (``"v"``, ``"s"``, ...).
        line_number: 1-based line number of the offending line, or None when
            the error is not tied to a line (e.g. a missing view block).
        message: Human readable description of the problem.
    """

    def __init__(self, directive: str, message: str, line_number: int | None = None) -> None:
        self.directive = directive
        self.message = message
        self.line_number = line_number
        location = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"Error parsing directive '{directive}'{location}: {message}")


class RenderError(RaytracerError):
    """The renderer could not trace a built scene."""


class OutputError(RaytracerError):
    """The rendered image could not be written."""
