"""
Error taxonomy for the planning engine.

``ValidationError``     — malformed or out-of-range input; raised before any
                          write and surfaced to the caller verbatim.
``NotFoundError``       — referenced project / item / recommendation is absent.
``UpstreamUnavailable`` — geocoding or distance matrix failure. The distance
                          cache catches it and degrades to partial results.
``ConflictIgnored``     — an apply action targeted a stream that no longer
                          exists. Caught inside the apply pipeline and turned
                          into a no-op; it never reaches callers.
``StaleRevisionError``  — a save carried an ``expected_revision`` that no
                          longer matches the latest plan document.

A missing conversion factor is NOT an error: it is a ``None`` mass that the
aggregator counts in ``conversion_required_count``.
"""

from __future__ import annotations


class PlanningError(Exception):
    """Base class for all waste planner errors."""


class ValidationError(PlanningError):
    """Input failed validation; nothing was persisted."""


class NotFoundError(PlanningError):
    """A referenced entity does not exist."""

    def __init__(self, kind: str, identifier: object) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier!r}")


class UpstreamUnavailable(PlanningError):
    """An external geocoding/routing call failed."""


class ConflictIgnored(PlanningError):
    """Benign race: the targeted stream is gone, so the action is a no-op."""

    def __init__(self, stream_name: str) -> None:
        self.stream_name = stream_name
        super().__init__(f"No plan entry for stream {stream_name!r}; action ignored.")


class StaleRevisionError(PlanningError):
    """The plan document changed since the caller read it."""

    def __init__(self, project_id: str, expected: int, actual: int) -> None:
        self.project_id = project_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Plan document for project {project_id!r} is at revision {actual}, "
            f"expected {expected}."
        )
