"""
Error taxonomy for the compositing core.

Every core error indicates malformed input or a wiring bug upstream; none of
them is transient, so callers should never retry on them.
"""


class CompositingError(ValueError):
    """Base class for all non-retryable compositing core errors."""


class InvalidGeometryError(CompositingError):
    """Raised when a bounding box violates its normalized-rectangle invariants."""


class EmptyRegionError(CompositingError):
    """Raised when a stage receives a region with zero pixels."""


class DimensionMismatchError(CompositingError):
    """Raised when a region's pixel shape does not match the box it should fill."""


class GenerationFailedError(RuntimeError):
    """Raised when the external generator returns no usable image."""
