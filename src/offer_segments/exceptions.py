"""Error types raised by the segmentation engines."""


class SegmentationError(Exception):
    """Base class for all segmentation errors."""


class InvalidParameter(SegmentationError, ValueError):
    """A parameter is out of range or inconsistent with the input data."""


class DegenerateInput(SegmentationError, ValueError):
    """The input cannot support the requested computation (too few points, no variance)."""


class NoSolution(SegmentationError):
    """A model-selection rule found no qualifying number of clusters."""


class NonConvergence(UserWarning):
    """
    An iterative fit hit its iteration cap before stabilizing.

    Emitted as a warning, never raised: the last iterate is still returned and
    flagged with ``converged=False``.
    """
