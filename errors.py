"""
Errors that end a painting run.

Per-pixel outcomes (transient failure, unauthorized) are PaintResult values
handled inside the queue; only these two ever reach the operator.
"""


class AutoPaintError(Exception):
    """Base class for all painting engine errors"""


class PreconditionError(AutoPaintError):
    """Run started without an image, a palette or a placement anchor"""


class UnrecoverableError(AutoPaintError):
    """Token recovery cannot proceed without the operator"""
