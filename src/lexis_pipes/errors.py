"""Exceptions raised by the corpus analysis functions.

All errors subclass ValueError so callers that only care about bad input can
catch them the same way as any other validation failure.
"""


class LexisError(ValueError):
    """Base class for corpus analysis errors."""


class InputError(LexisError):
    """Input is empty or malformed where a usable value is required.

    Examples are an unreadable document, a document without tokens used as a
    proportion denominator, or negative counts.
    """


class StatisticalPreconditionError(LexisError):
    """A statistical test cannot be run on the given data.

    Raised for zero totals, zero rows, or fewer than two usable columns. The
    test should be reported as skipped with "insufficient data".
    """


class AggregationConflictError(LexisError):
    """Two documents share the same identifier within one aggregation run."""
