"""
Error taxonomy for the evaluation harness.
Every error aborts the current evaluation run; nothing is recovered locally.
"""

import logging

logger = logging.getLogger(__name__)


class HarnessError(ValueError):
    """Base class. Keyword arguments are kept as context and appended to the message."""

    def __init__(self, message, log_level=logging.ERROR, **context):
        self.message = message
        self.context = context
        self.log_level = log_level
        super().__init__(self._format())
        self.log()

    def _format(self):
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({details})"

    def log(self):
        logger.log(self.log_level, "%s: %s", self.__class__.__name__, self._format())

    def with_context(self, **extra):
        """Return a copy of this error carrying additional context (e.g. model id, split seed)."""
        merged = dict(self.context)
        merged.update(extra)
        return type(self)(self.message, log_level=logging.DEBUG, **merged)


class DegenerateColumnError(HarnessError):
    """A feature column has zero standard deviation and cannot be scaled."""


class InsufficientDataError(HarnessError):
    """A split asks for at least as many test records as the dataset holds."""


class InvalidKError(HarnessError):
    """k-NN neighbour count outside [1, len(train)]."""


class InvalidTargetSizeError(HarnessError):
    """Pruning target is below 1 or above the tree's current leaf count."""


class DegenerateLabelsError(HarnessError):
    """ROC AUC requested on labels of a single class."""


class UnknownFeatureError(HarnessError):
    """A feature name is not part of the dataset schema."""


class DuplicateModelError(HarnessError):
    """A results table already holds a record for this model id."""
