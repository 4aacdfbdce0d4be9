class LeadScoringError(Exception):
    """Base class for all lead-scoring domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except LeadScoringError`` clause can catch any domain
    error.  ``retryable`` tells the worker pool whether another delivery
    attempt can succeed (configuration or data may catch up) or whether
    the job should be dead-lettered straight away.
    """

    retryable: bool = True

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Validation: rejected synchronously, never queued
# ---------------------------------------------------------------------------


class EventValidationError(LeadScoringError):
    """Raised when an event payload is malformed."""

    retryable = False

    def __init__(self, detail: str = "Invalid event data"):
        super().__init__(detail)


class BatchLimitError(EventValidationError):
    """Raised when a batch is empty or exceeds the configured maximum."""

    def __init__(self, detail: str = "Invalid batch size"):
        super().__init__(detail)


class RuleValidationError(LeadScoringError):
    """Raised when a scoring rule update is malformed."""

    retryable = False

    def __init__(self, detail: str = "Invalid scoring rule"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Not found: retried by the queue, then dead-lettered
# ---------------------------------------------------------------------------


class NotFoundError(LeadScoringError):
    """Raised when a referenced record does not exist."""

    def __init__(self, detail: str = "Not found"):
        super().__init__(detail)


class LeadNotFoundError(NotFoundError):
    """Raised when a requested lead does not exist."""

    def __init__(self, detail: str = "Lead not found"):
        super().__init__(detail)


class NoActiveRuleError(NotFoundError):
    """Raised when an event type has no usable scoring rule."""

    def __init__(self, detail: str = "No active scoring rule"):
        super().__init__(detail)


class RuleNotFoundError(NoActiveRuleError):
    """Raised when no scoring rule exists for an event type."""

    def __init__(self, detail: str = "Scoring rule not found"):
        super().__init__(detail)


class RuleInactiveError(NoActiveRuleError):
    """Raised when the scoring rule for an event type is switched off."""

    def __init__(self, detail: str = "Scoring rule is inactive"):
        super().__init__(detail)


class JobNotFoundError(NotFoundError):
    """Raised when a queue job id is unknown."""

    def __init__(self, detail: str = "Job not found"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Transient / concurrency: retried via queue backoff
# ---------------------------------------------------------------------------


class TransientStoreError(LeadScoringError):
    """Raised when the database rejects a write that may succeed on retry."""

    def __init__(self, detail: str = "Storage temporarily unavailable"):
        super().__init__(detail)


class ScoreWriteConflictError(TransientStoreError):
    """Raised when a lead's score changed underneath a conditional update."""

    def __init__(self, detail: str = "Concurrent score update detected"):
        super().__init__(detail)


class RecalculationConflictError(LeadScoringError):
    """Raised when a recalculation for the same lead is already running."""

    def __init__(self, detail: str = "Recalculation already in progress"):
        super().__init__(detail)
