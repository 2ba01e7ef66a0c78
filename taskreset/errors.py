"""Error taxonomy for taskreset."""


class TaskResetError(Exception):
    """Base class for all taskreset errors."""


class ValidationError(TaskResetError, ValueError):
    """A category/params combination or payload is structurally invalid.

    Raised at creation, edit and deserialization boundaries, always before
    anything is written.
    """


class NotFoundError(TaskResetError, LookupError):
    """A task or sub-task is not present (or belongs to another owner)."""


class PersistenceError(TaskResetError):
    """The store rejected or failed a write."""


class DataQualityFallback(UserWarning):
    """Malformed persisted params were replaced by a default during evaluation.

    Instances are logged by callers, never raised.
    """

    def __init__(self, category: str, detail: str, fallback: str):
        self.category = category
        self.detail = detail
        self.fallback = fallback
        super().__init__(f"{category}: {detail}; falling back to {fallback}")
