class HealingError(RuntimeError):
    """Base class for locator healing failures."""


class NoCandidatesError(HealingError):
    """Raised when no interactive element was collected under the context."""

    def __init__(self, selector: str) -> None:
        super().__init__(f"Healing failed: no candidates found for {selector!r}")
        self.selector = selector


class HealingExhaustedError(HealingError):
    """Raised when every resolution strategy failed for a selector."""

    def __init__(self, selector: str) -> None:
        super().__init__(f"Healing exhausted for {selector!r}")
        self.selector = selector


class ActionFailedError(HealingError):
    """Raised when an operation failed on an already resolved element."""

    def __init__(self, operation: str, selector: str, cause: BaseException) -> None:
        super().__init__(f"{operation} failed for {selector!r}: {cause}")
        self.operation = operation
        self.selector = selector
        self.cause = cause
