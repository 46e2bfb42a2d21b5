"""
Exceptions raised by the scoring engine and the score persister
"""


class ScoringError(Exception):
    """Base error for a scoring run; names the category and district involved"""

    def __init__(self, message, category=None, district=None, cause=None):
        self.message = message
        self.category = category
        self.district = district
        self.cause = cause
        super().__init__(self._describe())

    def _describe(self):
        parts = []
        if self.category:
            parts.append(f"[{self.category}]")
        if self.district:
            parts.append(f"{self.district}:")
        parts.append(self.message)
        if self.cause is not None:
            parts.append(f"({type(self.cause).__name__}: {self.cause})")
        return " ".join(parts)


class ScoringConfigError(ScoringError):
    """The static area / weight configuration is inconsistent"""

    def __init__(self, message):
        super().__init__(message, category="config")


class EmptyComparisonSetError(ScoringError):
    """Percentile ranking was asked to rank against no districts at all"""


class PersistenceError(ScoringError):
    """Replacing the stored district scores failed and was rolled back"""
