"""Custom exceptions for Visitor Insights."""


class VisitorInsightsError(Exception):
    """Base exception for all Visitor Insights errors."""

    pass


class APIError(VisitorInsightsError):
    """Raised when an analytics query fails upstream."""

    pass


class AdapterUnavailable(APIError):
    """Raised when the analytics client is not initialized or not configured."""

    pass


class AuthenticationError(AdapterUnavailable):
    """Raised when analytics credentials cannot be obtained."""

    pass


class RateLimitError(APIError):
    """Raised when API rate limits are exceeded."""

    pass


class QueryTimeoutError(APIError):
    """Raised when the analytics source does not answer before its deadline."""

    pass


class SecondaryQueryFailed(APIError):
    """Raised when every variant of an optional enrichment query failed.

    Callers log and absorb this error; it only reduces the richness of the
    returned object.
    """

    def __init__(self, label: str, attempts: list[tuple[str, Exception]] | None = None):
        """Initialize secondary query failure.

        Args:
            label: Name of the sub-query that failed
            attempts: (variant name, error) for every variant that was tried
        """
        self.label = label
        self.attempts = attempts or []
        tried = ", ".join(f"{name}: {error}" for name, error in self.attempts)
        message = f"Secondary query '{label}' failed"
        if tried:
            message += f" ({tried})"
        super().__init__(message)


class ValidationError(VisitorInsightsError):
    """Raised when input validation fails."""

    pass


class MalformedIdentityKey(ValidationError):
    """Raised when a visitor identity key cannot be decoded."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Malformed identity key: {reason}")


class InvalidDateRange(ValidationError):
    """Raised when a date token is invalid or the range is inverted."""

    pass


class QueryBudgetExceeded(ValidationError):
    """Raised when a query uses more dimensions and filters than the source allows."""

    def __init__(self, label: str, term_count: int, max_terms: int):
        self.label = label
        self.term_count = term_count
        self.max_terms = max_terms
        super().__init__(
            f"Query '{label}' uses {term_count} dimensions+filters, "
            f"the analytics source accepts at most {max_terms}"
        )


class DataError(VisitorInsightsError):
    """Raised when data operations fail."""

    pass


class SchemaMismatch(DataError):
    """Raised when a row does not match the dimensions/metrics that were requested."""

    def __init__(
        self,
        expected_dimensions: int,
        actual_dimensions: int,
        expected_metrics: int,
        actual_metrics: int,
    ):
        self.expected_dimensions = expected_dimensions
        self.actual_dimensions = actual_dimensions
        self.expected_metrics = expected_metrics
        self.actual_metrics = actual_metrics
        super().__init__(
            f"Row shape mismatch: expected {expected_dimensions} dimensions and "
            f"{expected_metrics} metrics, got {actual_dimensions} and {actual_metrics}"
        )


class ConfigurationError(VisitorInsightsError):
    """Raised when configuration is invalid."""

    pass
