"""
Custom Exceptions
Error taxonomy for the trend-to-short pipeline.
"""


class ShotAutoError(Exception):
    """Base exception for the pipeline"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ShotAutoError):
    """Invalid or missing operator configuration"""
    pass


class TransientError(ShotAutoError):
    """Network timeout, 5xx or rate limit; safe to retry with backoff"""
    pass


class TrendSourceError(TransientError):
    """Trend source request failed"""

    def __init__(self, message: str, status_code: int = None, **kwargs):
        super().__init__(message, kwargs)
        self.status_code = status_code


class InferenceError(TransientError):
    """Inference endpoint request failed"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class NotificationError(TransientError):
    """Messaging endpoint delivery failed"""
    pass


class AuthenticationError(ShotAutoError):
    """Missing or rejected key/token; halts the dependent stage until config changes"""

    def __init__(self, message: str, service: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.service = service


class PermanentContentError(ShotAutoError):
    """Model output that can never become a short (empty, refused, malformed)"""
    pass


class AssemblyError(ShotAutoError):
    """Video assembly failed; retryable"""
    pass


class StorageError(ShotAutoError):
    """Persistent store error"""
    pass


class InvariantViolation(StorageError):
    """A row is in a state the state machine does not allow"""
    pass
