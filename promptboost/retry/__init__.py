from .policy import RetryContext, RetryPolicy, is_retryable

__all__ = ["RetryContext", "RetryPolicy", "is_retryable"]
