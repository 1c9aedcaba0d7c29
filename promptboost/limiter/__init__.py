from .rate import RateLimiter, RateState

__all__ = ["RateLimiter", "RateState"]
