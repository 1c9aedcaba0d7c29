from .estimator import estimate_tokens

__all__ = ["estimate_tokens"]
