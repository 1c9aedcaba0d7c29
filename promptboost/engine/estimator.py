# promptboost/engine/estimator.py
"""
Pre-flight token count estimation.

Uses tiktoken to count prompt tokens before a call so the rate limiter can
make its admission decision against the tokens-per-minute budget without a
server round trip.

Provider-specific tokenisers differ, but cl100k_base is a close-enough
approximation for admission decisions. The orchestrator adds the requested
completion budget (max_tokens) on top of this estimate.
"""

from __future__ import annotations

import functools

import tiktoken

_ENCODING_NAME = "cl100k_base"
_OVERHEAD_PER_PROMPT = 6  # role + separators + reply primer in chat format


@functools.lru_cache(maxsize=1)
def _get_encoding() -> tiktoken.Encoding:
    """Cache the tiktoken encoding object — loading it is expensive."""
    return tiktoken.get_encoding(_ENCODING_NAME)


def estimate_tokens(text: str) -> int:
    """
    Estimate the number of tokens a single-message prompt will consume.

    Parameters
    ----------
    text:
        The fully rendered prompt.

    Returns
    -------
    int
        Estimated token count, including chat-format overhead.
    """
    if not text:
        return _OVERHEAD_PER_PROMPT
    return len(_get_encoding().encode(text)) + _OVERHEAD_PER_PROMPT
