# promptboost/auth/pkce.py
"""
PKCE (RFC 7636) helpers.

The verifier is 32 cryptographically random bytes, base64url-encoded without
padding (43 characters). The S256 challenge is the base64url-encoded SHA-256
digest of the ASCII verifier, also without padding.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

import httpx

CHALLENGE_METHOD = "S256"
_VERIFIER_BYTES = 32


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    """Return a fresh high-entropy code verifier."""
    return _b64url(secrets.token_bytes(_VERIFIER_BYTES))


def code_challenge_for(verifier: str) -> str:
    """Derive the S256 code challenge for *verifier*."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def build_authorization_url(
    authorize_url: str,
    *,
    redirect_param: str,
    redirect_uri: str,
    code_challenge: str,
) -> str:
    """Embed the callback URL and the challenge in the authorization URL."""
    url = httpx.URL(authorize_url)
    params = url.params.merge(
        {
            redirect_param: redirect_uri,
            "code_challenge": code_challenge,
            "code_challenge_method": CHALLENGE_METHOD,
        }
    )
    return str(url.copy_with(params=params))


def parse_redirect(redirect_url: str) -> tuple[str | None, str | None]:
    """Return ``(code, error)`` from the terminal redirect URL's query string."""
    params = httpx.URL(redirect_url).params
    return params.get("code"), params.get("error")
