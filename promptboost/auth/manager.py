# promptboost/auth/manager.py
"""
AuthenticationManager — provider credential checks and the OAuth PKCE flow.

Flow stages
-----------
IDLE → VERIFIER_GENERATED → AUTHORIZATION_PENDING → CODE_RECEIVED
     → TOKEN_EXCHANGED | FAILED

1. A fresh verifier/challenge pair is generated and the verifier is stored as
   the single live OAuthFlowState (overwriting anything stale).
2. The authorization URL is handed to a caller-supplied *launcher* coroutine
   (the host's interactive-redirect mechanism). The launcher either returns
   the terminal redirect URL itself or returns None and lets the host deliver
   it later through deliver_redirect().
3. The redirect's ``code`` / ``error`` query parameters are checked.
4. The code is exchanged for a key at the provider's token endpoint.
5. The stored state is deleted on every terminal transition: success,
   error, timeout and cancellation.

Only one authorize() flow per provider is in flight: starting a new one
cancels the previous redirect wait or token exchange. The redirect wait is
bounded by a timeout and either stage can be cancelled with cancel()
independently of any API call.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

import httpx

from ..constants import OAUTH_TIMEOUT_SECONDS, REQUEST_TIMEOUT_SECONDS
from ..exceptions import AuthenticationError, OAuthError
from ..models import (
    AuthorizationRequest,
    ConnectionTestResult,
    OAuthCredential,
    OAuthEndpoints,
    OAuthFlowState,
    ProviderConfig,
)
from ..providers.base import extract_error_message
from ..state.base import AbstractFlowStore
from ..state.memory import InMemoryFlowStore
from .pkce import build_authorization_url, code_challenge_for, generate_code_verifier, parse_redirect

if TYPE_CHECKING:
    from ..providers.base import BaseProvider
    from ..providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

Launcher = Callable[[str], Awaitable["str | None"]]
"""Receives the authorization URL; returns the terminal redirect URL or None."""


class FlowStage(str, Enum):
    IDLE = "idle"
    VERIFIER_GENERATED = "verifier_generated"
    AUTHORIZATION_PENDING = "authorization_pending"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    FAILED = "failed"


@dataclass
class _FlowHandle:
    verifier: str
    stage: FlowStage = FlowStage.VERIFIER_GENERATED
    waiter: asyncio.Future | None = None
    exchange: asyncio.Future | None = None
    cancel_requested: bool = False
    redirect: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future())


class AuthenticationManager:
    """
    Handles provider authentication and OAuth PKCE flows.

    Parameters
    ----------
    registry:
        Used to look up each provider's OAuth endpoints from its descriptor.
    store:
        Where the live OAuthFlowState is kept. Defaults to an in-memory store.
    http_client:
        Client for the token exchange. One is created lazily if omitted.
    timeout:
        Default bound, in seconds, on waiting for the authorization redirect.
    oauth_endpoints:
        Explicit endpoints per provider id; take precedence over the registry.
    """

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        store: AbstractFlowStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = OAUTH_TIMEOUT_SECONDS,
        oauth_endpoints: dict[str, OAuthEndpoints] | None = None,
    ) -> None:
        self._registry = registry
        self._store = store if store is not None else InMemoryFlowStore()
        self._http = http_client
        self._owns_http = http_client is None
        self._timeout = timeout
        self._endpoints = dict(oauth_endpoints or {})
        self._flows: dict[str, _FlowHandle] = {}

    # ------------------------------------------------------------------
    # Provider credentials
    # ------------------------------------------------------------------

    async def validate_credentials(
        self, provider: BaseProvider, config: ProviderConfig
    ) -> ConnectionTestResult:
        """Check *config* statically, then probe the provider with it."""
        logger.debug("Validating credentials for %s", provider.id)
        validation = provider.validate_config(config)
        if not validation.is_valid:
            raise AuthenticationError(
                "; ".join(validation.errors), provider=provider.id
            )
        return await provider.test_connection(config)

    async def authenticate_provider(
        self, provider: BaseProvider, config: ProviderConfig | None = None
    ) -> bool:
        """Authenticate *provider*; errors propagate unchanged."""
        logger.debug("Authenticating with %s", provider.id)
        result = await provider.authenticate(config)
        logger.info("Successfully authenticated with %s", provider.id)
        return result

    async def refresh_authentication(
        self, provider: BaseProvider, config: ProviderConfig | None = None
    ) -> bool:
        """Drop the current authenticated state and authenticate again."""
        logger.debug("Refreshing authentication for %s", provider.id)
        provider.reset_authentication()
        return await self.authenticate_provider(provider, config)

    # ------------------------------------------------------------------
    # OAuth PKCE flow
    # ------------------------------------------------------------------

    def endpoints_for(self, provider: str) -> OAuthEndpoints:
        if provider in self._endpoints:
            return self._endpoints[provider]
        if self._registry is not None:
            descriptor = self._registry.descriptor(provider)
            if descriptor is not None and descriptor.oauth is not None:
                return descriptor.oauth
        raise OAuthError(f"Provider '{provider}' does not support OAuth", provider=provider)

    def stage(self, provider: str) -> FlowStage:
        """Stage of the most recent flow for *provider*."""
        handle = self._flows.get(provider)
        return handle.stage if handle is not None else FlowStage.IDLE

    async def start_flow(
        self, provider: str, redirect_uri: str | None = None
    ) -> AuthorizationRequest:
        """
        Generate PKCE material, persist the flow state and build the URL.

        Use this when the host drives the redirect itself and later calls
        handle_callback(); authorize() wraps the whole round trip.
        """
        request, _ = await self._begin(provider, redirect_uri)
        return request

    async def authorize(
        self,
        provider: str,
        launcher: Launcher,
        *,
        redirect_uri: str | None = None,
        timeout: float | None = None,
    ) -> OAuthCredential:
        """
        Run one complete authorization round trip and return the credential.

        Raises
        ------
        OAuthError
            On a reported error, a missing code, a failed exchange, a timeout
            ("timed out") or a cancellation ("cancelled"). The flow state has
            already been deleted when it is raised.
        """
        timeout = self._timeout if timeout is None else timeout
        self.cancel(provider)

        request, verifier = await self._begin(provider, redirect_uri)
        handle = self._flows[provider]
        waiter = asyncio.ensure_future(self._await_redirect(handle, launcher, request.url))
        handle.waiter = waiter
        handle.stage = FlowStage.AUTHORIZATION_PENDING

        try:
            done, _ = await asyncio.wait({waiter}, timeout=timeout)
            if not done:
                raise OAuthError("Authorization timed out", provider=provider)
            if waiter.cancelled():
                raise OAuthError("Authorization cancelled", provider=provider)
            exc = waiter.exception()
            if exc is not None:
                raise OAuthError(
                    f"Authorization redirect failed: {exc}", provider=provider
                ) from exc

            code = self._extract_code(provider, waiter.result(), handle)
            handle.exchange = asyncio.ensure_future(
                self.exchange_code(provider, code, verifier, request.redirect_uri)
            )
            try:
                credential = await handle.exchange
            except asyncio.CancelledError:
                if not handle.cancel_requested:
                    raise
                raise OAuthError("Authorization cancelled", provider=provider) from None
        except BaseException:
            handle.stage = FlowStage.FAILED
            logger.warning("OAuth flow for %s failed", provider)
            raise
        finally:
            for task in (waiter, handle.exchange):
                if task is not None and not task.done():
                    task.cancel()
            await self._store.clear(provider=provider, code_verifier=verifier)

        handle.stage = FlowStage.TOKEN_EXCHANGED
        logger.info("OAuth flow for %s completed", provider)
        return credential

    def deliver_redirect(self, provider: str, redirect_url: str) -> bool:
        """
        Hand the terminal redirect URL to a pending authorize() call.

        Returns False if no flow for *provider* is waiting for one.
        """
        handle = self._flows.get(provider)
        if handle is None or handle.redirect.done():
            return False
        handle.redirect.set_result(redirect_url)
        return True

    def cancel(self, provider: str) -> bool:
        """Cancel the pending redirect wait or token exchange for *provider*, if any."""
        handle = self._flows.get(provider)
        if handle is None:
            return False
        pending = [
            task
            for task in (handle.waiter, handle.exchange)
            if task is not None and not task.done()
        ]
        if not pending:
            return False
        handle.cancel_requested = True
        for task in pending:
            task.cancel()
        logger.debug("Cancelled pending OAuth flow for %s", provider)
        return True

    async def handle_callback(
        self,
        provider: str,
        redirect_url: str,
        redirect_uri: str | None = None,
    ) -> OAuthCredential:
        """Complete a flow started with start_flow() using the stored verifier."""
        state = await self._store.load()
        handle = self._flows.get(provider)
        try:
            if state is None or state.provider != provider:
                raise OAuthError("Invalid OAuth state", provider=provider)
            if time.time() - state.created_at > self._timeout:
                raise OAuthError("OAuth flow expired", provider=provider)

            code = self._extract_code(provider, redirect_url, handle)
            endpoints = self.endpoints_for(provider)
            credential = await self.exchange_code(
                provider,
                code,
                state.code_verifier,
                redirect_uri or endpoints.redirect_uri,
            )
        except BaseException:
            if handle is not None:
                handle.stage = FlowStage.FAILED
            raise
        finally:
            if state is not None and state.provider == provider:
                await self._store.clear(provider=provider, code_verifier=state.code_verifier)

        if handle is not None:
            handle.stage = FlowStage.TOKEN_EXCHANGED
        return credential

    async def exchange_code(
        self,
        provider: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> OAuthCredential:
        """POST the code and verifier to the token endpoint."""
        endpoints = self.endpoints_for(provider)
        try:
            response = await self._client().post(
                endpoints.token_url,
                json={
                    "code": code,
                    "code_verifier": code_verifier,
                    "redirect_uri": redirect_uri,
                },
            )
        except httpx.HTTPError as exc:
            raise OAuthError(f"Token exchange failed: {exc}", provider=provider) from exc

        if response.is_error:
            message = extract_error_message(
                response,
                default=f"Token exchange failed: HTTP {response.status_code} {response.reason_phrase}",
            )
            raise OAuthError(message, provider=provider, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise OAuthError("Token exchange returned invalid JSON", provider=provider) from exc

        token = data.get("key") or data.get("access_token")
        if not token:
            raise OAuthError("Token exchange response did not include a key", provider=provider)
        user_id = data.get("user_id")
        return OAuthCredential(
            provider=provider,
            token=token,
            user_id=str(user_id) if user_id is not None else None,
        )

    async def clear_oauth_state(self, provider: str) -> bool:
        """Delete the stored flow state if it belongs to *provider*."""
        return await self._store.clear(provider=provider)

    async def close(self) -> None:
        for provider in list(self._flows):
            self.cancel(provider)
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _begin(
        self, provider: str, redirect_uri: str | None
    ) -> tuple[AuthorizationRequest, str]:
        endpoints = self.endpoints_for(provider)
        redirect_uri = redirect_uri or endpoints.redirect_uri

        verifier = generate_code_verifier()
        challenge = code_challenge_for(verifier)
        await self._store.save(
            OAuthFlowState(provider=provider, code_verifier=verifier),
            ttl_seconds=self._timeout,
        )
        self._flows[provider] = _FlowHandle(verifier=verifier)

        url = build_authorization_url(
            endpoints.authorize_url,
            redirect_param=endpoints.redirect_param,
            redirect_uri=redirect_uri,
            code_challenge=challenge,
        )
        logger.info("Starting OAuth flow for %s (redirect %s)", provider, redirect_uri)
        request = AuthorizationRequest(
            provider=provider,
            url=url,
            code_challenge=challenge,
            redirect_uri=redirect_uri,
        )
        return request, verifier

    @staticmethod
    async def _await_redirect(handle: _FlowHandle, launcher: Launcher, url: str) -> str:
        redirect_url = await launcher(url)
        if redirect_url is not None:
            return redirect_url
        return await handle.redirect

    @staticmethod
    def _extract_code(provider: str, redirect_url: str, handle: _FlowHandle | None) -> str:
        try:
            code, error = parse_redirect(redirect_url)
        except httpx.InvalidURL as exc:
            raise OAuthError("Invalid redirect URL", provider=provider) from exc
        if error:
            raise OAuthError(f"OAuth error: {error}", provider=provider)
        if not code:
            raise OAuthError("No authorization code received", provider=provider)
        if handle is not None:
            handle.stage = FlowStage.CODE_RECEIVED
        return code

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
        return self._http
