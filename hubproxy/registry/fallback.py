"""Anonymous-first request execution with a single authenticated retry."""

from typing import Any, Awaitable, Callable, Dict, Optional

from hubproxy.logging_config import configure_module_logging
from hubproxy.registry.auth import CredentialExchanger
from hubproxy.registry.exceptions import AuthenticationFailed, HubError, UpstreamError
from hubproxy.registry.models import TokenKind

logger = configure_module_logging("fallback")

# Receives extra headers, None for the anonymous attempt
RequestFn = Callable[[Optional[Dict[str, str]]], Awaitable[Any]]


class FallbackExecutor:
    """
    Runs an upstream request anonymously and, on an auth-shaped failure,
    once more with a token derived from the configured credential.
    """

    def __init__(self, exchanger: CredentialExchanger, escalate_on_not_found: bool = True):
        self._exchanger = exchanger
        self.escalate_on_not_found = escalate_on_not_found

    def _escalates(self, error: UpstreamError) -> bool:
        if error.status_code == 401:
            return True
        return error.status_code == 404 and self.escalate_on_not_found

    async def execute(
        self,
        request: RequestFn,
        scope: str,
        kind: TokenKind = TokenKind.HUB,
    ) -> Any:
        """
        Execute request with authentication fallback.

        Args:
            request: Coroutine function taking optional extra headers
            scope: Resource scope used for the token exchange
            kind: Which token type the upstream API accepts

        Returns:
            Result of the anonymous attempt, or of the authenticated retry

        Raises:
            AuthenticationFailed: A credential was needed and could not be used
            HubError: Any failure that does not call for authentication
        """
        try:
            return await request(None)
        except UpstreamError as e:
            if not self._escalates(e):
                raise
            if not self._exchanger.has_credential:
                if e.status_code == 401:
                    raise AuthenticationFailed(
                        f"Credential required for {scope}: {e}"
                    ) from e
                raise
            anonymous_error = e

        logger.info(
            f"Anonymous request for {scope} failed with HTTP "
            f"{anonymous_error.status_code}, retrying with {kind.value} token"
        )

        result = await self._exchanger.token_for(kind, scope)
        if not result.ok:
            raise AuthenticationFailed(
                f"Credential exchange failed for {scope}: {result.error}"
            ) from anonymous_error

        headers = {"Authorization": self._exchanger.authorization_header(kind, result.token)}
        try:
            return await request(headers)
        except HubError as e:
            raise AuthenticationFailed(f"Authenticated request for {scope} failed: {e}") from e
