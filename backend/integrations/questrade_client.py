"""Questrade REST API client.

Thin transport over httpx: issues GET requests (with an optional bearer
token), maps failures onto the agent's exception hierarchy and decodes
response bodies into the pydantic schemas.  The client holds no token
state of its own; callers pass the live :class:`Token` on every
authenticated call.
"""

import logging
from datetime import datetime

import httpx
from pydantic import BaseModel, ValidationError

from config import settings
from integrations.exceptions import AuthError, NetworkError, ParseError
from integrations.parsing_utils import format_rfc3339
from schemas.questrade import AccountsResponse, ActivitiesResponse, Activity, Token

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth2/token"
ACCOUNTS_PATH = "v1/accounts"


class QuestradeClient:
    """Wrapper around the Questrade OAuth and account endpoints."""

    def __init__(
        self,
        login_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ):
        """Initialize the client.

        Args:
            login_url: OAuth server base URL (defaults to settings).
            timeout: Request timeout in seconds (defaults to settings).
            http_client: Pre-built httpx client, mainly for tests.
        """
        self._login_url = (login_url or settings.QUESTRADE_LOGIN_URL).rstrip("/")
        if http_client is None:
            http_client = httpx.Client(
                timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            )
        self._client = http_client

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    @property
    def provider_name(self) -> str:
        return "Questrade"

    def _get(
        self,
        url: str,
        *,
        params: dict[str, str] | None = None,
        token: Token | None = None,
    ) -> httpx.Response:
        """Send a GET, adding the bearer header when a token is given.

        Only the URL without its query string is logged, since the OAuth
        request carries the refresh token as a parameter.
        """
        headers = {}
        if token is not None:
            headers["Authorization"] = f"Bearer {token.access_token}"

        logger.debug("Sending GET to %s", url)
        try:
            return self._client.get(url, params=params, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc

    def _authenticated_get(
        self, token: Token, path: str, params: dict[str, str] | None = None
    ) -> bytes:
        url = f"{token.api_server}{path}"
        response = self._get(url, params=params, token=token)
        status = response.status_code
        if status != 200:
            raise NetworkError(
                f"Questrade returned HTTP {status} for {path}",
                status_code=status,
            )
        return response.content

    @staticmethod
    def _parse(model: type[BaseModel], body: bytes, what: str):
        try:
            return model.model_validate_json(body)
        except ValidationError as exc:
            raise ParseError(f"Could not parse {what} response: {exc}") from exc

    def exchange_refresh_token(self, refresh_token: str) -> Token:
        """Trade a refresh token for a fresh token bundle.

        The server invalidates ``refresh_token`` as soon as it answers,
        so the returned token is the only usable credential afterwards.

        Raises:
            AuthError: Non-200 status or an unparsable payload.
            NetworkError: The request never got a response.
        """
        url = f"{self._login_url}{TOKEN_PATH}"
        response = self._get(
            url,
            params={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        if response.status_code != 200:
            raise AuthError(
                f"Token exchange rejected (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        try:
            token = Token.model_validate_json(response.content)
        except ValidationError as exc:
            raise AuthError(f"Token exchange returned an unparsable payload: {exc}") from exc

        logger.info("Obtained new token (api server %s)", token.api_server)
        return token

    def get_accounts(self, token: Token) -> AccountsResponse:
        """Fetch the user's accounts."""
        body = self._authenticated_get(token, ACCOUNTS_PATH)
        accounts = self._parse(AccountsResponse, body, "accounts")
        logger.info("Questrade: fetched %d accounts", len(accounts.accounts))
        return accounts

    def get_activities(
        self,
        token: Token,
        account_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Activity]:
        """Fetch one window of account activities.

        The endpoint rejects ranges longer than 31 days, so callers page
        through history window by window.
        """
        path = f"{ACCOUNTS_PATH}/{account_id}/activities"
        params = {
            "startTime": format_rfc3339(start),
            "endTime": format_rfc3339(end),
        }
        body = self._authenticated_get(token, path, params)
        response = self._parse(ActivitiesResponse, body, "activities")
        logger.debug(
            "Questrade: %d activities for %s between %s and %s",
            len(response.activities), account_id, params["startTime"], params["endTime"],
        )
        return response.activities
