"""
Google Calendar / Tasks Service
Authenticated access to the two Google surfaces appointments are mirrored into:
the Tasks API (task lists + tasks) and the Calendar API (calendar list + events)
"""
import base64
import hashlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable, Optional
from urllib.parse import quote, urlencode

import httpx
from cryptography.fernet import Fernet, InvalidToken

from ..config import (
    GOOGLE_API_TIMEOUT_SECONDS,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    SECRET_KEY,
)
from ..domain.calendar_sync.errors import (
    ProviderError,
    StaleReferenceError,
    TokenRefreshError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_TASKS_API = "https://tasks.googleapis.com/tasks/v1"

GOOGLE_SYNC_SCOPES = [
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}
STALE_STATUS_CODES = {404, 410}


def _cipher_suite() -> Fernet:
    # Fernet needs 32 url-safe base64 bytes; derive them from SECRET_KEY
    key = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(key)


def encrypt_token(value: str) -> str:
    return _cipher_suite().encrypt(value.encode()).decode()


def decrypt_token(value: str) -> str:
    try:
        return _cipher_suite().decrypt(value.encode()).decode()
    except InvalidToken as e:
        raise TokenRefreshError("Stored Google token could not be decrypted") from e


@dataclass
class DoctorCredential:
    """Decrypted OAuth material for one doctor's Google account"""

    doctor_id: str
    refresh_token: str
    access_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    calendar_id: str = "primary"
    tasklist_id: str = "@default"


TokenSaver = Callable[[str, datetime], None]


def build_authorization_url(state: str) -> str:
    """Consent URL requesting offline access so Google returns a refresh token"""
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_SYNC_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(code: str, http_client: Optional[httpx.AsyncClient] = None) -> dict[str, Any]:
    """Exchange an authorization code for access + refresh tokens"""
    async with _maybe_client(http_client) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "redirect_uri": GOOGLE_REDIRECT_URI,
                "grant_type": "authorization_code",
            },
        )
    if response.status_code != 200:
        logger.error(f"❌ Token exchange failed: {response.text}")
        raise TokenRefreshError(f"Authorization code exchange failed ({response.status_code})")
    return response.json()


async def fetch_google_email(access_token: str, http_client: Optional[httpx.AsyncClient] = None) -> Optional[str]:
    async with _maybe_client(http_client) as client:
        response = await client.get(
            GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
        )
    if response.status_code != 200:
        logger.warning(f"⚠️ Failed to get Google user info: {response.text}")
        return None
    return response.json().get("email")


async def revoke_token(token: str, http_client: Optional[httpx.AsyncClient] = None) -> bool:
    async with _maybe_client(http_client) as client:
        response = await client.post(GOOGLE_REVOKE_URL, params={"token": token})
    return response.status_code == 200


@asynccontextmanager
async def _maybe_client(http_client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=GOOGLE_API_TIMEOUT_SECONDS) as client:
        yield client


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    if isinstance(error, str):
        return payload.get("error_description") or error
    return response.text[:200]


class GoogleWorkspaceClient:
    """
    Thin async wrapper over Google Tasks v1 and Calendar v3.

    Access tokens are refreshed from the doctor's refresh token when missing,
    within five minutes of expiry, or after a 401. ``on_token_refreshed`` lets the
    caller persist the new access token.
    """

    def __init__(
        self,
        credential: DoctorCredential,
        http_client: httpx.AsyncClient,
        on_token_refreshed: Optional[TokenSaver] = None,
    ):
        self.credential = credential
        self.http_client = http_client
        self.on_token_refreshed = on_token_refreshed

    @property
    def calendar_id(self) -> str:
        return self.credential.calendar_id or "primary"

    @property
    def tasklist_id(self) -> str:
        return self.credential.tasklist_id or "@default"

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def _token_is_fresh(self) -> bool:
        if not self.credential.access_token or not self.credential.token_expires_at:
            return False
        return self.credential.token_expires_at > datetime.utcnow() + timedelta(minutes=5)

    async def get_access_token(self, force_refresh: bool = False) -> str:
        if not force_refresh and self._token_is_fresh():
            return self.credential.access_token

        logger.info(f"🔄 Refreshing Google access token for doctor {self.credential.doctor_id}")
        try:
            response = await self.http_client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": GOOGLE_CLIENT_ID,
                    "client_secret": GOOGLE_CLIENT_SECRET,
                    "refresh_token": self.credential.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"Token refresh request failed: {e}") from e

        if response.status_code != 200:
            raise TokenRefreshError(
                f"Token refresh failed ({response.status_code}): {_error_message(response)}"
            )

        tokens = response.json()
        access_token = tokens.get("access_token")
        if not access_token:
            raise TokenRefreshError("No access token in refresh response")

        expires_at = datetime.utcnow() + timedelta(seconds=int(tokens.get("expires_in", 3600)))
        self.credential.access_token = access_token
        self.credential.token_expires_at = expires_at
        if self.on_token_refreshed:
            self.on_token_refreshed(access_token, expires_at)
        return access_token

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        targets_item: bool = False,
    ) -> Optional[dict[str, Any]]:
        response = await self._send(method, url, params=params, json=json)
        if response.status_code == 401:
            response = await self._send(method, url, params=params, json=json, force_refresh=True)

        if 200 <= response.status_code < 300:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        message = _error_message(response)
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientProviderError(response.status_code, message)
        if response.status_code in STALE_STATUS_CODES or (targets_item and response.status_code == 400):
            raise StaleReferenceError(response.status_code, message)
        raise ProviderError(response.status_code, message)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        force_refresh: bool = False,
    ) -> httpx.Response:
        token = await self.get_access_token(force_refresh=force_refresh)
        try:
            return await self.http_client.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise TransientProviderError(None, f"Timed out calling {method} {url}") from e
        except httpx.HTTPError as e:
            raise TransientProviderError(None, str(e)) from e

    # ------------------------------------------------------------------
    # Tasks surface
    # ------------------------------------------------------------------

    def _tasks_url(self, tasklist: str, task_id: Optional[str] = None) -> str:
        url = f"{GOOGLE_TASKS_API}/lists/{quote(tasklist, safe='@')}/tasks"
        if task_id is not None:
            url += f"/{quote(task_id, safe='')}"
        return url

    async def list_tasklists(self) -> list[dict[str, Any]]:
        data = await self._request("GET", f"{GOOGLE_TASKS_API}/users/@me/lists", params={"maxResults": 100})
        return list((data or {}).get("items") or [])

    async def list_tasks(
        self,
        tasklist: str,
        *,
        page_token: Optional[str] = None,
        max_results: int = 100,
        show_completed: bool = True,
        show_hidden: bool = True,
    ) -> tuple[list[dict[str, Any]], Optional[str]]:
        params: dict[str, Any] = {
            "maxResults": max_results,
            "showCompleted": str(show_completed).lower(),
            "showHidden": str(show_hidden).lower(),
        }
        if page_token:
            params["pageToken"] = page_token
        data = await self._request("GET", self._tasks_url(tasklist), params=params) or {}
        return list(data.get("items") or []), data.get("nextPageToken")

    async def get_task(self, tasklist: str, task_id: str) -> dict[str, Any]:
        return await self._request("GET", self._tasks_url(tasklist, task_id), targets_item=True) or {}

    async def insert_task(self, tasklist: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", self._tasks_url(tasklist), json=body) or {}

    async def update_task(self, tasklist: str, task_id: str, body: dict[str, Any]) -> dict[str, Any]:
        # PATCH: PUT requires the id echoed back in the body
        return (
            await self._request("PATCH", self._tasks_url(tasklist, task_id), json=body, targets_item=True)
            or {}
        )

    async def delete_task(self, tasklist: str, task_id: str) -> None:
        await self._request("DELETE", self._tasks_url(tasklist, task_id), targets_item=True)

    # ------------------------------------------------------------------
    # Events surface
    # ------------------------------------------------------------------

    def _events_url(self, calendar_id: str, event_id: Optional[str] = None) -> str:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='@')}/events"
        if event_id is not None:
            url += f"/{quote(event_id, safe='')}"
        return url

    async def list_calendars(self) -> list[dict[str, Any]]:
        data = await self._request(
            "GET", f"{GOOGLE_CALENDAR_API}/users/me/calendarList", params={"minAccessRole": "writer"}
        )
        return list((data or {}).get("items") or [])

    async def list_events(
        self,
        calendar_id: str,
        *,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        query: Optional[str] = None,
        page_token: Optional[str] = None,
        max_results: int = 50,
    ) -> tuple[list[dict[str, Any]], Optional[str]]:
        params: dict[str, Any] = {"maxResults": max_results, "singleEvents": "true"}
        if time_min:
            params["timeMin"] = time_min
        if time_max:
            params["timeMax"] = time_max
        if query:
            params["q"] = query
        if page_token:
            params["pageToken"] = page_token
        data = await self._request("GET", self._events_url(calendar_id), params=params) or {}
        return list(data.get("items") or []), data.get("nextPageToken")

    async def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any]:
        return await self._request("GET", self._events_url(calendar_id, event_id), targets_item=True) or {}

    async def insert_event(self, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return (
            await self._request(
                "POST", self._events_url(calendar_id), params={"sendUpdates": "none"}, json=body
            )
            or {}
        )

    async def update_event(self, calendar_id: str, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return (
            await self._request(
                "PATCH",
                self._events_url(calendar_id, event_id),
                params={"sendUpdates": "none"},
                json=body,
                targets_item=True,
            )
            or {}
        )

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        await self._request(
            "DELETE",
            self._events_url(calendar_id, event_id),
            params={"sendUpdates": "none"},
            targets_item=True,
        )


class GoogleClientFactory:
    """Opens a ``GoogleWorkspaceClient`` with a bounded-timeout httpx client"""

    def __init__(self, timeout: float = GOOGLE_API_TIMEOUT_SECONDS, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    @asynccontextmanager
    async def open(
        self,
        credential: DoctorCredential,
        on_token_refreshed: Optional[TokenSaver] = None,
    ) -> AsyncIterator[GoogleWorkspaceClient]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as http_client:
            yield GoogleWorkspaceClient(credential, http_client, on_token_refreshed)
