import json
from datetime import datetime, timedelta

import httpx
import pytest

from app.domain.calendar_sync.errors import (
    ProviderError,
    StaleReferenceError,
    TokenRefreshError,
    TransientProviderError,
)
from app.services.google_calendar_service import (
    GOOGLE_CALENDAR_API,
    GOOGLE_TASKS_API,
    GOOGLE_TOKEN_URL,
    DoctorCredential,
    GoogleClientFactory,
    GoogleWorkspaceClient,
    build_authorization_url,
    decrypt_token,
    encrypt_token,
)


def _credential(**overrides) -> DoctorCredential:
    fields = dict(doctor_id="D", refresh_token="rtok")
    fields.update(overrides)
    return DoctorCredential(**fields)


def _fresh_credential(**overrides) -> DoctorCredential:
    return _credential(access_token="cached", token_expires_at=datetime.utcnow() + timedelta(hours=1), **overrides)


class TestTokens:
    def test_encrypted_tokens_decrypt(self):
        assert decrypt_token(encrypt_token("refresh-token")) == "refresh-token"

    def test_tampered_token_is_a_refresh_error(self):
        with pytest.raises(TokenRefreshError):
            decrypt_token("not-a-fernet-token")

    def test_authorization_url_requests_offline_access(self):
        url = httpx.URL(build_authorization_url("state-123"))

        assert url.params["access_type"] == "offline"
        assert url.params["prompt"] == "consent"
        assert url.params["state"] == "state-123"
        assert "https://www.googleapis.com/auth/tasks" in url.params["scope"].split(" ")


class TestGoogleWorkspaceClient:
    async def test_refreshes_missing_access_token_and_saves_it(self):
        requests: list[httpx.Request] = []
        saved = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if str(request.url) == GOOGLE_TOKEN_URL:
                return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})
            return httpx.Response(200, json={"items": [{"id": "@default", "title": "My Tasks"}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleWorkspaceClient(_credential(), http_client, lambda token, expires: saved.append(token))
            tasklists = await client.list_tasklists()

        assert tasklists == [{"id": "@default", "title": "My Tasks"}]
        assert saved == ["tok-1"]
        assert requests[1].headers["Authorization"] == "Bearer tok-1"

    async def test_retries_once_after_unauthorized(self):
        calls = {"token": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == GOOGLE_TOKEN_URL:
                calls["token"] += 1
                return httpx.Response(200, json={"access_token": "tok-new", "expires_in": 3600})
            if request.headers["Authorization"] == "Bearer cached":
                return httpx.Response(401, json={"error": {"message": "Invalid Credentials"}})
            return httpx.Response(200, json={"id": "task-1", "title": "x"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleWorkspaceClient(_fresh_credential(), http_client)
            task = await client.get_task("@default", "task-1")

        assert task["id"] == "task-1"
        assert calls["token"] == 1

    async def test_rejected_refresh_token(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Token has been revoked"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleWorkspaceClient(_credential(), http_client)
            with pytest.raises(TokenRefreshError, match="revoked"):
                await client.list_calendars()

    @pytest.mark.parametrize(
        "status, error",
        [
            (404, StaleReferenceError),
            (410, StaleReferenceError),
            (400, StaleReferenceError),
            (403, ProviderError),
            (429, TransientProviderError),
            (503, TransientProviderError),
        ],
    )
    async def test_status_codes_map_to_errors(self, status, error):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": {"message": "nope"}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleWorkspaceClient(_fresh_credential(), http_client)
            with pytest.raises(error) as excinfo:
                await client.get_event("primary", "evt-1")

        assert excinfo.value.status_code == status
        if error is ProviderError:
            assert not isinstance(excinfo.value, (StaleReferenceError, TransientProviderError))

    async def test_timeouts_are_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleWorkspaceClient(_fresh_credential(), http_client)
            with pytest.raises(TransientProviderError):
                await client.list_tasks("@default")

    async def test_updates_are_patches_without_notifications(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "evt-1"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleWorkspaceClient(_fresh_credential(), http_client)
            await client.update_event("primary", "evt-1", {"colorId": "10"})

        [request] = requests
        assert request.method == "PATCH"
        assert str(request.url).startswith(f"{GOOGLE_CALENDAR_API}/calendars/primary/events/evt-1")
        assert request.url.params["sendUpdates"] == "none"
        assert json.loads(request.content) == {"colorId": "10"}

    async def test_list_tasks_pages_and_includes_hidden(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"items": [{"id": "t1"}], "nextPageToken": "p2"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleWorkspaceClient(_fresh_credential(), http_client)
            items, next_token = await client.list_tasks("@default", page_token="p1")

        assert items == [{"id": "t1"}]
        assert next_token == "p2"
        params = requests[0].url.params
        assert str(requests[0].url).startswith(f"{GOOGLE_TASKS_API}/lists/@default/tasks")
        assert (params["showCompleted"], params["showHidden"], params["pageToken"]) == ("true", "true", "p1")

    async def test_delete_returns_none_on_no_content(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GoogleWorkspaceClient(_fresh_credential(), http_client)
            assert await client.delete_task("@default", "t1") is None


class TestGoogleClientFactory:
    async def test_open_uses_injected_transport(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": []})

        factory = GoogleClientFactory(timeout=1, transport=httpx.MockTransport(handler))
        async with factory.open(_fresh_credential(calendar_id="team@group.calendar.google.com")) as client:
            assert client.calendar_id == "team@group.calendar.google.com"
            assert await client.list_calendars() == []
