"""Shared fixtures: a fake HTTP backend for GitLab and Workplace Search."""

from __future__ import annotations

import base64
import json
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest

from gitlab_sync.connectors.gitlab import GitLabClient
from gitlab_sync.connectors.workplace_search import WorkplaceSearchClient
from gitlab_sync.core.http import HttpClient
from gitlab_sync.core.schema import TimeWindow
from gitlab_sync.sync.engine import GitLabIndexer

GITLAB_HOST = "https://gitlab.test/api/v4"
GITLAB_TOKEN = "gitlab-token"
WS_HOST = "https://ws.test"
ACCESS_TOKEN = "ws-access-token"
SEARCH_TOKEN = "ws-search-token"
CONTENT_SOURCE_ID = "cs-123"

BULK_CREATE_URL = f"{WS_HOST}/api/ws/v1/sources/{CONTENT_SOURCE_ID}/documents/bulk_create"
BULK_DESTROY_URL = f"{WS_HOST}/api/ws/v1/sources/{CONTENT_SOURCE_ID}/documents/bulk_destroy"
SEARCH_URL = f"{WS_HOST}/api/ws/v1/search"

Responder = httpx.Response | Callable[[httpx.Request], httpx.Response]


class FakeApi:
    """Routes requests by method and URL (query string ignored) to canned responses."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Responder]] = {}
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def on(self, method: str, url: str, *responses: Responder) -> None:
        self.routes[(method, url)] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        with self._lock:
            self.requests.append(request)
            queue = self.routes.get(key)
            if not queue:
                return httpx.Response(599, text=f"unexpected request {key}")
            responder = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(responder):
            return responder(request)
        return httpx.Response(responder.status_code, headers=responder.headers, content=responder.content)

    def session_factory(self, **kwargs: Any) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), **kwargs)

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and f"{r.url.scheme}://{r.url.host}{r.url.path}" == url
        ]

    def bodies(self, method: str, url: str) -> list[Any]:
        return [json.loads(r.content) for r in self.calls(method, url)]


def random_integer() -> int:
    return secrets.randbelow(1_000_000) + 1


def random_string() -> str:
    return secrets.token_hex(8)


def _iso(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def random_project() -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    slug = random_string()
    return {
        "id": random_integer(),
        "name": random_string(),
        "description": random_string(),
        "created_at": _iso(now - timedelta(weeks=1)),
        "last_activity_at": _iso(now - timedelta(hours=6)),
        "web_url": f"https://gitlab.test/{slug}",
        "readme_url": f"https://gitlab.test/{slug}/-/blob/master/README.md",
    }


def _random_activity(project_id: int) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "id": random_integer(),
        "iid": random_integer(),
        "project_id": project_id,
        "title": random_string(),
        "description": random_string(),
        "created_at": _iso(now - timedelta(weeks=1)),
        "updated_at": _iso(now - timedelta(hours=6)),
        "web_url": f"https://gitlab.test/{random_string()}",
    }


def random_issue(project_id: int | None = None) -> dict[str, Any]:
    return _random_activity(project_id or random_integer())


def random_merge_request(project_id: int | None = None) -> dict[str, Any]:
    return _random_activity(project_id or random_integer())


def random_readme(text: str | None = None) -> dict[str, Any]:
    body = text if text is not None else random_string()
    return {
        "blob_id": random_string(),
        "file_name": "README.md",
        "size": len(body),
        "encoding": "base64",
        "content": base64.b64encode(body.encode("utf-8")).decode("ascii"),
    }


def stored_hit(doc_id: Any, doc_type: str, gitlab_id: Any = None, project_id: Any = None) -> dict[str, Any]:
    return {
        "id": {"raw": doc_id},
        "gitlab_id": {"raw": gitlab_id},
        "project_id": {"raw": project_id},
        "type": {"raw": doc_type},
    }


def project_url(project_id: Any) -> str:
    return f"{GITLAB_HOST}/projects/{project_id}"


def readme_url(project_id: Any) -> str:
    return f"{GITLAB_HOST}/projects/{project_id}/repository/files/README.md"


def ok(payload: Any = None, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(200, json={} if payload is None else payload, headers=headers)


def not_found() -> httpx.Response:
    return httpx.Response(404, json={"message": "404 Not Found"})


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def window() -> TimeWindow:
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return TimeWindow(start=now - timedelta(days=1), end=now - timedelta(hours=1))


@pytest.fixture
def gitlab(api: FakeApi) -> GitLabClient:
    return GitLabClient(HttpClient(GITLAB_HOST, token=GITLAB_TOKEN, session_factory=api.session_factory))


@pytest.fixture
def store(api: FakeApi) -> WorkplaceSearchClient:
    return WorkplaceSearchClient(
        HttpClient(WS_HOST, token=ACCESS_TOKEN, session_factory=api.session_factory),
        HttpClient(WS_HOST, token=SEARCH_TOKEN, session_factory=api.session_factory),
    )


@pytest.fixture
def indexer(gitlab: GitLabClient, store: WorkplaceSearchClient) -> GitLabIndexer:
    return GitLabIndexer(gitlab, store, CONTENT_SOURCE_ID, probe_workers=1)
