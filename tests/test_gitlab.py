from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import (
    GITLAB_HOST,
    GITLAB_TOKEN,
    not_found,
    ok,
    project_url,
    random_issue,
    random_project,
    random_readme,
    readme_url,
)
from gitlab_sync.core.http import RemoteServiceError
from gitlab_sync.core.schema import TimeWindow


def test_projects_follow_next_page_header(api, gitlab, window):
    first = [random_project(), random_project()]
    second = [random_project()]
    api.on(
        "GET",
        f"{GITLAB_HOST}/projects",
        ok(first, headers={"X-Next-Page": "2"}),
        ok(second, headers={"X-Next-Page": ""}),
    )

    projects = list(gitlab.projects(window))

    assert [p.id for p in projects] == [p["id"] for p in first + second]
    requests = api.calls("GET", f"{GITLAB_HOST}/projects")
    assert [r.url.params["page"] for r in requests] == ["1", "2"]
    params = requests[0].url.params
    assert params["membership"] == "true"
    assert params["last_activity_after"] == window.bounds()[0]
    assert params["last_activity_before"] == window.bounds()[1]
    assert requests[0].headers["Authorization"] == f"Bearer {GITLAB_TOKEN}"


def test_listing_is_lazy_and_restartable(api, gitlab, window):
    api.on("GET", f"{GITLAB_HOST}/projects/9/issues", ok([random_issue(9)]))

    issues = gitlab.issues(9, window)
    assert api.requests == []

    assert len(list(issues)) == 1
    assert len(list(issues)) == 1
    assert len(api.requests) == 2
    assert api.requests[0].url.params["scope"] == "all"


def test_pages_are_exposed_one_at_a_time(api, gitlab, window):
    api.on(
        "GET",
        f"{GITLAB_HOST}/projects/3/merge_requests",
        ok([random_issue(3), random_issue(3)], headers={"X-Next-Page": "2"}),
        ok([random_issue(3)]),
    )

    sizes = [len(page) for page in gitlab.merge_requests(3, window).pages()]

    assert sizes == [2, 1]


def test_failed_page_aborts_listing(api, gitlab, window):
    api.on(
        "GET",
        f"{GITLAB_HOST}/projects",
        ok([random_project()], headers={"X-Next-Page": "2"}),
        httpx.Response(500, text="boom"),
    )

    with pytest.raises(RemoteServiceError, match="because 500"):
        list(gitlab.projects(window))


def test_empty_window_issues_no_request(api, gitlab, window):
    empty = TimeWindow(start=window.start, end=window.start)

    assert list(gitlab.projects(empty)) == []
    assert list(gitlab.issues(1, empty)) == []
    assert api.requests == []


def test_sub_second_window_keeps_distinct_bounds(api, gitlab):
    start = datetime(2024, 5, 1, 0, 0, 0, 200000, tzinfo=timezone.utc)
    narrow = TimeWindow(start=start, end=start + timedelta(milliseconds=500))
    api.on("GET", f"{GITLAB_HOST}/projects", ok([]))

    list(gitlab.projects(narrow))

    params = api.calls("GET", f"{GITLAB_HOST}/projects")[0].url.params
    assert params["last_activity_after"] == "2024-05-01T00:00:00.200000Z"
    assert params["last_activity_before"] == "2024-05-01T00:00:00.700000Z"
    assert TimeWindow(start=start.replace(microsecond=0), end=start).bounds()[0] == "2024-05-01T00:00:00Z"


def test_lookup_returns_none_on_404(api, gitlab):
    api.on("GET", project_url(5), not_found())

    assert gitlab.project(5) is None


def test_lookup_raises_on_other_failures(api, gitlab):
    api.on("GET", f"{GITLAB_HOST}/projects/5/issues/2", httpx.Response(401, text="denied"))

    with pytest.raises(RemoteServiceError) as excinfo:
        gitlab.issue(5, 2)
    assert excinfo.value.status_code == 401
    assert "denied" in str(excinfo.value)


def test_readme_file_uses_configured_ref(api, gitlab):
    payload = random_readme("hello")
    api.on("GET", readme_url(8), ok(payload))

    file = gitlab.readme_file(8)

    assert file.blob_id == payload["blob_id"]
    assert api.requests[0].url.params["ref"] == "master"
