from __future__ import annotations

from typing import Any, Callable, Generic, Iterator, TypeVar
from urllib.parse import quote

import structlog
from pydantic import BaseModel

from gitlab_sync.core.http import HttpClient, raise_for_status
from gitlab_sync.core.schema import Issue, MergeRequest, Project, Readme, RepositoryFile, TimeWindow

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)


class Paginated(Generic[M]):
    """Lazy listing over a GitLab collection endpoint.

    Each iteration starts again from the first page and follows the
    ``X-Next-Page`` header until it is empty. The page cursor never leaves
    this object.
    """

    def __init__(
        self,
        fetch_page: Callable[[int], tuple[list[dict[str, Any]], str | None]],
        model: type[M],
        skip: bool = False,
    ) -> None:
        self._fetch_page = fetch_page
        self._model = model
        self._skip = skip

    def pages(self) -> Iterator[list[M]]:
        if self._skip:
            return
        page: int | None = 1
        while page is not None:
            rows, next_page = self._fetch_page(page)
            yield [self._model.model_validate(row) for row in rows]
            page = int(next_page) if next_page else None

    def __iter__(self) -> Iterator[M]:
        for page in self.pages():
            yield from page


class GitLabClient:
    """Read-only access to the GitLab REST API (v4)."""

    def __init__(
        self,
        http: HttpClient,
        per_page: int = 100,
        readme_path: str = "README.md",
        readme_ref: str = "master",
    ) -> None:
        self.http = http
        self.per_page = per_page
        self.readme_path = readme_path
        self.readme_ref = readme_ref

    def projects(self, window: TimeWindow) -> Paginated[Project]:
        after, before = window.bounds()
        return self._paginate(
            "/projects",
            Project,
            {"membership": "true", "last_activity_after": after, "last_activity_before": before},
            skip=window.is_empty,
        )

    def issues(self, project_id: int, window: TimeWindow) -> Paginated[Issue]:
        after, before = window.bounds()
        return self._paginate(
            f"/projects/{project_id}/issues",
            Issue,
            {"updated_after": after, "updated_before": before, "scope": "all"},
            skip=window.is_empty,
        )

    def merge_requests(self, project_id: int, window: TimeWindow) -> Paginated[MergeRequest]:
        after, before = window.bounds()
        return self._paginate(
            f"/projects/{project_id}/merge_requests",
            MergeRequest,
            {"updated_after": after, "updated_before": before, "scope": "all"},
            skip=window.is_empty,
        )

    def project(self, project_id: int | str) -> Project | None:
        data = self._find(f"/projects/{project_id}", "look up project")
        return Project.model_validate(data) if data is not None else None

    def issue(self, project_id: int | str, iid: int | str) -> Issue | None:
        data = self._find(f"/projects/{project_id}/issues/{iid}", "look up issue")
        return Issue.model_validate(data) if data is not None else None

    def merge_request(self, project_id: int | str, iid: int | str) -> MergeRequest | None:
        data = self._find(f"/projects/{project_id}/merge_requests/{iid}", "look up merge request")
        return MergeRequest.model_validate(data) if data is not None else None

    def readme_file(self, project_id: int | str) -> RepositoryFile | None:
        data = self._find(
            f"/projects/{project_id}/repository/files/{quote(self.readme_path, safe='')}",
            "fetch README",
            params={"ref": self.readme_ref},
        )
        return RepositoryFile.model_validate(data) if data is not None else None

    def readme(self, project: Project) -> Readme | None:
        file = self.readme_file(project.id)
        return Readme.from_file(project, file) if file is not None else None

    def _find(self, path: str, operation: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        resp = self.http.get(path, params=params)
        if resp.status_code == 404:
            logger.debug("gitlab.not_found", path=path)
            return None
        raise_for_status(resp, f"{operation} {path}")
        return resp.json()

    def _paginate(self, path: str, model: type[M], params: dict[str, Any], skip: bool) -> Paginated[M]:
        def fetch_page(page: int) -> tuple[list[dict[str, Any]], str | None]:
            resp = self.http.get(path, params={**params, "per_page": self.per_page, "page": page})
            raise_for_status(resp, f"list {path} page {page}")
            logger.debug("gitlab.page_fetched", path=path, page=page)
            return resp.json(), resp.headers.get("X-Next-Page") or None

        return Paginated(fetch_page, model, skip=skip)

    def close(self) -> None:
        self.http.close()
