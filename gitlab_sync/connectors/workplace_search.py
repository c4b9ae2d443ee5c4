from __future__ import annotations

from typing import Any, Sequence

import structlog

from gitlab_sync.core.http import HttpClient, raise_for_status
from gitlab_sync.core.schema import NormalizedDocument, StoredDocument, TimeWindow

logger = structlog.get_logger()

SOURCES_PATH = "/api/ws/v1/sources"
SEARCH_PATH = "/api/ws/v1/search"
# Largest result page the search endpoint serves.
MAX_SEARCH_PAGE_SIZE = 1000

CONTENT_SOURCE_SCHEMA = {
    "name": "text",
    "description": "text",
    "created_at": "date",
    "last_activity_at": "date",
    "url": "text",
    "content": "text",
    "project_id": "text",
    "gitlab_id": "text",
    "type": "text",
}

CONTENT_SOURCE_DISPLAY = {
    "title_field": "name",
    "description_field": "description",
    "url_field": "url",
    "detail_fields": [
        {"field_name": "description", "label": "Description"},
        {"field_name": "content", "label": "Content"},
        {"field_name": "created_at", "label": "Created At"},
        {"field_name": "last_activity_at", "label": "Updated At"},
    ],
}


class WorkplaceSearchClient:
    """Document store operations scoped to Workplace Search content sources.

    Bulk calls raise on a non-success status. Per-document failures inside a
    successful bulk response are only logged: the batch status is what counts.
    """

    def __init__(self, http: HttpClient, search_http: HttpClient | None = None) -> None:
        self.http = http
        self.search_http = search_http or http

    def bulk_upsert(self, content_source_id: str, documents: Sequence[NormalizedDocument]) -> list[dict[str, Any]]:
        resp = self.http.post(
            f"{SOURCES_PATH}/{content_source_id}/documents/bulk_create",
            [doc.to_api() for doc in documents],
        )
        raise_for_status(resp, f"index batch of {len(documents)} documents")
        results = _results(resp)
        failed = [r.get("id") for r in results if r.get("errors")]
        if failed:
            logger.warning("workplace_search.upsert_partial_failure", content_source_id=content_source_id, ids=failed)
        return results

    def bulk_delete(self, content_source_id: str, ids: Sequence[str]) -> list[dict[str, Any]]:
        resp = self.http.post(
            f"{SOURCES_PATH}/{content_source_id}/documents/bulk_destroy",
            list(ids),
        )
        raise_for_status(resp, f"delete batch of {len(ids)} documents")
        results = _results(resp)
        failed = [r.get("id") for r in results if r.get("success") is False]
        if failed:
            logger.warning("workplace_search.delete_partial_failure", content_source_id=content_source_id, ids=failed)
        return results

    def search(
        self, content_source_id: str, window: TimeWindow, page_size: int = MAX_SEARCH_PAGE_SIZE
    ) -> list[StoredDocument]:
        if window.is_empty:
            return []
        start, end = window.bounds()
        query = {
            "filters": {
                "all": [
                    {"content_source_id": content_source_id},
                    {"last_activity_at": {"from": start, "to": end}},
                ]
            },
            "result_fields": {
                "gitlab_id": {"raw": {}},
                "project_id": {"raw": {}},
                "type": {"raw": {}},
            },
            "page": {"current": 1, "size": page_size},
        }
        resp = self.search_http.post(SEARCH_PATH, query)
        raise_for_status(resp, f"query for documents from {start} to {end}")
        body = resp.json()
        total_pages = body.get("meta", {}).get("page", {}).get("total_pages", 1)
        if total_pages > 1:
            logger.warning(
                "workplace_search.search_truncated",
                content_source_id=content_source_id,
                total_pages=total_pages,
                page_size=page_size,
            )
        return [StoredDocument.from_search_result(r) for r in body.get("results", [])]

    def close(self) -> None:
        self.http.close()
        if self.search_http is not self.http:
            self.search_http.close()


def create_content_source(http: HttpClient, name: str) -> str:
    """Create a content source with the GitLab schema; returns its id."""
    resp = http.post(
        SOURCES_PATH,
        {"name": name, "schema": CONTENT_SOURCE_SCHEMA, "display": CONTENT_SOURCE_DISPLAY},
    )
    raise_for_status(resp, "create content source")
    source_id = resp.json()["id"]
    logger.info("workplace_search.content_source_created", content_source_id=source_id, name=name)
    return source_id


def _results(resp) -> list[dict[str, Any]]:
    if not resp.content:
        return []
    body = resp.json()
    if isinstance(body, dict):
        body = body.get("results", [])
    return [r for r in body if isinstance(r, dict)]
