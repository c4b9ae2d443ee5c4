from __future__ import annotations

from collections import defaultdict

import structlog

from gitlab_sync.connectors.gitlab import GitLabClient, Paginated
from gitlab_sync.connectors.workplace_search import MAX_SEARCH_PAGE_SIZE, WorkplaceSearchClient
from gitlab_sync.core.batch import BatchWriter
from gitlab_sync.core.mapper import ReadmeDecodeError, to_document
from gitlab_sync.core.schema import NormalizedDocument, Project, StoredDocument, TimeWindow

from .existence import ExistenceOracle

logger = structlog.get_logger()


class GitLabIndexer:
    """Keeps one content source in step with GitLab for a time window."""

    def __init__(
        self,
        gitlab: GitLabClient,
        store: WorkplaceSearchClient,
        content_source_id: str,
        batch_size: int = 100,
        probe_workers: int = 4,
        search_page_size: int = MAX_SEARCH_PAGE_SIZE,
    ) -> None:
        self.gitlab = gitlab
        self.store = store
        self.content_source_id = content_source_id
        self.writer = BatchWriter(store, content_source_id, batch_size=batch_size)
        self.oracle = ExistenceOracle(gitlab, workers=probe_workers)
        self.search_page_size = search_page_size

    def index(self, window: TimeWindow) -> int:
        """Index projects active in the window with their READMEs, issues and merge requests.

        Nothing is rolled back on failure: batches already written stay in the
        store and a later run picks up from there.
        """
        log = logger.bind(content_source_id=self.content_source_id, window=window.bounds())
        projects = list(self.gitlab.projects(window))
        log.info("index.projects_fetched", count=len(projects))

        document_count = self.writer.upsert(to_document(project) for project in projects)
        log.info("index.projects_written", count=document_count)

        readme_count = self.writer.upsert(self._readme_documents(projects))
        log.info("index.readmes_written", count=readme_count)
        document_count += readme_count

        for project in projects:
            issue_count = self._write_pages(self.gitlab.issues(project.id, window))
            merge_request_count = self._write_pages(self.gitlab.merge_requests(project.id, window))
            log.info(
                "index.project_activity_written",
                project_id=project.id,
                issues=issue_count,
                merge_requests=merge_request_count,
            )
            document_count += issue_count + merge_request_count

        log.info("index.done", count=document_count)
        return document_count

    def cleanup(self, window: TimeWindow) -> int:
        """Delete stored documents from the window whose GitLab record is gone.

        The window is read with a single search call, so at most
        ``search_page_size`` documents are checked per run. Windows holding
        more than that must be split into narrower ones; the store's
        ``total_pages`` is logged as ``workplace_search.search_truncated``.
        """
        log = logger.bind(content_source_id=self.content_source_id, window=window.bounds())
        documents = self.store.search(self.content_source_id, window, page_size=self.search_page_size)
        log.info("cleanup.documents_found", count=len(documents))

        by_type: dict[str, list[StoredDocument]] = defaultdict(list)
        for document in documents:
            by_type[document.type.value].append(document)

        to_delete: list[str] = []
        for doc_type, documents_of_type in by_type.items():
            gone = self.oracle.missing(documents_of_type)
            log.info("cleanup.checked", type=doc_type, checked=len(documents_of_type), missing=len(gone))
            to_delete.extend(doc.id for doc in gone)

        deleted = self.writer.delete(to_delete)
        log.info("cleanup.done", count=deleted)
        return deleted

    def _readme_documents(self, projects: list[Project]) -> list[NormalizedDocument]:
        documents: list[NormalizedDocument] = []
        for project in projects:
            readme = self.gitlab.readme(project)
            if readme is None:
                continue
            try:
                documents.append(to_document(readme))
            except ReadmeDecodeError as exc:
                logger.warning("index.readme_skipped", project_id=project.id, error=str(exc))
        return documents

    def _write_pages(self, listing: Paginated) -> int:
        count = 0
        for page in listing.pages():
            count += self.writer.upsert(to_document(item) for item in page)
        return count
