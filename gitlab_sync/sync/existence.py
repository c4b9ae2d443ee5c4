from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Sequence

import structlog

from gitlab_sync.connectors.gitlab import GitLabClient
from gitlab_sync.core.schema import DocumentType, StoredDocument

logger = structlog.get_logger()


class ExistenceOracle:
    """Answer whether a stored document's GitLab record still exists.

    A 404 from GitLab means the record is gone. Any other failure is raised,
    since "could not check" must never be read as "absent".
    """

    def __init__(self, gitlab: GitLabClient, workers: int = 4) -> None:
        self.gitlab = gitlab
        self.workers = max(1, workers)
        self._probes: dict[DocumentType, Callable[[StoredDocument], object | None]] = {
            DocumentType.PROJECT: lambda doc: gitlab.project(doc.id),
            DocumentType.ISSUE: lambda doc: gitlab.issue(_required(doc, "project_id"), _required(doc, "gitlab_id")),
            DocumentType.MERGE_REQUEST: lambda doc: gitlab.merge_request(
                _required(doc, "project_id"), _required(doc, "gitlab_id")
            ),
            DocumentType.README: lambda doc: gitlab.readme_file(_required(doc, "project_id")),
        }

    def exists(self, document: StoredDocument) -> bool:
        return self._probes[document.type](document) is not None

    def missing(self, documents: Sequence[StoredDocument]) -> list[StoredDocument]:
        """Documents whose GitLab record is gone, in input order."""
        if self.workers == 1 or len(documents) <= 1:
            found = [self.exists(doc) for doc in documents]
        else:
            found = self._probe_all(documents)
        gone = [doc for doc, present in zip(documents, found, strict=True) if not present]
        for doc in gone:
            logger.info("cleanup.probe_missing", id=doc.id, type=doc.type.value)
        return gone

    def _probe_all(self, documents: Sequence[StoredDocument]) -> list[bool]:
        # Queued probes are dropped as soon as one fails.
        executor = ThreadPoolExecutor(max_workers=self.workers)
        futures = [executor.submit(self.exists, doc) for doc in documents]
        try:
            for future in as_completed(futures):
                future.result()
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return [future.result() for future in futures]


def _required(document: StoredDocument, field: str) -> str:
    value = getattr(document, field)
    if value is None:
        raise ValueError(f"{document.type.value} document {document.id} has no {field}")
    return value
