"""
GitLab to Workplace Search connector.

Indexes projects, READMEs, issues and merge requests active in a time window,
and removes stored documents whose GitLab record has disappeared.
"""

from .connectors.gitlab import GitLabClient, Paginated
from .connectors.workplace_search import WorkplaceSearchClient, create_content_source
from .core.batch import BatchWriter, WriteOp
from .core.config import Settings
from .core.http import HttpClient, HttpError, RemoteServiceError
from .core.schema import DocumentType, NormalizedDocument, StoredDocument, TimeWindow
from .sync.engine import GitLabIndexer
from .sync.existence import ExistenceOracle

__all__ = [
    "BatchWriter",
    "DocumentType",
    "ExistenceOracle",
    "GitLabClient",
    "GitLabIndexer",
    "HttpClient",
    "HttpError",
    "NormalizedDocument",
    "Paginated",
    "RemoteServiceError",
    "Settings",
    "StoredDocument",
    "TimeWindow",
    "WorkplaceSearchClient",
    "WriteOp",
    "create_content_source",
]
