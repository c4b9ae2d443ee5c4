from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .utils import isoformat


class DocumentType(str, Enum):
    PROJECT = "project"
    ISSUE = "issue"
    MERGE_REQUEST = "merge_request"
    README = "readme"


class TimeWindow(BaseModel):
    """Half-open ``[start, end)`` range over a resource's activity timestamp."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start: datetime = Field(alias="from")
    end: datetime = Field(alias="to")

    @model_validator(mode="after")
    def _ordered(self) -> "TimeWindow":
        if self.start > self.end:
            raise ValueError(f"window start {self.start} is after end {self.end}")
        return self

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def bounds(self) -> tuple[str, str]:
        return isoformat(self.start), isoformat(self.end)


class _GitLabModel(BaseModel):
    """Records returned by the GitLab API; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")


class Project(_GitLabModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime | None = None
    last_activity_at: datetime | None = None
    web_url: str
    readme_url: str | None = None


class Issue(_GitLabModel):
    id: int
    iid: int
    project_id: int
    title: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    web_url: str


class MergeRequest(_GitLabModel):
    id: int
    iid: int
    project_id: int
    title: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    web_url: str


class RepositoryFile(_GitLabModel):
    """Payload of ``GET /projects/:id/repository/files/:path``."""

    blob_id: str
    file_name: str
    encoding: str = "base64"
    content: str = ""


class Readme(BaseModel):
    """A project's README file joined with the project it belongs to."""

    blob_id: str
    project_id: int
    file_name: str
    project_name: str
    url: str | None = None
    created_at: datetime | None = None
    last_activity_at: datetime | None = None
    encoding: str = "base64"
    content: str = ""

    @classmethod
    def from_file(cls, project: Project, file: RepositoryFile) -> "Readme":
        return cls(
            blob_id=file.blob_id,
            project_id=project.id,
            file_name=file.file_name,
            project_name=project.name,
            url=project.readme_url,
            created_at=project.created_at,
            last_activity_at=project.last_activity_at,
            encoding=file.encoding,
            content=file.content,
        )


class NormalizedDocument(BaseModel):
    """The document shape stored in the content source."""

    id: str
    gitlab_id: str | None = None
    project_id: str
    name: str
    description: str | None = None
    created_at: datetime | None = None
    last_activity_at: datetime | None = None
    url: str | None = None
    content: str | None = None
    type: DocumentType

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class StoredDocument(BaseModel):
    """A search hit read back from the content source."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    gitlab_id: str | None = None
    project_id: str | None = None
    type: DocumentType

    @classmethod
    def from_search_result(cls, result: dict[str, Any]) -> "StoredDocument":
        def raw(field: str) -> Any:
            value = result.get(field)
            return value.get("raw") if isinstance(value, dict) else value

        return cls(
            id=raw("id"),
            gitlab_id=raw("gitlab_id"),
            project_id=raw("project_id"),
            type=raw("type"),
        )
