from __future__ import annotations

import base64
import binascii
from functools import singledispatch

from .schema import DocumentType, Issue, MergeRequest, NormalizedDocument, Project, Readme


class ReadmeDecodeError(ValueError):
    pass


@singledispatch
def to_document(resource) -> NormalizedDocument:
    raise TypeError(f"No document mapping for {type(resource).__name__}")


@to_document.register
def _(resource: Project) -> NormalizedDocument:
    return NormalizedDocument(
        id=str(resource.id),
        gitlab_id=str(resource.id),
        project_id=str(resource.id),
        name=resource.name,
        description=resource.description,
        created_at=resource.created_at,
        last_activity_at=resource.last_activity_at,
        url=resource.web_url,
        type=DocumentType.PROJECT,
    )


@to_document.register
def _(resource: Issue) -> NormalizedDocument:
    return NormalizedDocument(
        id=str(resource.id),
        gitlab_id=str(resource.iid),
        project_id=str(resource.project_id),
        name=resource.title,
        description=resource.description,
        created_at=resource.created_at,
        last_activity_at=resource.updated_at,
        url=resource.web_url,
        type=DocumentType.ISSUE,
    )


@to_document.register
def _(resource: MergeRequest) -> NormalizedDocument:
    return NormalizedDocument(
        id=str(resource.id),
        gitlab_id=str(resource.iid),
        project_id=str(resource.project_id),
        name=resource.title,
        description=resource.description,
        created_at=resource.created_at,
        last_activity_at=resource.updated_at,
        url=resource.web_url,
        type=DocumentType.MERGE_REQUEST,
    )


@to_document.register
def _(resource: Readme) -> NormalizedDocument:
    return NormalizedDocument(
        id=resource.blob_id,
        project_id=str(resource.project_id),
        name=resource.file_name,
        description=f"{resource.project_name} README",
        created_at=resource.created_at,
        last_activity_at=resource.last_activity_at,
        url=resource.url,
        content=decode_content(resource.content, resource.encoding),
        type=DocumentType.README,
    )


def decode_content(content: str, encoding: str = "base64") -> str:
    if encoding != "base64":
        return content
    # GitLab may wrap the payload in lines.
    compact = "".join(content.split())
    try:
        raw = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ReadmeDecodeError(f"README content is not valid base64: {exc}") from exc
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ReadmeDecodeError(f"README content is not valid UTF-8: {exc}") from exc
