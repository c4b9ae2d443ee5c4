from __future__ import annotations

from enum import Enum
from typing import Iterable, Protocol, Sequence

import structlog

from .schema import NormalizedDocument
from .utils import chunked

logger = structlog.get_logger()

MAX_BATCH_SIZE = 100


class WriteOp(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class DocumentStore(Protocol):
    def bulk_upsert(self, content_source_id: str, documents: Sequence[NormalizedDocument]) -> object:
        ...

    def bulk_delete(self, content_source_id: str, ids: Sequence[str]) -> object:
        ...


class BatchWriter:
    """Submit documents to one content source in fixed-size bulk calls.

    Input order is kept within and across batches. The first failing batch
    raises and nothing after it is sent. The returned count is the number of
    items submitted, not the number the store reports as applied.
    """

    def __init__(self, store: DocumentStore, content_source_id: str, batch_size: int = MAX_BATCH_SIZE) -> None:
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self.store = store
        self.content_source_id = content_source_id
        self.batch_size = batch_size

    def upsert(self, documents: Iterable[NormalizedDocument]) -> int:
        return self.write(documents, WriteOp.UPSERT)

    def delete(self, ids: Iterable[str]) -> int:
        return self.write(ids, WriteOp.DELETE)

    def write(self, items: Iterable[NormalizedDocument] | Iterable[str], op: WriteOp) -> int:
        count = 0
        for batch in chunked(items, self.batch_size):
            if op is WriteOp.UPSERT:
                self.store.bulk_upsert(self.content_source_id, batch)
            else:
                ids = [item.id if isinstance(item, NormalizedDocument) else item for item in batch]
                self.store.bulk_delete(self.content_source_id, ids)
            count += len(batch)
            logger.debug("batch.written", op=op.value, size=len(batch), total=count)
        return count
