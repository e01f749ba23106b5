# /graphrag_client/graph_rag_api.py

import os
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote

from graphrag_core.config import settings
from graphrag_core.logger import get_logger
from graphrag_core.models import (
    AsyncTask,
    GraphStats,
    Query,
    QueryAnalysis,
    QueryResult,
    RelatedEntityPath,
    TaskStatus,
)
from graphrag_core.normalizer import ResponseNormalizer
from graphrag_client.transport import TransportClient

logger = get_logger(__name__)

# A document is either a path on disk or an in-memory (filename, content) pair.
DocumentInput = Union[str, Path, Tuple[str, bytes]]


class GraphRagApi:
    """One coroutine per backend endpoint; every payload goes through the normalizer."""

    def __init__(self, transport: TransportClient, normalizer: ResponseNormalizer = None):
        self.transport = transport
        self.normalizer = normalizer or ResponseNormalizer()

    async def query(self, query: Query) -> QueryResult:
        envelope = await self.transport.request_json("POST", "/query", json=query.to_payload())
        return self.normalizer.to_query_result(self.normalizer.unwrap(envelope))

    async def stream_query(self, query: Query) -> AsyncIterator[QueryResult]:
        """Yields one QueryResult per push message until the server ends the stream."""
        messages = self.transport.open_stream("/query/stream", params=query.to_stream_params())
        try:
            async for envelope in messages:
                yield self.normalizer.to_query_result(self.normalizer.unwrap(envelope))
        finally:
            await messages.aclose()

    async def submit_async_query(self, query: Query) -> AsyncTask:
        envelope = await self.transport.request_json("POST", "/query/async", json=query.to_payload())
        return self.normalizer.to_async_task(self.normalizer.unwrap(envelope))

    async def get_async_result(self, task_id: str) -> Union[TaskStatus, QueryResult]:
        envelope = await self.transport.request_json("GET", f"/query/async/{quote(task_id, safe='')}")
        return self.normalizer.to_poll_outcome(envelope)

    async def analyze_query(self, question: str) -> QueryAnalysis:
        envelope = await self.transport.request_json("POST", "/analyze", params={"query": question})
        return self.normalizer.to_analysis(self.normalizer.unwrap(envelope))

    async def upload_document(self, document: DocumentInput, source: Optional[str] = None) -> str:
        files = [("file", _read_document(document))]
        envelope = await self.transport.request_json(
            "POST", "/documents/upload", files=files, data=_source_field(source)
        )
        return self.normalizer.to_message(self.normalizer.unwrap(envelope))

    async def upload_documents(self, documents: Sequence[DocumentInput], source: Optional[str] = None) -> str:
        files = [("files", _read_document(document)) for document in documents]
        envelope = await self.transport.request_json(
            "POST", "/documents/batch-upload", files=files, data=_source_field(source)
        )
        return self.normalizer.to_message(self.normalizer.unwrap(envelope))

    async def get_stats(self) -> GraphStats:
        envelope = await self.transport.request_json("GET", "/stats")
        return self.normalizer.to_stats(self.normalizer.unwrap(envelope))

    async def check_health(self) -> str:
        envelope = await self.transport.request_json("GET", "/health")
        return self.normalizer.to_message(self.normalizer.unwrap(envelope))

    async def clear_graph(self) -> str:
        envelope = await self.transport.request_json("DELETE", "/clear")
        return self.normalizer.to_message(self.normalizer.unwrap(envelope))

    async def get_related_entities(
        self,
        entity_name: str,
        max_hops: int = None,
        max_results: int = None,
    ) -> List[RelatedEntityPath]:
        params = {
            "maxHops": max_hops if max_hops is not None else settings.RELATED_MAX_HOPS,
            "maxResults": max_results if max_results is not None else settings.RELATED_MAX_RESULTS,
        }
        envelope = await self.transport.request_json(
            "GET", f"/entities/{quote(entity_name, safe='')}/related", params=params
        )
        paths = self.normalizer.to_related_paths(self.normalizer.unwrap(envelope))
        logger.info("Related entities fetched", extra={"entity": entity_name, "paths": len(paths)})
        return paths


def _read_document(document: DocumentInput) -> Tuple[str, bytes]:
    if isinstance(document, tuple):
        return document
    with open(document, "rb") as f:
        return (os.path.basename(str(document)), f.read())


def _source_field(source: Optional[str]):
    return {"source": source} if source else None
