# /graphrag_core/normalizer.py

import json
from typing import Any, Dict, List, Optional, Union
from pydantic import ValidationError

from graphrag_core.errors import BackendError, DecodeError, MalformedPathError
from graphrag_core.logger import get_logger
from graphrag_core.models import (
    AsyncTask,
    EntityRef,
    GraphStats,
    QueryAnalysis,
    QueryResult,
    RelatedEntityPath,
    RelationshipHop,
    ResultSegment,
    SegmentKind,
    TaskStatus,
)

logger = get_logger(__name__)

# --- Constants ---
RUNNING_SENTINEL = "running"
TASK_NOT_FOUND_SENTINEL = "task not found"
DEFAULT_FAILURE_MESSAGE = "The backend reported a failure"

# Keys of a flat related-entity record that are mapped onto typed fields.
RELATED_RECORD_KEYS = {
    "entityId", "id", "entityName", "entityType",
    "pathNodes", "relationshipTypes", "pathLength",
}


class ResponseNormalizer:
    """
    Maps every backend envelope and payload variant onto the canonical models.

    Envelopes come in two shapes, told apart by a structural probe:
      (a) {success: bool, code: str, message: str, data, timestamp?}
      (b) {code: int, message: str, data} where code 0 means success
    """

    # --- Envelope handling ---

    def is_success(self, envelope: Dict[str, Any]) -> bool:
        if not isinstance(envelope, dict):
            raise DecodeError("Response envelope is not a JSON object", raw=envelope)
        if "success" in envelope:
            return envelope["success"] is True
        code = envelope.get("code")
        if isinstance(code, (int, float)) and not isinstance(code, bool):
            return code == 0
        raise DecodeError("Unrecognized response envelope: neither 'success' nor a numeric 'code'", raw=envelope)

    def unwrap(self, envelope: Dict[str, Any]) -> Any:
        """Returns the envelope's data, or raises BackendError carrying the backend message."""
        if self.is_success(envelope):
            return envelope.get("data")
        message = envelope.get("message") or DEFAULT_FAILURE_MESSAGE
        logger.warning("Backend signalled failure", extra={"code": envelope.get("code"), "backend_message": message})
        raise BackendError(message, code=envelope.get("code"))

    # --- Answer payloads ---

    def to_query_result(self, data: Any) -> QueryResult:
        if not isinstance(data, dict):
            raise DecodeError("Query result payload is not a JSON object", raw=data)
        # Absent and null fields both fall back to the model defaults.
        payload = {key: value for key, value in data.items() if value is not None}
        segments_present = "segments" in payload
        try:
            result = QueryResult.model_validate(payload)
        except ValidationError as e:
            logger.warning("Query result failed validation", extra={"errors": e.error_count()})
            raise DecodeError(f"Malformed query result: {e}", raw=data) from e

        if not segments_present:
            result.segments = self.synthesize_segments(result.relevant_documents, result.relevant_entities)
        return result

    def synthesize_segments(
        self,
        relevant_documents: List[Dict[str, Any]],
        relevant_entities: List[Dict[str, Any]],
    ) -> List[ResultSegment]:
        """Builds segments for payloads that only carry the separate record lists: documents first, then entities."""
        segments = [self._record_to_segment(doc, SegmentKind.DOCUMENT) for doc in relevant_documents]
        segments.extend(self._record_to_segment(entity, SegmentKind.ENTITY) for entity in relevant_entities)
        return segments

    def _record_to_segment(self, record: Dict[str, Any], kind: SegmentKind) -> ResultSegment:
        if kind == SegmentKind.DOCUMENT:
            content = record.get("content") or record.get("title") or record.get("id") or ""
        else:
            content = record.get("name") or record.get("description") or record.get("id") or ""
        score = record.get("score")
        if not isinstance(score, (int, float)) or isinstance(score, bool):
            score = 1.0
        source = record.get("source")
        return ResultSegment(
            content=str(content),
            score=min(1.0, max(0.0, float(score))),
            kind=kind,
            source=str(source) if source is not None else None,
        )

    # --- Async tasks ---

    def to_async_task(self, data: Any) -> AsyncTask:
        """The submit payload is either the bare task id or an object carrying it."""
        task_id = data
        if isinstance(data, dict):
            task_id = data.get("taskId") or data.get("task_id") or data.get("id")
        if not isinstance(task_id, str) or not task_id:
            raise DecodeError("Async submission did not return a task id", raw=data)
        return AsyncTask(task_id=task_id, status=TaskStatus.SUBMITTED)

    def to_poll_outcome(self, envelope: Dict[str, Any]) -> Union[TaskStatus, QueryResult]:
        """
        Interprets one poll response: a status while the task is unfinished,
        otherwise the finished QueryResult.
        """
        if not self.is_success(envelope):
            # Some backends report unknown tasks through a failure envelope.
            if (envelope.get("message") or "").strip().lower() == TASK_NOT_FOUND_SENTINEL:
                return TaskStatus.NOT_FOUND
            self.unwrap(envelope)

        data = envelope.get("data")
        if isinstance(data, str):
            sentinel = data.strip().lower()
            if sentinel == RUNNING_SENTINEL:
                return TaskStatus.RUNNING
            if sentinel == TASK_NOT_FOUND_SENTINEL:
                return TaskStatus.NOT_FOUND
            raise DecodeError(f"Unknown async task status: {data!r}", raw=data)
        return self.to_query_result(data)

    # --- Auxiliary payloads ---

    def to_analysis(self, data: Any) -> QueryAnalysis:
        return self._validate(QueryAnalysis, data, "query analysis")

    def to_stats(self, data: Any) -> GraphStats:
        return self._validate(GraphStats, data, "graph statistics")

    def to_message(self, data: Any) -> str:
        if data is None:
            return ""
        if isinstance(data, str):
            return data
        return json.dumps(data, ensure_ascii=False)

    def _validate(self, model, data: Any, what: str):
        if not isinstance(data, dict):
            raise DecodeError(f"The {what} payload is not a JSON object", raw=data)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise DecodeError(f"Malformed {what}: {e}", raw=data) from e

    # --- Related-entity paths ---

    def to_related_paths(self, data: Any) -> List[RelatedEntityPath]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise DecodeError("Related-entity payload is not a list", raw=data)
        return [self.to_related_path(record) for record in data]

    def to_related_path(self, record: Dict[str, Any]) -> RelatedEntityPath:
        """
        Converts one flat search record into a RelatedEntityPath.

        Hops are built by pairing relationshipTypes[i] with the consecutive
        pathNodes[i] -> pathNodes[i + 1], so there must be exactly one more
        node than relationship types.
        """
        if not isinstance(record, dict):
            raise MalformedPathError("Related-entity record is not a JSON object")

        path_nodes = record.get("pathNodes") or []
        relationship_types = record.get("relationshipTypes") or []
        if len(path_nodes) != len(relationship_types) + 1:
            raise MalformedPathError(
                f"Path for '{record.get('entityName')}' has {len(path_nodes)} nodes "
                f"but {len(relationship_types)} relationship types",
                record=record,
            )

        extra = {key: value for key, value in record.items() if key not in RELATED_RECORD_KEYS}
        entity = EntityRef(
            id=_optional_str(record.get("entityId") or record.get("id")),
            display_name=_name(record.get("entityName")),
            kind=_optional_str(record.get("entityType")),
            extra=extra,
        )

        # Path occurrences of the root entity share its id so both key to one node
        def endpoint(value: Any) -> EntityRef:
            name = _name(value)
            if entity.id is not None and name == entity.display_name:
                return entity
            return EntityRef(display_name=name)

        hops = [
            RelationshipHop(
                from_entity=endpoint(path_nodes[i]),
                relation_type=str(relation_type),
                to_entity=endpoint(path_nodes[i + 1]),
            )
            for i, relation_type in enumerate(relationship_types)
        ]

        path_length = record.get("pathLength")
        hop_count = path_length if isinstance(path_length, int) and not isinstance(path_length, bool) else len(relationship_types)
        return RelatedEntityPath(entity=entity, hops=hops, hop_count=hop_count)


def _name(value: Any) -> str:
    return "" if value is None else str(value)


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
