# /graphrag_core/models.py

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# This file holds all the shared Pydantic data structures.
# Wire names are camelCase; Python attributes are snake_case.


class RetrievalMode(str, Enum):
    VECTOR = "vector"
    GRAPH = "graph"
    HYBRID = "hybrid"


class SegmentKind(str, Enum):
    DOCUMENT = "document"
    ENTITY = "entity"


class TaskStatus(str, Enum):
    SUBMITTED = "submitted"
    RUNNING = "running"
    COMPLETED = "completed"
    NOT_FOUND = "not-found"
    FAILED = "failed"


TERMINAL_TASK_STATUSES = {TaskStatus.COMPLETED, TaskStatus.NOT_FOUND, TaskStatus.FAILED}

# Forward-only transitions; terminal statuses have no outgoing edges.
ALLOWED_TASK_TRANSITIONS = {
    TaskStatus.SUBMITTED: {TaskStatus.RUNNING, TaskStatus.COMPLETED, TaskStatus.NOT_FOUND},
    TaskStatus.RUNNING: {TaskStatus.RUNNING, TaskStatus.COMPLETED, TaskStatus.NOT_FOUND},
}


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Requests ---

class Query(WireModel):
    model_config = ConfigDict(frozen=True)

    question: str = Field(description="The natural-language question.")
    retrieval_mode: RetrievalMode = Field(RetrievalMode.HYBRID, description="Retrieval strategy: vector, graph or hybrid.")
    max_documents: Optional[int] = Field(default=None, description="Upper bound on retrieved documents.")
    max_entities: Optional[int] = Field(default=None, description="Upper bound on retrieved entities.")
    similarity_threshold: Optional[float] = Field(default=None, description="Minimum similarity for vector hits.")
    extra_parameters: Optional[Dict[str, Any]] = Field(default=None, alias="parameters", description="Backend-specific extra parameters.")

    def to_payload(self) -> Dict[str, Any]:
        """JSON body for POST /query and POST /query/async."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def to_stream_params(self) -> Dict[str, str]:
        """Query-string parameters for GET /query/stream."""
        return {"question": self.question, "retrievalMode": self.retrieval_mode.value}


# --- Answers ---

class ResultSegment(WireModel):
    content: str = Field("", description="Text of the supporting evidence.")
    score: float = Field(1.0, ge=0.0, le=1.0, description="Relevance score in [0, 1].")
    kind: SegmentKind = Field(SegmentKind.DOCUMENT, alias="type", description="Whether the evidence is a document or an entity.")
    source: Optional[str] = Field(default=None, description="Where the evidence came from.")


class QueryResult(WireModel):
    question: str = ""
    answer: str = ""
    segments: List[ResultSegment] = Field(default_factory=list)
    relevant_documents: List[Dict[str, Any]] = Field(default_factory=list)
    relevant_entities: List[Dict[str, Any]] = Field(default_factory=list)
    relationship_paths: List[Dict[str, Any]] = Field(default_factory=list)
    confidence: Optional[float] = None
    processing_time_ms: Optional[int] = None


class AsyncTask(WireModel):
    task_id: str = Field(description="Opaque task identifier issued by the backend.")
    status: TaskStatus = Field(TaskStatus.SUBMITTED)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    def can_advance_to(self, status: TaskStatus) -> bool:
        return status in ALLOWED_TASK_TRANSITIONS.get(self.status, set())

    def advance(self, status: TaskStatus) -> "AsyncTask":
        """Returns the task in its next status, or itself when the move would go backwards."""
        if status == self.status or not self.can_advance_to(status):
            return self
        return self.model_copy(update={"status": status})


class QueryAnalysis(WireModel):
    query_type: str = Field("unknown", description="factual, comparative, summary or unknown.")
    expected_answer_type: str = Field("paragraph", description="short, list, paragraph or table.")
    complexity: str = Field("simple", description="simple, medium or complex.")


class GraphStats(WireModel):
    model_config = ConfigDict(extra="allow")

    node_count: int = 0
    edge_count: int = 0
    labels: Dict[str, int] = Field(default_factory=dict)

    def label_distribution(self) -> List[Tuple[str, int]]:
        """Label counts, largest first, ties broken by label name."""
        return sorted(self.labels.items(), key=lambda item: (-item[1], item[0]))


# --- Related-entity paths ---

class EntityRef(WireModel):
    id: Optional[str] = Field(default=None, description="Stable entity id, when the backend supplies one.")
    display_name: str = Field("", description="Human-readable entity name.")
    kind: Optional[str] = Field(default=None, description="Entity type, e.g. Person or Technology.")
    extra: Dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Identity key: the id if present, else the display name."""
        return self.id or self.display_name


class RelationshipHop(WireModel):
    from_entity: EntityRef
    relation_type: str
    to_entity: EntityRef


class RelatedEntityPath(WireModel):
    entity: EntityRef
    hops: List[RelationshipHop] = Field(default_factory=list)
    hop_count: int = 0


# --- Visualization output ---

class VisualNode(BaseModel):
    id: str = Field(description="Unique node id within a graph.")
    label: str = Field(description="Text shown next to the node.")
    primary: bool = Field(False, description="True for the root entity of a search path.")
    kind: Optional[str] = None


class VisualEdge(BaseModel):
    id: str = Field(description="Edge id derived from the composite key.")
    source: str = Field(description="The ID of the source node.")
    target: str = Field(description="The ID of the target node.")
    relation_type: str = Field(description="The type of relationship between the source and target nodes.")

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source, self.target, self.relation_type)


class VisualGraph(BaseModel):
    nodes: List[VisualNode] = Field(default_factory=list)
    edges: List[VisualEdge] = Field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def edge_keys(self) -> List[Tuple[str, str, str]]:
        return [edge.key for edge in self.edges]

    def get_node(self, node_id: str) -> Optional[VisualNode]:
        return next((node for node in self.nodes if node.id == node_id), None)

    def same_as(self, other: "VisualGraph") -> bool:
        """Key-based comparison of node and edge sets."""
        return (
            set(self.node_ids()) == set(other.node_ids())
            and set(self.edge_keys()) == set(other.edge_keys())
        )
