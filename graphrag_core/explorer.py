# /graphrag_core/explorer.py

from typing import List, Optional

from graphrag_core.errors import Failure, GraphRagError, QueryValidationError
from graphrag_core.graph_builder import PathGraphBuilder
from graphrag_core.logger import get_logger
from graphrag_core.models import RelatedEntityPath, VisualGraph

logger = get_logger(__name__)


class GraphExplorer:
    """
    View-model for the graph explorer: searches the entities related to a
    name and rebuilds the visual graph from scratch for every search.
    """
    def __init__(self, api, builder: PathGraphBuilder = None, max_hops: int = None, max_results: int = None):
        self.api = api
        self.builder = builder or PathGraphBuilder()
        self.max_hops = max_hops
        self.max_results = max_results
        self.entity_name: Optional[str] = None
        self.paths: List[RelatedEntityPath] = []
        self.graph: Optional[VisualGraph] = None
        self.failure: Optional[Failure] = None

    @property
    def is_empty(self) -> bool:
        return self.graph is None or not self.graph.nodes

    async def search(self, entity_name: str) -> VisualGraph:
        if not entity_name or not entity_name.strip():
            raise QueryValidationError("Please enter an entity name")
        entity_name = entity_name.strip()
        self.entity_name = entity_name
        self.failure = None
        try:
            paths = await self.api.get_related_entities(
                entity_name, max_hops=self.max_hops, max_results=self.max_results
            )
        except GraphRagError as e:
            logger.warning("Related-entity search failed", extra={"entity": entity_name, "error": e.message})
            self.paths = []
            self.graph = None
            self.failure = e.to_failure("explore")
            raise

        self.paths = paths
        self.graph = self.builder.build(paths)
        return self.graph

    async def retry(self) -> VisualGraph:
        """Reissues the last search."""
        if self.entity_name is None:
            raise QueryValidationError("Nothing to retry: no search has been issued yet")
        return await self.search(self.entity_name)
