# /graphrag_core/graph_builder.py

from typing import Dict, Iterable, Optional, Tuple

from graphrag_core.logger import get_logger
from graphrag_core.models import EntityRef, RelatedEntityPath, VisualEdge, VisualGraph, VisualNode

logger = get_logger(__name__)

EdgeKey = Tuple[str, str, str]


def edge_id(source: str, target: str, relation_type: str) -> str:
    return f"{source}-[{relation_type}]->{target}"


class PathGraphBuilder:
    """
    Turns related-entity search paths into a deduplicated node/edge graph.

    Pure: every call starts from an empty graph, so the same input always
    yields the same nodes and edges in the same first-seen order.
    """

    def build(self, paths: Iterable[RelatedEntityPath]) -> VisualGraph:
        """
        The main function that merges every path into one graph.

        Args:
            paths: Well-formed RelatedEntityPath values, e.g. from the normalizer.

        Returns:
            A new VisualGraph. Nodes are keyed by entity id (or display name),
            edges by (source, target, relation type).
        """
        nodes: Dict[str, VisualNode] = {}
        edges: Dict[EdgeKey, VisualEdge] = {}

        for path in paths:
            self._merge_node(nodes, path.entity, primary=True)
            for hop in path.hops:
                source = self._merge_node(nodes, hop.from_entity)
                target = self._merge_node(nodes, hop.to_entity)
                if source is None or target is None:
                    # An endpoint without identity cannot be drawn
                    continue
                key = (source, target, hop.relation_type)
                if key not in edges:
                    edges[key] = VisualEdge(
                        id=edge_id(*key), source=source, target=target, relation_type=hop.relation_type
                    )

        for node in nodes.values():
            if not node.label:
                node.label = node.id

        graph = VisualGraph(nodes=list(nodes.values()), edges=list(edges.values()))
        logger.info("Built visual graph", extra={"nodes": len(graph.nodes), "edges": len(graph.edges)})
        return graph

    def _merge_node(self, nodes: Dict[str, VisualNode], entity: EntityRef, primary: bool = False) -> Optional[str]:
        """Adds the entity or folds it into the node already seen under the same key."""
        key = entity.key
        if not key:
            return None

        existing = nodes.get(key)
        if existing is None:
            nodes[key] = VisualNode(id=key, label=entity.display_name, primary=primary, kind=entity.kind)
            return key

        # Primary is sticky; empty label and kind are filled by later sightings
        if primary:
            existing.primary = True
        if not existing.label and entity.display_name:
            existing.label = entity.display_name
        if not existing.kind and entity.kind:
            existing.kind = entity.kind
        return key


def build_visual_graph(paths: Iterable[RelatedEntityPath]) -> VisualGraph:
    return PathGraphBuilder().build(paths)
