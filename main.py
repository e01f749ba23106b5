from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import sys
from typing import List

from graphrag_core.config import settings
from graphrag_core.errors import GraphRagError
from graphrag_core.explorer import GraphExplorer
from graphrag_core.logger import configure_logging
from graphrag_core.models import (
    AsyncTask,
    GraphStats,
    Query,
    QueryAnalysis,
    QueryResult,
    RetrievalMode,
    VisualGraph,
)
from graphrag_core.orchestrator import QueryOrchestrator
from graphrag_client.graph_rag_api import GraphRagApi
from graphrag_client.transport import TransportClient

DEFAULT_UPLOAD_MESSAGE = "File uploaded successfully"


# --- Rendering ---

def render_result(result: QueryResult) -> str:
    lines = [result.answer]
    if result.processing_time_ms is not None:
        lines.append(f"\nTook {result.processing_time_ms} ms")
    if result.confidence is not None:
        lines.append(f"Confidence: {result.confidence:.2f}")
    lines.append(f"\nEvidence ({len(result.segments)} segments):")
    for segment in result.segments:
        line = f"  [{segment.score:.2f}] ({segment.kind.value}) {segment.content}"
        if segment.source:
            line += f"  -- source: {segment.source}"
        lines.append(line)
    return "\n".join(lines)

def render_task(task: AsyncTask) -> str:
    return f"Task {task.task_id}: {task.status.value}"

def render_analysis(analysis: QueryAnalysis) -> str:
    return (
        f"Query type: {analysis.query_type}\n"
        f"Expected answer: {analysis.expected_answer_type}\n"
        f"Complexity: {analysis.complexity}"
    )

def render_stats(stats: GraphStats) -> str:
    lines = [f"Nodes: {stats.node_count}", f"Relationships: {stats.edge_count}", "Labels:"]
    lines.extend(f"  {label}: {count}" for label, count in stats.label_distribution())
    return "\n".join(lines)

def render_graph(graph: VisualGraph) -> str:
    if not graph.nodes:
        return "No related entities found."
    lines = [f"{len(graph.nodes)} nodes, {len(graph.edges)} edges"]
    for node in graph.nodes:
        marker = "*" if node.primary else " "
        lines.append(f" {marker} {node.label}" + (f" ({node.kind})" if node.kind else ""))
    labels = {node.id: node.label for node in graph.nodes}
    for edge in graph.edges:
        lines.append(f"   {labels[edge.source]} --{edge.relation_type}--> {labels[edge.target]}")
    return "\n".join(lines)


# --- Commands ---

def build_query(args) -> Query:
    return Query(
        question=args.question,
        retrieval_mode=RetrievalMode(args.mode),
        max_documents=args.max_documents,
        max_entities=args.max_entities,
        similarity_threshold=args.similarity_threshold,
    )

async def run_stream(orchestrator: QueryOrchestrator, query: Query, keep_open: bool) -> int:
    errors: List[GraphRagError] = []
    handle = orchestrator.run_streaming(
        query,
        on_result=lambda result: print(render_result(result)),
        on_error=errors.append,
        close_on_result=not keep_open,
    )
    await handle.wait()
    if errors:
        print(f"Query failed: {errors[0].message}", file=sys.stderr)
        return 1
    return 0

async def run_command(args, api: GraphRagApi) -> int:
    orchestrator = QueryOrchestrator(api)

    if args.command == "ask":
        print(render_result(await orchestrator.run_synchronous(build_query(args))))
    elif args.command == "stream":
        return await run_stream(orchestrator, build_query(args), args.keep_open)
    elif args.command == "submit":
        print(render_task(await orchestrator.submit_async(build_query(args))))
    elif args.command == "poll":
        outcome = await orchestrator.poll_async(args.task_id)
        print(render_result(outcome) if isinstance(outcome, QueryResult) else render_task(outcome))
    elif args.command == "analyze":
        print(render_analysis(await orchestrator.analyze(args.question)))
    elif args.command == "upload":
        if len(args.files) == 1:
            message = await api.upload_document(args.files[0], source=args.source)
        else:
            message = await api.upload_documents(args.files, source=args.source)
        print(message or DEFAULT_UPLOAD_MESSAGE)
    elif args.command == "stats":
        print(render_stats(await api.get_stats()))
    elif args.command == "health":
        print(await api.check_health())
    elif args.command == "clear":
        print(await api.clear_graph())
    elif args.command == "explore":
        explorer = GraphExplorer(api, max_hops=args.max_hops, max_results=args.max_results)
        print(render_graph(await explorer.search(args.entity)))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Command-line client for a GraphRAG backend.")
    parser.add_argument("--base-url", default=settings.GRAPHRAG_API_BASE_URL, help="Backend base URL.")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Level for the JSON client logs.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_query_arguments(sub):
        sub.add_argument("question")
        sub.add_argument("--mode", choices=[mode.value for mode in RetrievalMode], default=settings.DEFAULT_RETRIEVAL_MODE)
        sub.add_argument("--max-documents", type=int)
        sub.add_argument("--max-entities", type=int)
        sub.add_argument("--similarity-threshold", type=float)

    add_query_arguments(subparsers.add_parser("ask", help="Synchronous query."))
    stream = subparsers.add_parser("stream", help="Streaming query.")
    add_query_arguments(stream)
    stream.add_argument("--keep-open", action="store_true", help="Print every pushed fragment until the server ends the stream.")
    add_query_arguments(subparsers.add_parser("submit", help="Submit an async query."))

    poll = subparsers.add_parser("poll", help="Poll an async query once.")
    poll.add_argument("task_id")

    analyze = subparsers.add_parser("analyze", help="Classify a question.")
    analyze.add_argument("question")

    upload = subparsers.add_parser("upload", help="Upload one or more documents.")
    upload.add_argument("files", nargs="+")
    upload.add_argument("--source")

    subparsers.add_parser("stats", help="Knowledge graph statistics.")
    subparsers.add_parser("health", help="Backend health check.")
    subparsers.add_parser("clear", help="Clear the knowledge graph.")

    explore = subparsers.add_parser("explore", help="Show the entities related to a name.")
    explore.add_argument("entity")
    explore.add_argument("--max-hops", type=int, default=settings.RELATED_MAX_HOPS)
    explore.add_argument("--max-results", type=int, default=settings.RELATED_MAX_RESULTS)
    return parser


async def _main(args) -> int:
    async with TransportClient(base_url=args.base_url) as transport:
        try:
            return await run_command(args, GraphRagApi(transport))
        except GraphRagError as e:
            print(f"Error ({e.kind}): {e.message}", file=sys.stderr)
            return 1


def main(argv: List[str] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return asyncio.run(_main(args))


if __name__ == '__main__':
    sys.exit(main())
