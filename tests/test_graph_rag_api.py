# /tests/test_graph_rag_api.py
# Drives the real transport against the in-process fake backend.

import unittest
from unittest.mock import MagicMock
import httpx

import sys
import os
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from fake_backend import create_app
from graphrag_core.errors import (
    BackendError,
    DecodeError,
    MalformedPathError,
    QueryValidationError,
    TransportError,
)
from graphrag_core.explorer import GraphExplorer
from graphrag_core.models import AsyncTask, Query, QueryResult, RetrievalMode, SegmentKind, TaskStatus
from graphrag_core.orchestrator import OrchestratorState, QueryOrchestrator
from graphrag_client.graph_rag_api import GraphRagApi
from graphrag_client.transport import TransportClient


class BackendTestCase(unittest.IsolatedAsyncioTestCase):
    variant = "flag"

    async def asyncSetUp(self):
        self.app = create_app(self.variant)
        self.transport = TransportClient(
            base_url="http://testserver", transport=httpx.ASGITransport(app=self.app)
        )
        self.api = GraphRagApi(self.transport)
        self.orchestrator = QueryOrchestrator(self.api)

    async def asyncTearDown(self):
        await self.transport.aclose()


class TestFlagEnvelopeBackend(BackendTestCase):
    variant = "flag"

    async def test_synchronous_query_synthesizes_segments(self):
        query = Query(question="What is a vector database?", retrieval_mode=RetrievalMode.GRAPH, max_documents=5)

        result = await self.orchestrator.run_synchronous(query)

        self.assertEqual(result.answer, "A database that indexes embeddings for similarity search.")
        self.assertEqual([s.kind for s in result.segments], [SegmentKind.DOCUMENT, SegmentKind.ENTITY])
        self.assertEqual(result.segments[0].content, "Vector DB primer")
        self.assertEqual(result.processing_time_ms, 120)
        self.assertEqual(
            self.app.state.requests[-1],
            {"question": "What is a vector database?", "retrievalMode": "graph", "maxDocuments": 5},
        )

    async def test_backend_failure_envelope(self):
        with self.assertRaises(BackendError) as ctx:
            await self.orchestrator.run_synchronous(Query(question="fail"))

        self.assertEqual(ctx.exception.message, "Query failed: boom")
        self.assertEqual(self.orchestrator.state, OrchestratorState.FAILED)

    async def test_http_error_uses_message_from_body(self):
        with self.assertRaises(TransportError) as ctx:
            await self.api.query(Query(question="crash"))

        self.assertEqual(ctx.exception.message, "Internal failure")
        self.assertEqual(ctx.exception.status_code, 500)

    async def test_http_error_without_message_uses_status(self):
        with self.assertRaises(TransportError) as ctx:
            await self.transport.request_json("GET", "/missing")

        self.assertEqual(ctx.exception.message, "Request failed with status code 404")

    async def test_submit_and_poll_until_completed(self):
        task = await self.orchestrator.submit_async(Query(question="Summarize the corpus"))
        self.assertEqual(task, AsyncTask(task_id="t1", status=TaskStatus.SUBMITTED))

        running = await self.orchestrator.poll_async("t1")
        self.assertEqual(running.status, TaskStatus.RUNNING)

        finished = await self.orchestrator.poll_async("t1")
        self.assertIsInstance(finished, QueryResult)
        self.assertEqual(self.orchestrator.get_task("t1").status, TaskStatus.COMPLETED)

    async def test_unknown_task_reported_through_failure_envelope(self):
        task = await self.orchestrator.poll_async("nope")

        self.assertEqual(task.status, TaskStatus.NOT_FOUND)

    async def test_streaming_query_fragments(self):
        results, errors = [], []

        handle = self.orchestrator.run_streaming(
            Query(question="Explain HNSW"), results.append, errors.append, close_on_result=False
        )
        await handle.wait()

        self.assertEqual(errors, [])
        self.assertEqual([r.answer for r in results], ["Partial", "A database that indexes embeddings for similarity search."])
        self.assertEqual(self.app.state.requests[-1], {"question": "Explain HNSW", "retrievalMode": "hybrid"})
        self.assertEqual(self.orchestrator.snapshot.fragments, 2)
        self.assertEqual(self.orchestrator.state, OrchestratorState.SUCCESS)

    async def test_streaming_closes_after_first_answer_by_default(self):
        on_result = MagicMock()

        handle = self.orchestrator.run_streaming(Query(question="Explain HNSW"), on_result, MagicMock())
        await handle.wait()

        on_result.assert_called_once()
        self.assertEqual(on_result.call_args.args[0].answer, "Partial")

    async def test_unparseable_stream_message(self):
        results, errors = [], []

        handle = self.orchestrator.run_streaming(Query(question="garbled"), results.append, errors.append)
        await handle.wait()

        self.assertEqual(results, [])
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], DecodeError)
        self.assertEqual(self.orchestrator.snapshot.failure.kind, "decode")

    async def test_analyze(self):
        analysis = await self.orchestrator.analyze("Is HNSW faster than IVF?")

        self.assertEqual(analysis.query_type, "factual")
        self.assertEqual(analysis.complexity, "simple")

    async def test_upload_document_with_source(self):
        message = await self.api.upload_document(("notes.txt", b"graph rag"), source="wiki")

        self.assertEqual(message, "Uploaded notes.txt (9 bytes) from wiki")

    async def test_batch_upload(self):
        message = await self.api.upload_documents([("a.txt", b"a"), ("b.txt", b"b")])

        self.assertEqual(message, "Uploaded 2 files")

    async def test_stats_health_and_clear(self):
        stats = await self.api.get_stats()
        self.assertEqual(stats.node_count, 12)
        self.assertEqual(stats.label_distribution()[0], ("Entity", 8))

        self.assertEqual(await self.api.check_health(), "Service is healthy")
        self.assertEqual(await self.api.clear_graph(), "Knowledge graph cleared")

    async def test_explorer_builds_graph_from_related_entities(self):
        explorer = GraphExplorer(self.api, max_hops=2, max_results=20)

        graph = await explorer.search("VectorDB")

        self.assertEqual(self.app.state.requests[-1], {"entity": "VectorDB", "maxHops": 2, "maxResults": 20})
        self.assertEqual(graph.node_ids(), ["ANN Index", "VectorDB", "HNSW"])
        self.assertEqual(
            graph.edge_keys(),
            [("VectorDB", "ANN Index", "USES"), ("ANN Index", "HNSW", "IMPLEMENTED_BY")],
        )
        self.assertTrue(graph.get_node("HNSW").primary)
        self.assertFalse(graph.get_node("VectorDB").primary)

        again = await explorer.retry()
        self.assertTrue(graph.same_as(again))

    async def test_explorer_reports_malformed_paths(self):
        explorer = GraphExplorer(self.api)

        with self.assertRaises(MalformedPathError):
            await explorer.search("Broken")

        self.assertIsNone(explorer.graph)
        self.assertEqual(explorer.failure.kind, "malformed_path")
        self.assertEqual(explorer.failure.operation, "explore")

    async def test_explorer_rejects_blank_names(self):
        with self.assertRaises(QueryValidationError):
            await GraphExplorer(self.api).search("  ")


class TestNumericEnvelopeBackend(BackendTestCase):
    variant = "numeric"

    async def test_submit_then_poll_running(self):
        task = await self.orchestrator.submit_async(Query(question="Summarize the corpus"))
        polled = await self.orchestrator.poll_async(task.task_id)

        self.assertEqual(polled, AsyncTask(task_id="t1", status=TaskStatus.RUNNING))

    async def test_completed_poll_returns_result_unwrapped(self):
        await self.orchestrator.submit_async(Query(question="Summarize the corpus"))
        await self.orchestrator.poll_async("t1")

        outcome = await self.orchestrator.poll_async("t1")

        self.assertIsInstance(outcome, QueryResult)
        self.assertEqual(outcome.confidence, 0.82)
        self.assertEqual(self.orchestrator.snapshot.task.status, TaskStatus.COMPLETED)

    async def test_unknown_task_reported_as_data(self):
        task = await self.orchestrator.poll_async("nope")

        self.assertEqual(task.status, TaskStatus.NOT_FOUND)

    async def test_same_answer_as_flag_variant(self):
        numeric = await self.api.query(Query(question="q"))

        flag_app = create_app("flag")
        async with TransportClient(base_url="http://testserver", transport=httpx.ASGITransport(app=flag_app)) as transport:
            flag = await GraphRagApi(transport).query(Query(question="q"))

        self.assertEqual(numeric, flag)

    async def test_backend_failure_envelope(self):
        with self.assertRaises(BackendError) as ctx:
            await self.api.query(Query(question="fail"))

        self.assertEqual(ctx.exception.code, 500)


class TestNetworkFailures(unittest.IsolatedAsyncioTestCase):

    async def test_connection_error_becomes_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        async with TransportClient(base_url="http://testserver", transport=httpx.MockTransport(refuse)) as transport:
            with self.assertRaises(TransportError) as ctx:
                await GraphRagApi(transport).check_health()

        self.assertEqual(ctx.exception.message, "Connection refused")
        self.assertIsNone(ctx.exception.status_code)

    async def test_non_json_body_is_a_decode_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy</html>"))

        async with TransportClient(base_url="http://testserver", transport=transport) as client:
            with self.assertRaises(DecodeError):
                await GraphRagApi(client).get_stats()

    async def test_stream_http_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, json={"message": "Service unavailable"}))
        errors = []

        async with TransportClient(base_url="http://testserver", transport=transport) as client:
            orchestrator = QueryOrchestrator(GraphRagApi(client))
            handle = orchestrator.run_streaming(Query(question="q"), MagicMock(), errors.append)
            await handle.wait()

        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], TransportError)
        self.assertEqual(errors[0].message, "Service unavailable")
        self.assertEqual(errors[0].status_code, 503)


if __name__ == '__main__':
    unittest.main()
