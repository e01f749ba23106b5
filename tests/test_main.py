import contextlib
import io
import unittest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import main
from graphrag_core.models import (
    AsyncTask,
    GraphStats,
    QueryResult,
    RelatedEntityPath,
    EntityRef,
    RelationshipHop,
    ResultSegment,
    TaskStatus,
)


class TestRendering(unittest.TestCase):

    def test_render_result_lists_segments(self):
        result = QueryResult(
            answer="Use HNSW.",
            processing_time_ms=88,
            segments=[ResultSegment(content="HNSW is fast", score=0.9, source="paper.pdf")],
        )

        text = main.render_result(result)

        self.assertIn("Use HNSW.", text)
        self.assertIn("Took 88 ms", text)
        self.assertIn("[0.90] (document) HNSW is fast  -- source: paper.pdf", text)

    def test_render_stats_largest_label_first(self):
        text = main.render_stats(GraphStats(node_count=3, edge_count=1, labels={"Person": 1, "Entity": 2}))

        self.assertLess(text.index("Entity: 2"), text.index("Person: 1"))


class TestCommands(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.api = MagicMock()
        self.parser = main.build_parser()

    async def run_cli(self, *argv):
        args = self.parser.parse_args(list(argv))
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = await main.run_command(args, self.api)
        return code, out.getvalue()

    async def test_ask_uses_requested_mode(self):
        self.api.query = AsyncMock(return_value=QueryResult(answer="42"))

        code, out = await self.run_cli("ask", "What is it?", "--mode", "vector", "--max-entities", "3")

        self.assertEqual(code, 0)
        self.assertIn("42", out)
        query = self.api.query.await_args.args[0]
        self.assertEqual(query.retrieval_mode.value, "vector")
        self.assertEqual(query.max_entities, 3)

    async def test_poll_prints_status_while_running(self):
        self.api.get_async_result = AsyncMock(return_value=TaskStatus.RUNNING)

        code, out = await self.run_cli("poll", "t1")

        self.assertEqual(out.strip(), "Task t1: running")

    async def test_submit_prints_task(self):
        self.api.submit_async_query = AsyncMock(return_value=AsyncTask(task_id="t9"))

        code, out = await self.run_cli("submit", "Summarize")

        self.assertEqual(out.strip(), "Task t9: submitted")

    async def test_upload_falls_back_to_default_message(self):
        self.api.upload_document = AsyncMock(return_value="")

        code, out = await self.run_cli("upload", "notes.txt", "--source", "wiki")

        self.api.upload_document.assert_awaited_once_with("notes.txt", source="wiki")
        self.assertEqual(out.strip(), main.DEFAULT_UPLOAD_MESSAGE)

    async def test_explore_renders_graph(self):
        root = EntityRef(display_name="VectorDB")
        self.api.get_related_entities = AsyncMock(return_value=[
            RelatedEntityPath(
                entity=root,
                hops=[RelationshipHop(from_entity=root, relation_type="USES", to_entity=EntityRef(display_name="ANN Index"))],
                hop_count=1,
            )
        ])

        code, out = await self.run_cli("explore", "VectorDB", "--max-hops", "1")

        self.api.get_related_entities.assert_awaited_once_with("VectorDB", max_hops=1, max_results=20)
        self.assertIn("* VectorDB", out)
        self.assertIn("VectorDB --USES--> ANN Index", out)


if __name__ == '__main__':
    unittest.main()
