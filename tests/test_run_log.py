from __future__ import annotations

import io
import json
import tempfile
import unittest
from pathlib import Path

from notecast.run_log import RunLogger


class TestRunLogger(unittest.TestCase):
    def test_writes_jsonl_records(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "logs" / "run.log"
            with RunLogger.open(path, session_id="abc") as log:
                log.info("started", url=" https://x ", count=2)
                try:
                    raise ValueError("bad value")
                except ValueError as e:
                    log.exception("failed", exc=e)

            records = [json.loads(ln) for ln in path.read_text(encoding="utf-8").splitlines()]

        self.assertEqual([r["event"] for r in records], ["started", "failed"])
        self.assertEqual(records[0]["session_id"], "abc")
        self.assertEqual(records[0]["url"], "https://x")
        self.assertEqual(records[0]["data"], {"count": 2})
        self.assertEqual(records[1]["level"], "ERROR")
        self.assertEqual(records[1]["data"]["error"]["type"], "ValueError")
        self.assertIn("bad value", records[1]["data"]["error"]["traceback"])

    def test_overwrite_and_append(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "run.log"
            with RunLogger.open(path) as log:
                log.info("first")
            with RunLogger.open(path, overwrite=False) as log:
                log.info("second")
            self.assertEqual(len(path.read_text(encoding="utf-8").splitlines()), 2)

            with RunLogger.open(path) as log:
                log.info("third")
            self.assertEqual(len(path.read_text(encoding="utf-8").splitlines()), 1)

    def test_bound_context_shares_sink(self) -> None:
        buf = io.StringIO()
        log = RunLogger(stream=buf, session_id="s")
        child = log.bind(generation=3)
        child.warning("stale")
        log.info("plain")
        child.close()
        log.info("after_child_close")

        records = [json.loads(ln) for ln in buf.getvalue().splitlines()]
        self.assertEqual(records[0]["generation"], 3)
        self.assertEqual(records[0]["level"], "WARN")
        self.assertNotIn("generation", records[1])
        self.assertEqual(len(records), 3)

    def test_requires_a_sink(self) -> None:
        with self.assertRaises(ValueError):
            RunLogger()


if __name__ == "__main__":
    unittest.main()
