from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

_FAST_CONFIG = """\
pipeline:
  image_grace_seconds: 0
  other_grace_seconds: 0
identity:
  pubkey: dddddddddddddddddddddddddddddddddddddddddddddddddddddddddddddddd
"""


def _run(args: list[str]) -> subprocess.CompletedProcess:
    repo_root = Path(__file__).resolve().parents[1]

    env = dict(os.environ)
    env.pop("IMGUR_AUTHORIZATION", None)

    existing_pp = env.get("PYTHONPATH", "")
    env["PYTHONPATH"] = (
        f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)
    )

    return subprocess.run(
        [sys.executable, "-m", "notecast", *args],
        cwd=repo_root,
        env=env,
        capture_output=True,
        text=True,
    )


class TestPublishCLI(unittest.TestCase):
    def _setup(self, td: str) -> tuple[Path, Path, Path]:
        cfg_path = Path(td) / "config.yaml"
        cfg_path.write_text(_FAST_CONFIG, encoding="utf-8")
        media = Path(td) / "pic.png"
        media.write_bytes(b"media bytes for upload")
        return cfg_path, media, Path(td) / "out"

    def test_offline_external_link_publish(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path, media, out_dir = self._setup(td)

            proc = _run(
                [
                    "publish",
                    "--config", str(cfg_path),
                    "--media", str(media),
                    "--caption", "hello",
                    "--out", str(out_dir),
                    "--offline",
                ]
            )

            self.assertEqual(proc.returncode, 0, msg=proc.stderr)
            self.assertIn("target=nostr_build:external_link", proc.stdout)
            self.assertIn("progress=0.40 state=remote_processing", proc.stdout)
            self.assertIn("progress=1.00 state=done", proc.stdout)
            self.assertIn("record_id=", proc.stdout)

            records = [
                json.loads(ln)
                for ln in (out_dir / "published.jsonl").read_text(encoding="utf-8").splitlines()
            ]
            self.assertEqual(len(records), 1)
            self.assertEqual(records[0]["kind"], 1063)
            self.assertEqual(records[0]["content"], "hello")
            self.assertEqual(records[0]["pubkey"], "d" * 64)

            events = [
                json.loads(ln)["event"]
                for ln in (out_dir / "run.log").read_text(encoding="utf-8").splitlines()
            ]
            self.assertIn("config_loaded", events)
            self.assertIn("record_broadcast", events)
            self.assertIn("publish_command_completed", events)

    def test_offline_content_addressed_publish(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path, media, out_dir = self._setup(td)

            proc = _run(
                [
                    "publish",
                    "--config", str(cfg_path),
                    "--media", str(media),
                    "--server", "embedded",
                    "--out", str(out_dir),
                    "--offline",
                ]
            )

            self.assertEqual(proc.returncode, 0, msg=proc.stderr)
            self.assertIn("target=embedded:content_addressed", proc.stdout)
            kinds = [
                json.loads(ln)["kind"]
                for ln in (out_dir / "published.jsonl").read_text(encoding="utf-8").splitlines()
            ]
            self.assertEqual(kinds, [1064, 1065])

    def test_unreadable_media_exits_3(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path, _, out_dir = self._setup(td)

            proc = _run(
                [
                    "publish",
                    "--config", str(cfg_path),
                    "--media", str(Path(td) / "missing.png"),
                    "--out", str(out_dir),
                    "--offline",
                ]
            )

            self.assertEqual(proc.returncode, 3, msg=proc.stderr)
            self.assertIn("Failed to upload the image / video", proc.stderr)
            self.assertIn("state=failed", proc.stdout)
            self.assertFalse((out_dir / "published.jsonl").exists())

    def test_missing_credentials_exits_2(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path, media, out_dir = self._setup(td)

            proc = _run(
                [
                    "publish",
                    "--config", str(cfg_path),
                    "--media", str(media),
                    "--server", "imgur",
                    "--out", str(out_dir),
                ]
            )

            self.assertEqual(proc.returncode, 2, msg=proc.stderr)
            self.assertIn("IMGUR_AUTHORIZATION", proc.stderr)


class TestFeedCLI(unittest.TestCase):
    def test_feed_prints_replies_newest_first(self) -> None:
        root_id = "0" * 64
        author = "a" * 64
        events = [
            {"id": "1" * 64, "pubkey": author, "kind": 1, "created_at": 100, "tags": [["e", root_id]], "content": "old"},
            {"id": "2" * 64, "pubkey": author, "kind": 1, "created_at": 200, "tags": [["e", root_id]], "content": "new"},
            {"id": "3" * 64, "pubkey": author, "kind": 1, "created_at": 300, "tags": [], "content": "root"},
            {"id": "4" * 64, "pubkey": author, "kind": 1, "created_at": 5000, "tags": [["e", root_id]], "content": "future"},
        ]

        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text("{}", encoding="utf-8")
            records = Path(td) / "events.jsonl"
            records.write_text("\n".join(json.dumps(e) for e in events) + "\n", encoding="utf-8")

            proc = _run(["feed", "--config", str(cfg_path), "--records", str(records), "--now", "1000"])

            self.assertEqual(proc.returncode, 0, msg=proc.stderr)
            lines = [json.loads(ln) for ln in proc.stdout.splitlines() if ln.strip()]
            self.assertEqual([ln["content"] for ln in lines], ["new", "old"])
            self.assertIn(f"feed_key={'0' * 64}-global", proc.stderr)

            limited = _run(
                ["feed", "--config", str(cfg_path), "--records", str(records), "--now", "1000", "--limit", "1"]
            )
            self.assertEqual(len([ln for ln in limited.stdout.splitlines() if ln.strip()]), 1)


if __name__ == "__main__":
    unittest.main()
