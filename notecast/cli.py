from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Sequence

from .cache import NoteCache
from .config import config_sha256, load_config, resolve_server_credentials
from .config_schema import AppConfig
from .descriptor import HashingDescriptorBuilder
from .errors import ConfigError, DescriptorError, DownloadError, RecordError, UploadError
from .feed_filter import ConversationsFeedFilter
from .media import guess_content_type
from .normalize import load_notes
from .offline import OfflineMediaHost, OfflineSigner, RecordingBroadcaster
from .pipeline import PublishPipeline
from .run_log import RunLogger
from .servers import Identity, ServerRegistry
from .session import ProgressSnapshot
from .transport import HttpFetcher, HttpUploadTransport
from .visibility import VisibilitySet


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="notecast")

    subparsers = parser.add_subparsers(dest="command", required=True)

    publish = subparsers.add_parser(
        "publish",
        help="Upload a media file and write the resulting records to published.jsonl.",
    )
    publish.add_argument("--config", required=True, help="Path to YAML config file.")
    publish.add_argument("--media", required=True, help="Local media file to publish.")
    publish.add_argument("--caption", default="", help="Caption attached to the record.")
    publish.add_argument(
        "--server",
        default=None,
        help="Server name to publish through instead of the identity default.",
    )
    publish.add_argument(
        "--content-type",
        default=None,
        help="Media content type; guessed from the file name when omitted.",
    )
    publish.add_argument("--out", required=True, help="Output directory for records and logs.")
    publish.add_argument(
        "--offline",
        action="store_true",
        help="Host uploads in memory instead of contacting the hosting server.",
    )
    publish.set_defaults(_handler=_cmd_publish)

    feed = subparsers.add_parser(
        "feed",
        help="Print the conversations feed for a records file as JSON lines.",
    )
    feed.add_argument("--config", required=True, help="Path to YAML config file.")
    feed.add_argument("--records", required=True, help="JSON or JSONL file of events.")
    feed.add_argument(
        "--now",
        type=int,
        default=None,
        help="Evaluation instant in unix seconds (defaults to the current time).",
    )
    feed.add_argument("--limit", type=int, default=0, help="Maximum notes to print (0 = all).")
    feed.set_defaults(_handler=_cmd_feed)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _print_progress(snapshot: ProgressSnapshot) -> None:
    label = snapshot.stage_label or "-"
    print(f"progress={snapshot.progress:.2f} state={snapshot.state.value} stage={label}")


def _build_pipeline(
    cfg: AppConfig,
    *,
    registry: ServerRegistry,
    server_name: str | None,
    offline: bool,
    broadcaster: RecordingBroadcaster,
    log: RunLogger,
) -> PublishPipeline:
    if offline:
        host = OfflineMediaHost()
        uploader, fetcher = host, host
    else:
        wanted = [server_name or cfg.identity.default_server]
        authorization = resolve_server_credentials(cfg, wanted)
        uploader = HttpUploadTransport(
            timeout_seconds=cfg.pipeline.upload_timeout_seconds,
            authorization=authorization,
        )
        fetcher = HttpFetcher(timeout_seconds=cfg.pipeline.download_timeout_seconds)

    return PublishPipeline(
        registry=registry,
        uploader=uploader,
        fetcher=fetcher,
        describer=HashingDescriptorBuilder(),
        signer=OfflineSigner(),
        broadcaster=broadcaster,
        config=cfg.pipeline,
        logger=log.bind(component="pipeline", offline=offline),
    )


def _cmd_publish(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    log_path = out_dir / "run.log"
    with RunLogger.open(log_path, overwrite=True) as log:
        log.info("publish_command_started", config_path=str(args.config), media=str(args.media))

        try:
            cfg = load_config(args.config)
            log.info("config_loaded", config_sha256=config_sha256(cfg))

            media = Path(args.media)
            registry = ServerRegistry.from_config(cfg.servers)
            identity = Identity(pubkey=cfg.identity.pubkey, default_server=cfg.identity.default_server)
            broadcaster = RecordingBroadcaster(out_dir / "published.jsonl")

            pipeline = _build_pipeline(
                cfg,
                registry=registry,
                server_name=args.server,
                offline=bool(args.offline),
                broadcaster=broadcaster,
                log=log,
            )

            content_type = args.content_type or guess_content_type(media)
            pipeline.load(identity, media, content_type)
            if args.server:
                if pipeline.select_server(args.server) is None:
                    raise ConfigError(f"Unknown server: {args.server!r}")
            pipeline.set_caption(args.caption)

            failures: list[str] = []
            pipeline.progress.subscribe(_print_progress)
            pipeline.errors.subscribe(failures.append)

            target = pipeline.session.target
            print(f"target={target.key if target is not None else '-'}")

            ok = asyncio.run(pipeline.upload())

            for record in broadcaster.published:
                print(f"record_id={record.id} kind={record.kind}")
            print(f"published_jsonl={out_dir / 'published.jsonl'}")
            print(f"run_log={log_path}")

            if not ok:
                for message in failures:
                    _eprint(message)
                log.error("publish_command_failed", failures=failures)
                return 3

            log.info("publish_command_completed", records=[r.id for r in broadcaster.published])
            return 0
        except Exception as e:
            log.exception("publish_command_failed", exc=e)
            raise


def _cmd_feed(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)

    cache = NoteCache()
    cache.add_many(load_notes(args.records))

    visibility = VisibilitySet.from_config(cfg.feed, default_viewer=cfg.identity.pubkey)
    now = args.now if args.now is not None else int(time.time())
    feed_filter = ConversationsFeedFilter(visibility, clock=lambda: float(now))

    notes = feed_filter.feed(cache)
    if args.limit and args.limit > 0:
        notes = notes[: args.limit]

    print(f"feed_key={feed_filter.feed_key()}", file=sys.stderr)
    for note in notes:
        print(
            json.dumps(
                {
                    "id": note.id,
                    "pubkey": note.author,
                    "created_at": note.created_at,
                    "kind": note.kind,
                    "content": note.content,
                },
                ensure_ascii=False,
                sort_keys=True,
            )
        )

    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (UploadError, DownloadError, DescriptorError, RecordError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
