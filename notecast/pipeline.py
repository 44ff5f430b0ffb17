from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from .channel import BroadcastChannel, SubscriberError
from .collaborators import (
    Broadcaster,
    DescriptorBuilder,
    MediaFetcher,
    MediaReader,
    RecordSigner,
    UploadTransport,
)
from .config_schema import PipelineConfig
from .media import FileDescriptor, is_image, is_video
from .records import SignedRecord, build_content_addressed_record, build_external_link_record
from .run_log import RunLogger
from .servers import Identity, ServerRegistry, ServerTarget
from .session import PipelineState, ProgressSnapshot, UploadSession
from .transport import LocalFileReader

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]

# Progress baselines per stage.
_UPLOAD_STARTED = 0.10
_LINK_REMOTE_PROCESSING = 0.40
_LINK_DOWNLOADING = 0.60
_LINK_HASHING = 0.80
_LINK_SENDING = 0.90
_EMBED_HASHING = 0.20
_EMBED_SIGNING = 0.30
_EMBED_SENDING = 0.60
_DONE = 1.00


class PublishPipeline:
    """
    Drives one upload session from selected media to a broadcast record.

    `upload()` runs every stage as one coroutine. Blocking collaborator calls
    go to the default thread pool, so session fields are only written from the
    event loop. Each `upload()` and `cancel()` bumps the session generation;
    work that resumes under an older generation is dropped without touching
    the session.
    """

    def __init__(
        self,
        *,
        registry: ServerRegistry,
        uploader: UploadTransport,
        fetcher: MediaFetcher,
        describer: DescriptorBuilder,
        signer: RecordSigner,
        broadcaster: Broadcaster,
        reader: MediaReader | None = None,
        config: PipelineConfig | None = None,
        logger: RunLogger | None = None,
        sleep_fn: SleepFn | None = None,
        clock: ClockFn | None = None,
    ) -> None:
        self._registry = registry
        self._uploader = uploader
        self._fetcher = fetcher
        self._describer = describer
        self._signer = signer
        self._broadcaster = broadcaster
        self._reader = reader or LocalFileReader()
        self._cfg = config or PipelineConfig()
        self._log = logger
        self._sleep = sleep_fn or asyncio.sleep
        self._clock = clock or time.time

        self.session = UploadSession()
        self.errors: BroadcastChannel[str] = BroadcastChannel()
        self.progress: BroadcastChannel[ProgressSnapshot] = BroadcastChannel()

        self._identity: Identity | None = None
        self._generation = 0
        self._on_uploaded: Callable[[], None] = lambda: None

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def generation(self) -> int:
        return self._generation

    def on_uploaded(self, fn: Callable[[], None]) -> None:
        """Register the callback invoked once per successful publish."""
        self._on_uploaded = fn

    def load(self, identity: Identity, media_ref: Any, content_type: str | None) -> None:
        self._identity = identity
        self.session.bind_media(media_ref, content_type)
        self.session.target = self._registry.preferred_for_load(identity)
        self._info("media_loaded", target=self._target_key(), content_type=self.session.content_type)

    def select_server(self, server: str) -> ServerTarget | None:
        """Pick a target by server name; servers with both protocols resolve to external-link."""
        target = self._registry.resolve(server)
        if target is not None:
            self.session.target = target
        return target

    def set_caption(self, caption: str) -> None:
        self.session.caption = caption or ""

    def is_image(self) -> bool:
        return is_image(self.session.content_type)

    def is_video(self) -> bool:
        return is_video(self.session.content_type)

    def can_post(self) -> bool:
        s = self.session
        return not s.is_uploading and s.media_ref is not None and s.target is not None

    def cancel(self) -> None:
        self._generation += 1
        self._reset_to_idle()

    async def upload(self) -> bool:
        """Run the whole pipeline; True when a record reached DONE."""
        s = self.session
        media_ref = s.media_ref
        target = s.target
        if media_ref is None or target is None or s.is_uploading:
            return False

        self._generation += 1
        gen = self._generation
        caption = s.caption
        s.is_uploading = True

        if target.is_content_addressed:
            self._advance(gen, PipelineState.UPLOADING, _UPLOAD_STARTED, "Loading")
            try:
                data = self._reader.read_bytes(media_ref)
            except Exception as e:
                self._fail(gen, "media_read_failed", e, clear_media=False)
                return False
            return await self._finish_content_addressed(gen, data, s.content_type, caption)

        self._advance(gen, PipelineState.UPLOADING, _UPLOAD_STARTED, "Uploading")
        try:
            uploaded = await asyncio.to_thread(
                self._uploader.upload, media_ref, target, content_type=s.content_type
            )
        except Exception as e:
            if self._is_current(gen, "upload"):
                self._fail(gen, "upload_failed", e, clear_media=False)
            return False

        if not self._is_current(gen, "upload"):
            return False

        mime = uploaded.mime_type or s.content_type
        return await self._finish_external_link(gen, uploaded.url, mime, caption)

    def grace_seconds(self, mime_type: str | None) -> float:
        if (mime_type or "").strip().lower().startswith("image/"):
            return float(self._cfg.image_grace_seconds)
        return float(self._cfg.other_grace_seconds)

    async def _finish_external_link(
        self, gen: int, url: str, mime_type: str | None, caption: str
    ) -> bool:
        self._advance(gen, PipelineState.REMOTE_PROCESSING, _LINK_REMOTE_PROCESSING, "Server Processing")

        # Hosting servers may not serve the asset right after the upload returns.
        await self._sleep(self.grace_seconds(mime_type))
        if not self._is_current(gen, "remote_processing"):
            return False

        self._advance(gen, PipelineState.DOWNLOADING, _LINK_DOWNLOADING, "Downloading")
        try:
            data = await asyncio.to_thread(self._fetcher.fetch, url)
        except Exception as e:
            if self._is_current(gen, "download"):
                self._fail(gen, "download_failed", e, clear_media=True, url=url)
            return False

        if not self._is_current(gen, "download"):
            return False

        self._advance(gen, PipelineState.HASHING, _LINK_HASHING, "Hashing")
        descriptor = await self._describe(gen, data, url, mime_type, caption)
        if descriptor is None:
            return False

        self._advance(gen, PipelineState.SIGNING, self.session.progress, "Signing")
        signed = await self._sign(gen, lambda: self._sign_external_link(descriptor, url))
        if not self._is_current(gen, "signing"):
            return False

        if signed is not None:
            self._advance(gen, PipelineState.SENDING, _LINK_SENDING, "Sending")
            await self._send(gen, signed, None)
            if not self._is_current(gen, "sending"):
                return False

        return self._complete(gen)

    async def _finish_content_addressed(
        self, gen: int, data: bytes, mime_type: str | None, caption: str
    ) -> bool:
        self._advance(gen, PipelineState.HASHING, _EMBED_HASHING, "Hashing")
        descriptor = await self._describe(gen, data, "", mime_type, caption)
        if descriptor is None:
            return False

        self._advance(gen, PipelineState.SIGNING, _EMBED_SIGNING, "Signing")
        pair = await self._sign(gen, lambda: self._sign_content_addressed(data, descriptor))
        if not self._is_current(gen, "signing"):
            return False

        if pair is not None:
            primary, companion = pair
            self._advance(gen, PipelineState.SENDING, _EMBED_SENDING, "Sending")
            await self._send(gen, primary, companion)
            if not self._is_current(gen, "sending"):
                return False

        return self._complete(gen)

    async def _describe(
        self, gen: int, data: bytes, url: str, mime_type: str | None, caption: str
    ) -> FileDescriptor | None:
        try:
            descriptor = await asyncio.to_thread(self._describer.build, data, url, mime_type, caption)
        except Exception as e:
            if self._is_current(gen, "hashing"):
                self._fail(gen, "descriptor_failed", e, clear_media=True, url=url or None)
            return None

        if not self._is_current(gen, "hashing"):
            return None
        return descriptor

    def _sign_external_link(self, descriptor: FileDescriptor, url: str) -> SignedRecord | None:
        record = build_external_link_record(
            descriptor, author=self._author(), created_at=int(self._clock()), url=url
        )
        return self._signer.sign_external_link(record)

    def _sign_content_addressed(
        self, data: bytes, descriptor: FileDescriptor
    ) -> tuple[SignedRecord, SignedRecord] | None:
        record = build_content_addressed_record(
            data, descriptor, author=self._author(), created_at=int(self._clock())
        )
        return self._signer.sign_content_addressed(record)

    async def _sign(self, gen: int, fn: Callable[[], Any]) -> Any:
        # A record that cannot be built or signed skips Sending but does not fail the run.
        try:
            result = await asyncio.to_thread(fn)
        except Exception as e:
            self._exception(gen, "signing_failed", e)
            return None
        if result is None:
            self._warning(gen, "signing_returned_nothing")
        return result

    async def _send(self, gen: int, record: SignedRecord, companion: SignedRecord | None) -> None:
        try:
            await asyncio.to_thread(self._broadcaster.publish, record, companion)
        except Exception as e:
            self._exception(gen, "broadcast_failed", e, record_id=record.id)
            return
        self._info(
            "record_broadcast",
            generation=gen,
            record_id=record.id,
            kind=record.kind,
            companion_id=companion.id if companion is not None else None,
        )

    def _complete(self, gen: int) -> bool:
        self._advance(gen, PipelineState.DONE, _DONE, None)
        self.session.is_uploading = False

        try:
            self._on_uploaded()
        except Exception as e:
            self._exception(gen, "completion_callback_failed", e)

        if self._generation == gen:
            self._reset_to_idle()
        return True

    def _fail(
        self,
        gen: int,
        event: str,
        exc: BaseException,
        *,
        clear_media: bool,
        url: str | None = None,
    ) -> None:
        self._exception(gen, event, exc, url=url)

        s = self.session
        if clear_media:
            s.clear(self._registry.default_for(self._identity))
        s.state = PipelineState.FAILED
        s.progress = 0.0
        s.stage_label = None
        s.is_uploading = False
        self._publish_progress(gen)

        try:
            self.errors.emit(self._cfg.failure_message)
        except SubscriberError as e:
            self._exception(gen, "error_subscriber_failed", e)

    def _reset_to_idle(self) -> None:
        s = self.session
        s.clear(self._registry.default_for(self._identity))
        s.state = PipelineState.IDLE
        self._publish_progress(self._generation)

    def _advance(
        self, gen: int, state: PipelineState, progress: float, label: str | None
    ) -> None:
        s = self.session
        s.state = state
        s.progress = float(progress)
        s.stage_label = label
        self._info("stage_entered", generation=gen, state=state.value, progress=s.progress)
        self._publish_progress(gen)

    def _publish_progress(self, gen: int) -> None:
        try:
            self.progress.emit(self.session.snapshot(gen))
        except SubscriberError as e:
            self._exception(gen, "progress_subscriber_failed", e)

    def _is_current(self, gen: int, stage: str) -> bool:
        if gen == self._generation:
            return True
        self._info("stale_result_discarded", generation=gen, current=self._generation, stage=stage)
        return False

    def _author(self) -> str:
        if self._identity is None:
            raise ValueError("no identity loaded")
        return self._identity.pubkey

    def _target_key(self) -> str | None:
        target = self.session.target
        return target.key if target is not None else None

    def _info(self, event: str, **data: Any) -> None:
        if self._log is not None:
            self._log.info(event, **data)

    def _warning(self, gen: int, event: str, **data: Any) -> None:
        if self._log is not None:
            self._log.warning(event, generation=gen, **data)

    def _exception(self, gen: int, event: str, exc: BaseException, *, url: str | None = None, **data: Any) -> None:
        if self._log is not None:
            self._log.exception(event, exc=exc, url=url, generation=gen, **data)
