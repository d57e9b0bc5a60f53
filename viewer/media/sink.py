"""
Renderable-media attachment point.

The signaling runtime hands every MediaHandle (and None on teardown) to a
sink. TrackSink consumes inbound tracks so aiortc keeps decoding:

- RECORD_PATH set   -> one aiortc MediaRecorder per track, written to
                       <stem>-<kind><suffix> (e.g. camera-video.mp4)
- RECORD_PATH unset -> a MediaBlackhole that drains frames

Non-responsibilities:
- No decoding policy, no display, no phase decisions.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from aiortc.contrib.media import MediaBlackhole, MediaRecorder

from observability.logger import log_event
from signaling.state_dataclass import MediaHandle


def recording_path(base: str, kind: str) -> str:
    """camera.mp4 + video -> camera-video.mp4"""
    path = Path(base)
    return str(path.with_name(f"{path.stem}-{kind}{path.suffix}"))


class TrackSink:
    """
    Async callable media sink.

    Tracks already attached are remembered by id so an extended handle
    (second track of the same attempt) only adds the new one.
    """

    def __init__(self, record_path: str | None = None) -> None:
        self._record_path = record_path
        self._recorders: list[MediaRecorder] = []
        self._blackhole: MediaBlackhole | None = None
        self._attached: set[str] = set()
        self._attempt_id: int | None = None

    @property
    def attached_track_count(self) -> int:
        return len(self._attached)

    async def __call__(self, handle: MediaHandle | None) -> None:
        if handle is None:
            await self.stop()
            return

        if self._attempt_id is not None and handle.attempt_id != self._attempt_id:
            await self.stop()
        self._attempt_id = handle.attempt_id

        for track in handle.tracks:
            track_id = str(getattr(track, "id", id(track)))
            if track_id in self._attached:
                continue
            self._attached.add(track_id)
            await self._consume(track)

    async def _consume(self, track: Any) -> None:
        kind = getattr(track, "kind", "media")

        if self._record_path:
            recorder = MediaRecorder(recording_path(self._record_path, kind))
            recorder.addTrack(track)
            await recorder.start()
            self._recorders.append(recorder)
            destination = "recorder"
        else:
            if self._blackhole is None:
                self._blackhole = MediaBlackhole()
            self._blackhole.addTrack(track)
            await self._blackhole.start()
            destination = "blackhole"

        log_event({
            "event_type": "MEDIA_TRACK_ATTACHED",
            "attempt_id": self._attempt_id,
            "kind": kind,
            "destination": destination,
        })

    async def stop(self) -> None:
        """Stop every recorder / blackhole. Safe to call repeatedly."""
        recorders = self._recorders
        blackhole = self._blackhole
        self._recorders = []
        self._blackhole = None
        had_tracks = bool(self._attached)
        self._attached = set()
        self._attempt_id = None

        for recorder in recorders:
            await recorder.stop()
        if blackhole is not None:
            await blackhole.stop()

        if had_tracks:
            log_event({
                "event_type": "MEDIA_DETACHED",
                "recorders": len(recorders),
            })
