"""Tests for the ffmpeg executor: progress parsing, diagnostic tail, exit handling.

A small shell script stands in for the ffmpeg binary.
"""

import asyncio
import os
import stat

import pytest
from hypothesis import given, settings, strategies as st

from pinworker.modules.transcoding.errors import EncodeError
from pinworker.modules.transcoding.ffmpeg import (
    DIAGNOSTIC_TAIL_BYTES,
    DiagnosticTail,
    FFmpegTranscoder,
    ProgressScanner,
)
from pinworker.modules.transcoding.models import (
    Encoded,
    EncoderSettings,
    MediaProfile,
    Remuxed,
    TranscodeFailed,
    TranscodeStrategy,
)


def write_stub(tmp_path, name: str, body: str) -> str:
    path = tmp_path / name
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


# Writes its last argument (the output path) and reports two progress markers
SUCCESS_STUB = """
for last; do :; done
printf 'frame=  10 fps=0.0 q=28.0 size=0kB time=00:00:01.00 bitrate=0.0kbits/s\\r' >&2
printf 'frame=  20 fps=20 q=28.0 size=1kB time=00:00:02.50 bitrate=1.0kbits/s\\r' >&2
printf 'video:1kB audio:1kB\\n' >&2
printf 'mp4' > "$last"
exit 0
"""

FAILURE_STUB = """
printf 'Invalid data found when processing input\\n' >&2
exit 1
"""


class TestProgressScanner:
    """Progress markers are found however the stream is chunked."""

    def test_markers_in_one_chunk(self) -> None:
        scanner = ProgressScanner()

        found = scanner.feed(b"frame=1 time=00:00:01.00 x\rframe=2 time=00:01:02.25 y\r")

        assert found == ["00:00:01.00", "00:01:02.25"]

    def test_marker_split_across_chunks(self) -> None:
        scanner = ProgressScanner()

        assert scanner.feed(b"frame=1 ti") == []
        assert scanner.feed(b"me=00:00:0") == []
        assert scanner.feed(b"3.40 bitrate\r") == ["00:00:03.40"]

    def test_unterminated_tail_is_flushed(self) -> None:
        scanner = ProgressScanner()

        assert scanner.feed(b"time=00:00:09.99") == []
        assert scanner.flush() == ["00:00:09.99"]

    def test_malformed_timestamps_are_ignored(self) -> None:
        scanner = ProgressScanner()

        assert scanner.feed(b"time=N/A bitrate=N/A\rtime=0:0:1.0\r") == []

    @given(
        seconds=st.lists(st.integers(min_value=0, max_value=359999), min_size=1, max_size=20),
        cut=st.integers(min_value=1, max_value=64),
    )
    @settings(max_examples=100)
    def test_chunking_does_not_change_markers(self, seconds, cut) -> None:
        stamps = [
            f"{s // 3600 % 100:02d}:{s // 60 % 60:02d}:{s % 60:02d}.{s % 100:02d}"
            for s in seconds
        ]
        stream = b"".join(f"frame={i} time={t} bitrate=1\r".encode() for i, t in enumerate(stamps))

        scanner = ProgressScanner()
        found = []
        for start in range(0, len(stream), cut):
            found.extend(scanner.feed(stream[start:start + cut]))
        found.extend(scanner.flush())

        assert found == stamps


class TestDiagnosticTail:
    """Only the last bytes of ffmpeg's stderr are kept."""

    @given(chunks=st.lists(st.binary(min_size=0, max_size=3000), max_size=10))
    @settings(max_examples=100)
    def test_tail_is_bounded_suffix(self, chunks) -> None:
        tail = DiagnosticTail()
        for chunk in chunks:
            tail.feed(chunk)

        everything = b"".join(chunks)
        assert tail.text() == everything[-DIAGNOSTIC_TAIL_BYTES:].decode("utf-8", errors="replace")


class TestTranscodeExecution:
    """Running the executor against a stand-in binary."""

    @pytest.mark.asyncio
    async def test_encode_reports_progress_and_succeeds(self, tmp_path) -> None:
        ffmpeg = write_stub(tmp_path, "ffmpeg", SUCCESS_STUB)
        output = str(tmp_path / "out.mp4")
        events = []

        outcome = await FFmpegTranscoder(ffmpeg).transcode(
            str(tmp_path / "in.mkv"),
            output,
            MediaProfile("hevc", "opus", 1920, 1080),
            EncoderSettings(),
            request_id="req-1",
            progress_callback=events.append,
        )

        assert isinstance(outcome, Encoded)
        assert outcome.succeeded
        assert os.path.exists(output)
        assert [e.timestamp for e in events] == ["00:00:01.00", "00:00:02.50"]
        assert all(e.request_id == "req-1" for e in events)

    @pytest.mark.asyncio
    async def test_compatible_source_is_remuxed(self, tmp_path) -> None:
        ffmpeg = write_stub(tmp_path, "ffmpeg", SUCCESS_STUB)

        outcome = await FFmpegTranscoder(ffmpeg).transcode(
            str(tmp_path / "in.mp4"),
            str(tmp_path / "out.mp4"),
            MediaProfile("h264", "aac", 1920, 1080),
            EncoderSettings(max_height=720),
        )

        assert isinstance(outcome, Remuxed)
        assert outcome.strategy is TranscodeStrategy.REMUX

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_failed_outcome_with_tail(self, tmp_path) -> None:
        ffmpeg = write_stub(tmp_path, "ffmpeg", FAILURE_STUB)

        outcome = await FFmpegTranscoder(ffmpeg).transcode(
            str(tmp_path / "in.mkv"),
            str(tmp_path / "out.mp4"),
            MediaProfile("hevc", "opus", 640, 360),
            EncoderSettings(),
        )

        assert isinstance(outcome, TranscodeFailed)
        assert not outcome.succeeded
        assert outcome.exit_code == 1
        assert "Invalid data found" in outcome.diagnostic_tail

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_abort(self, tmp_path) -> None:
        ffmpeg = write_stub(tmp_path, "ffmpeg", SUCCESS_STUB)

        def explode(event):
            raise RuntimeError("listener gone")

        outcome = await FFmpegTranscoder(ffmpeg).transcode(
            str(tmp_path / "in.mkv"),
            str(tmp_path / "out.mp4"),
            MediaProfile("vp9", "opus", 640, 360),
            EncoderSettings(),
            progress_callback=explode,
        )

        assert outcome.succeeded

    @pytest.mark.asyncio
    async def test_missing_binary_raises_encode_error(self, tmp_path) -> None:
        transcoder = FFmpegTranscoder(str(tmp_path / "no-such-ffmpeg"))

        with pytest.raises(EncodeError):
            await transcoder.transcode(
                str(tmp_path / "in.mkv"),
                str(tmp_path / "out.mp4"),
                MediaProfile("vp9", "opus", 640, 360),
                EncoderSettings(),
            )

    @pytest.mark.asyncio
    async def test_cancellation_kills_ffmpeg(self, tmp_path) -> None:
        pid_file = tmp_path / "ffmpeg.pid"
        ffmpeg = write_stub(tmp_path, "ffmpeg", f"echo $$ > '{pid_file}'\nexec sleep 3600\n")

        task = asyncio.create_task(FFmpegTranscoder(ffmpeg).transcode(
            str(tmp_path / "in.mkv"),
            str(tmp_path / "out.mp4"),
            MediaProfile("vp9", "opus", 640, 360),
            EncoderSettings(),
        ))
        for _ in range(400):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.025)
        pid = int(pid_file.read_text())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    def test_from_exit_message_includes_code_and_tail(self) -> None:
        error = EncodeError.from_exit(1, "moov atom not found")

        assert str(error) == "ffmpeg exited with 1: moov atom not found"
        assert error.exit_code == 1
        assert error.status_code == 500
