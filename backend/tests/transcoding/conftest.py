"""Fakes for the pipeline collaborators."""

import asyncio
import os
from typing import Optional

import pytest

from pinworker.modules.transcoding.models import (
    Encoded,
    EncoderSettings,
    MediaProfile,
    PinnedArtifact,
    ProgressEvent,
    Remuxed,
    TranscodeOutcome,
    TranscodeStrategy,
)
from pinworker.modules.transcoding.pinning import build_gateway_url
from pinworker.modules.transcoding.ffmpeg import select_strategy
from pinworker.modules.transcoding.service import TranscodePipeline

FAKE_CID = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"
FAKE_GATEWAY = "https://gateway.example/ipfs"


class FakeProber:
    def __init__(self, profile: Optional[MediaProfile] = None, error: Optional[Exception] = None):
        self.profile = profile or MediaProfile("hevc", "opus", 1920, 1080)
        self.error = error
        self.calls: list[str] = []

    async def probe(self, input_path: str) -> MediaProfile:
        self.calls.append(input_path)
        if self.error:
            raise self.error
        return self.profile


class FakeTranscoder:
    """Writes a small output file and reports one progress marker.

    With ``hang`` set it blocks until cancelled instead.
    """

    def __init__(self, outcome: Optional[TranscodeOutcome] = None, error: Optional[Exception] = None):
        self.outcome = outcome
        self.error = error
        self.hang = False
        self.entered = asyncio.Event()
        self.calls: list[dict] = []

    async def transcode(
        self,
        input_path,
        output_path,
        profile,
        encoder,
        request_id="",
        progress_callback=None,
    ) -> TranscodeOutcome:
        self.calls.append({
            "input_path": input_path,
            "output_path": output_path,
            "profile": profile,
            "encoder": encoder,
        })
        if self.hang:
            self.entered.set()
            await asyncio.sleep(3600)
        if self.error:
            raise self.error
        with open(output_path, "wb") as fh:
            fh.write(b"\x00\x00\x00\x18ftypmp42")
        if progress_callback:
            progress_callback(ProgressEvent(request_id, "00:00:01.00", 0.1))
        if self.outcome is not None:
            return self.outcome
        if select_strategy(profile) is TranscodeStrategy.REMUX:
            return Remuxed()
        return Encoded()


class FakeUploader:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: list[dict] = []

    async def pin_file(self, file_path, metadata, name=None) -> PinnedArtifact:
        self.calls.append({
            "file_path": file_path,
            "metadata": metadata,
            "existed": os.path.exists(file_path),
        })
        if self.error:
            raise self.error
        return PinnedArtifact(FAKE_CID, build_gateway_url(FAKE_GATEWAY, FAKE_CID), dict(metadata))


@pytest.fixture
def work_dir(tmp_path) -> str:
    path = tmp_path / "work"
    path.mkdir()
    return str(path)


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def fake_uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def pipeline(fake_prober, fake_transcoder, fake_uploader, recorder, work_dir) -> TranscodePipeline:
    return TranscodePipeline(
        prober=fake_prober,
        transcoder=fake_transcoder,
        uploader=fake_uploader,
        recorder=recorder,
        encoder=EncoderSettings(max_height=720),
        work_dir=work_dir,
    )


@pytest.fixture
def make_input(work_dir):
    """Create a spooled upload in the work directory."""
    def _make(name: str = "clip.mov", payload: bytes = b"fake video bytes") -> str:
        path = os.path.join(work_dir, name)
        with open(path, "wb") as fh:
            fh.write(payload)
        return path
    return _make


@pytest.fixture
def fake_cid() -> str:
    return FAKE_CID
