"""Property-based tests for strategy selection and encoder arguments.

Remux happens exactly when the source is H.264 video with AAC audio.
A full encode never upscales and always keeps even dimensions.
"""

import pytest
from hypothesis import given, settings, strategies as st

from pinworker.modules.transcoding.ffmpeg import (
    FFmpegTranscoder,
    get_output_height,
    get_scale_filter,
    select_strategy,
)
from pinworker.modules.transcoding.models import (
    EncoderSettings,
    MediaProfile,
    TranscodeStrategy,
)


codec_strategy = st.one_of(
    st.none(),
    st.sampled_from(["h264", "hevc", "vp9", "av1", "mpeg4", "aac", "opus", "mp3", "H264", ""]),
)
height_strategy = st.one_of(st.none(), st.integers(min_value=2, max_value=4320))
max_height_strategy = st.one_of(st.none(), st.integers(min_value=2, max_value=2160))


class TestStrategySelection:
    """Remux if and only if the codec pair is h264/aac."""

    @given(video=codec_strategy, audio=codec_strategy, height=height_strategy)
    @settings(max_examples=200)
    def test_remux_iff_h264_and_aac(self, video, audio, height) -> None:
        profile = MediaProfile(video_codec=video, audio_codec=audio, width=None, height=height)

        strategy = select_strategy(profile)

        if video == "h264" and audio == "aac":
            assert strategy is TranscodeStrategy.REMUX
        else:
            assert strategy is TranscodeStrategy.ENCODE

    def test_compatible_source_is_remuxed_even_above_height_cap(self) -> None:
        profile = MediaProfile("h264", "aac", 1920, 1080)
        transcoder = FFmpegTranscoder()

        strategy, cmd = transcoder.build_command("in.mp4", "out.mp4", profile, EncoderSettings(max_height=720))

        assert strategy is TranscodeStrategy.REMUX
        assert "-vf" not in cmd
        assert cmd[cmd.index("-c") + 1] == "copy"

    def test_missing_audio_forces_encode(self) -> None:
        assert select_strategy(MediaProfile("h264", None, 640, 360)) is TranscodeStrategy.ENCODE


class TestNoUpscale:
    """The scale filter only ever shrinks the picture."""

    @given(height=height_strategy, max_height=max_height_strategy)
    @settings(max_examples=200)
    def test_output_height_never_exceeds_source(self, height, max_height) -> None:
        profile = MediaProfile("hevc", "opus", None, height)
        encoder = EncoderSettings(max_height=max_height)

        output_height = get_output_height(profile, encoder)

        if height is None:
            assert output_height is None
        else:
            assert output_height <= height
            if max_height is not None:
                assert output_height <= max_height

    @given(height=st.integers(min_value=2, max_value=4320), max_height=st.integers(min_value=2, max_value=2160))
    @settings(max_examples=200)
    def test_scale_filter_present_only_when_source_is_taller(self, height, max_height) -> None:
        profile = MediaProfile("vp9", "opus", None, height)
        scale = get_scale_filter(profile, EncoderSettings(max_height=max_height))

        if height > max_height:
            assert scale is not None
            target = int(scale.split(":")[1])
            assert target % 2 == 0
            assert scale.startswith("scale=-2:")
        else:
            assert scale is None

    def test_no_cap_keeps_source_size(self) -> None:
        assert get_scale_filter(MediaProfile("vp9", "opus", 3840, 2160), EncoderSettings()) is None


class TestCommandBuilding:
    """Arguments passed to ffmpeg for each strategy."""

    def test_remux_command(self) -> None:
        cmd = FFmpegTranscoder("/opt/ffmpeg").build_remux_command("in.mov", "out.mp4")

        assert cmd == [
            "/opt/ffmpeg", "-hide_banner", "-nostdin", "-y",
            "-i", "in.mov",
            "-map", "0:v:0",
            "-map", "0:a:0",
            "-c", "copy",
            "-movflags", "+faststart",
            "-f", "mp4",
            "out.mp4",
        ]

    def test_commands_map_only_the_probed_streams(self) -> None:
        transcoder = FFmpegTranscoder()
        remux = transcoder.build_remux_command("in.mkv", "out.mp4")
        encode = transcoder.build_encode_command(
            "in.mkv", "out.mp4", MediaProfile("hevc", "opus", 1920, 1080), EncoderSettings()
        )

        def maps(cmd):
            return [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]

        assert maps(remux) == ["0:v:0", "0:a:0"]
        assert maps(encode) == ["0:v:0", "0:a:0?"]
        assert remux.index("-map") > remux.index("-i")

    def test_encode_command_uses_configured_encoder(self) -> None:
        encoder = EncoderSettings(preset="slow", crf=18, audio_bitrate="192k", max_height=720, threads=4)
        profile = MediaProfile("hevc", "opus", 1920, 1080)

        cmd = FFmpegTranscoder().build_encode_command("in.mkv", "out.mp4", profile, encoder)

        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-preset") + 1] == "slow"
        assert cmd[cmd.index("-crf") + 1] == "18"
        assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
        assert cmd[cmd.index("-vf") + 1] == "scale=-2:720"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert cmd[cmd.index("-b:a") + 1] == "192k"
        assert cmd[cmd.index("-threads") + 1] == "4"
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert cmd[-1] == "out.mp4"

    def test_encode_command_omits_threads_when_automatic(self) -> None:
        cmd = FFmpegTranscoder().build_encode_command(
            "in.avi", "out.mp4", MediaProfile("mpeg4", "mp3", 640, 480), EncoderSettings()
        )

        assert "-threads" not in cmd
        assert "-vf" not in cmd

    def test_encoder_settings_reject_out_of_range_crf(self) -> None:
        with pytest.raises(ValueError):
            EncoderSettings(crf=52)
