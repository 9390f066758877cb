"""Tests for the ffmpeg media pipeline."""

import asyncio
import math
import shutil
import threading
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest
from scipy.io import wavfile

from trace_audio.silence_trimming.media_pipeline import (
    FfmpegMediaPipeline,
    atempo_chain,
    atempo_filter,
    build_trim_filter_graph,
)
from trace_audio.silence_trimming.models import ExportStatus, TimeRange

WHICH = "trace_audio.silence_trimming.media_pipeline.shutil.which"
CREATE_SUBPROCESS = "trace_audio.silence_trimming.media_pipeline.asyncio.create_subprocess_exec"


def fake_process(returncode: int = 0, stderr: bytes = b"") -> MagicMock:
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(b"", stderr))
    process.wait = AsyncMock(return_value=returncode)
    return process


def hanging_process() -> MagicMock:
    """A running ffmpeg that never finishes on its own."""

    async def communicate():
        await asyncio.sleep(60)
        return b"", b""

    process = fake_process()
    process.returncode = None
    process.communicate = AsyncMock(side_effect=communicate)
    return process


@pytest.mark.unit
class TestAtempo:
    """Test cases for speed factor filters."""

    def test_factor_within_range_is_single_stage(self) -> None:
        assert atempo_chain(1.5) == [1.5]

    def test_large_factor_is_chained(self) -> None:
        stages = atempo_chain(5.0)
        assert all(0.5 <= s <= 2.0 for s in stages)
        assert math.prod(stages) == pytest.approx(5.0)

    def test_small_factor_is_chained(self) -> None:
        stages = atempo_chain(0.2)
        assert all(0.5 <= s <= 2.0 for s in stages)
        assert math.prod(stages) == pytest.approx(0.2)

    def test_non_positive_factor_rejected(self) -> None:
        with pytest.raises(ValueError):
            atempo_chain(0.0)

    def test_unit_speed_is_passthrough(self) -> None:
        assert atempo_filter(1.0) == "anull"

    def test_filter_expression(self) -> None:
        assert atempo_filter(1.5) == "atempo=1.50000000"


@pytest.mark.unit
class TestTrimFilterGraph:
    """Test cases for the trim and concat filter graph."""

    def test_graph_keeps_each_range(self) -> None:
        graph = build_trim_filter_graph([TimeRange(1.0, 3.0), TimeRange(5.0, 7.5)], 1.5)

        assert "[0:a]atrim=start=1.000000:end=3.000000,asetpts=PTS-STARTPTS[a0]" in graph
        assert "[0:a]atrim=start=5.000000:end=7.500000,asetpts=PTS-STARTPTS[a1]" in graph
        assert "[a0][a1]concat=n=2:v=0:a=1[joined]" in graph
        assert graph.endswith("[joined]atempo=1.50000000[out]")

    def test_single_range(self) -> None:
        graph = build_trim_filter_graph([TimeRange(0.0, 2.0)], 1.0)
        assert "concat=n=1" in graph
        assert graph.endswith("[joined]anull[out]")


@pytest.mark.unit
class TestFfmpegMediaPipeline:
    """Test cases for ffmpeg invocation and results."""

    @pytest.mark.asyncio
    async def test_missing_ffmpeg_fails(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        with patch(WHICH, return_value=None):
            result = await pipeline.export_sped_up(tmp_path / "in.wav", 1.5)

        assert result.status is ExportStatus.FAILED
        assert "missing dependency" in result.error

    @pytest.mark.asyncio
    async def test_export_trimmed_without_ranges_fails(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        result = await pipeline.export_trimmed(tmp_path / "in.wav", [], 1.5)
        assert result.status is ExportStatus.FAILED

    @pytest.mark.asyncio
    async def test_export_trimmed_command(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        process = fake_process()

        async def create(*cmd, **kwargs):
            Path(cmd[-1]).write_bytes(b"audio")
            return process

        with patch(WHICH, return_value="/usr/bin/ffmpeg"), patch(
            CREATE_SUBPROCESS, side_effect=create
        ) as mock_exec:
            result = await pipeline.export_trimmed(
                tmp_path / "in.m4a", [TimeRange(1.0, 2.0)], 1.5
            )

        assert result.status is ExportStatus.COMPLETED
        assert result.output_path.parent == tmp_path
        assert result.output_path.name.startswith("trimmed_")
        assert result.output_path.suffix == ".m4a"

        cmd = mock_exec.call_args.args
        assert cmd[0] == "/usr/bin/ffmpeg"
        assert "-filter_complex" in cmd
        assert cmd[cmd.index("-map") + 1] == "[out]"
        assert cmd[-1] == str(result.output_path)

    @pytest.mark.asyncio
    async def test_nonzero_exit_fails_with_stderr(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        process = fake_process(returncode=1, stderr=b"Invalid data found")

        with patch(WHICH, return_value="/usr/bin/ffmpeg"), patch(
            CREATE_SUBPROCESS, AsyncMock(return_value=process)
        ):
            result = await pipeline.export_sped_up(tmp_path / "in.m4a", 1.5)

        assert result.status is ExportStatus.FAILED
        assert "Invalid data found" in result.error
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_cancel_event_kills_ffmpeg(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        process = hanging_process()
        cancel_event = threading.Event()
        cancel_event.set()

        with patch(WHICH, return_value="/usr/bin/ffmpeg"), patch(
            CREATE_SUBPROCESS, AsyncMock(return_value=process)
        ):
            result = await pipeline.export_trimmed(
                tmp_path / "in.m4a", [TimeRange(1.0, 2.0)], 1.5, cancel_event=cancel_event
            )

        assert result.status is ExportStatus.CANCELLED
        process.kill.assert_called_once()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unset_cancel_event_lets_export_finish(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        process = fake_process()

        async def create(*cmd, **kwargs):
            Path(cmd[-1]).write_bytes(b"audio")
            return process

        with patch(WHICH, return_value="/usr/bin/ffmpeg"), patch(
            CREATE_SUBPROCESS, side_effect=create
        ):
            result = await pipeline.export_sped_up(
                tmp_path / "in.m4a", 1.5, cancel_event=threading.Event()
            )

        assert result.status is ExportStatus.COMPLETED
        process.kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_task_cancellation_kills_ffmpeg_and_propagates(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        process = hanging_process()

        with patch(WHICH, return_value="/usr/bin/ffmpeg"), patch(
            CREATE_SUBPROCESS, AsyncMock(return_value=process)
        ):
            task = asyncio.create_task(pipeline.compress_for_upload(tmp_path / "in.m4a"))
            while not process.communicate.called:
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        process.kill.assert_called_once()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_timeout_surfaces_as_timeout(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        process = hanging_process()

        with patch(WHICH, return_value="/usr/bin/ffmpeg"), patch(
            CREATE_SUBPROCESS, AsyncMock(return_value=process)
        ):
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(
                    pipeline.export_sped_up(tmp_path / "in.m4a", 1.5), timeout=0.05
                )

        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_compress_command_uses_upload_settings(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        source = tmp_path / "source.m4a"
        source.write_bytes(b"x" * 4096)
        process = fake_process()

        async def create(*cmd, **kwargs):
            Path(cmd[-1]).write_bytes(b"y" * 1024)
            return process

        with patch(WHICH, return_value="/usr/bin/ffmpeg"), patch(
            CREATE_SUBPROCESS, side_effect=create
        ) as mock_exec:
            result = await pipeline.compress_for_upload(source)

        assert result.succeeded
        assert result.output_path.name.startswith("compressed_")
        cmd = mock_exec.call_args.args
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-ar") + 1] == "16000"
        assert cmd[cmd.index("-b:a") + 1] == "32000"

    def test_release_deletes_file_in_temp_dir(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        output = tmp_path / "trimmed_x.m4a"
        output.write_bytes(b"audio")

        assert pipeline.release(output) is True
        assert not output.exists()

    def test_release_ignores_missing_file(self, tmp_path: Path) -> None:
        pipeline = FfmpegMediaPipeline(temp_dir=tmp_path)
        assert pipeline.release(tmp_path / "gone.m4a") is False

    def test_release_refuses_file_outside_temp_dir(self, tmp_path: Path) -> None:
        temp_dir = tmp_path / "scratch"
        temp_dir.mkdir()
        original = tmp_path / "recording.m4a"
        original.write_bytes(b"audio")
        pipeline = FfmpegMediaPipeline(temp_dir=temp_dir)

        assert pipeline.release(original) is False
        assert original.exists()


@pytest.mark.integration
@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
class TestFfmpegMediaPipelineIntegration:
    """Test cases that run the real ffmpeg binary."""

    @pytest.fixture
    def source_wav(self, tmp_path: Path) -> Path:
        path = tmp_path / "source.wav"
        t = np.arange(16000 * 6) / 16000
        samples = (0.5 * np.sin(2 * np.pi * 220 * t) * 32767).astype(np.int16)
        wavfile.write(path, 16000, samples)
        return path

    @pytest.mark.asyncio
    async def test_export_trimmed_produces_shorter_audio(
        self, tmp_path: Path, source_wav: Path
    ) -> None:
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        pipeline = FfmpegMediaPipeline(temp_dir=out_dir)

        result = await pipeline.export_trimmed(
            source_wav, [TimeRange(0.5, 1.5), TimeRange(3.0, 4.0)], 2.0
        )

        assert result.status is ExportStatus.COMPLETED
        assert result.output_path.stat().st_size > 0
        assert pipeline.release(result.output_path) is True

    @pytest.mark.asyncio
    async def test_compress_for_upload(self, tmp_path: Path, source_wav: Path) -> None:
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        pipeline = FfmpegMediaPipeline(temp_dir=out_dir)

        result = await pipeline.compress_for_upload(source_wav)

        assert result.succeeded
        assert result.output_path.stat().st_size < source_wav.stat().st_size
