"""Decoding of recorded audio files into float samples for analysis."""

import json
import shutil
import subprocess
from pathlib import Path

import numpy as np
from scipy.io import wavfile

from .config import DECODE_SAMPLE_FORMAT, FFMPEG_BINARY, FFPROBE_BINARY, WAV_SUFFIXES
from .exceptions import AudioFileNotFoundError, InvalidAudioFormatError
from .logging_utils import get_logger
from .models import DecodedAudio

logger = get_logger(__name__)


def pcm_to_float(data: np.ndarray) -> np.ndarray:
    """
    Convert PCM samples of any WAV sample format to float32 in [-1, 1].

    Args:
        data: Samples as returned by scipy.io.wavfile.read

    Returns:
        float32 array with the same shape
    """
    if data.dtype == np.uint8:
        return (data.astype(np.float32) - 128.0) / 128.0
    if np.issubdtype(data.dtype, np.integer):
        scale = float(np.iinfo(data.dtype).max) + 1.0
        return data.astype(np.float32) / scale
    if np.issubdtype(data.dtype, np.floating):
        return data.astype(np.float32, copy=False)
    raise InvalidAudioFormatError(f"Unsupported sample format: {data.dtype}")


def load_audio(path: str | Path) -> DecodedAudio:
    """
    Decode an audio file for analysis.

    WAV files are read directly; any other container is decoded with ffmpeg.

    Args:
        path: Audio file path

    Returns:
        DecodedAudio with samples shaped (frames,) or (frames, channels)

    Raises:
        AudioFileNotFoundError: If the file does not exist
        InvalidAudioFormatError: If the file cannot be decoded or is empty
    """
    audio_path = Path(path).expanduser()
    if not audio_path.is_file():
        logger.error(f"Audio file not found at path: {audio_path}")
        raise AudioFileNotFoundError(f"Audio file not found: {audio_path}")

    if audio_path.suffix.lower() in WAV_SUFFIXES:
        audio = _load_wav(audio_path)
    else:
        audio = _load_with_ffmpeg(audio_path)

    if audio.frame_count == 0:
        raise InvalidAudioFormatError(f"Audio file contains no samples: {audio_path}")

    logger.debug(
        f"Decoded {audio_path.name}: {audio.duration:.2f}s, "
        f"{audio.sample_rate}Hz, {audio.channels} channel(s)"
    )
    return audio


def _load_wav(path: Path) -> DecodedAudio:
    try:
        sample_rate, data = wavfile.read(path)
    except (ValueError, OSError) as e:
        raise InvalidAudioFormatError(f"Failed to read WAV file {path}: {e}") from e
    if sample_rate <= 0:
        raise InvalidAudioFormatError(f"Invalid sample rate {sample_rate} in {path}")
    return DecodedAudio(samples=pcm_to_float(data), sample_rate=int(sample_rate))


def probe_audio_stream(path: Path) -> tuple[int, int]:
    """
    Read sample rate and channel count of the first audio stream.

    Args:
        path: Media file path

    Returns:
        Tuple of (sample_rate, channels)

    Raises:
        InvalidAudioFormatError: If ffprobe is missing or finds no usable stream
    """
    cmd = [
        _require_binary(FFPROBE_BINARY),
        "-v", "error",
        "-select_streams", "a:0",
        "-show_entries", "stream=sample_rate,channels",
        "-of", "json",
        str(path),
    ]
    proc = subprocess.run(cmd, capture_output=True, text=True)
    if proc.returncode != 0:
        raise InvalidAudioFormatError(
            f"ffprobe could not read {path}: {proc.stderr.strip()}"
        )

    try:
        streams = json.loads(proc.stdout).get("streams", [])
    except json.JSONDecodeError as e:
        raise InvalidAudioFormatError(f"Unreadable ffprobe output for {path}") from e
    if not streams:
        raise InvalidAudioFormatError(f"No audio stream found in {path}")

    stream = streams[0]
    sample_rate = int(stream.get("sample_rate", 0))
    channels = int(stream.get("channels", 0))
    if sample_rate <= 0 or channels <= 0:
        raise InvalidAudioFormatError(
            f"Invalid audio stream in {path}: sample_rate={sample_rate}, channels={channels}"
        )
    return sample_rate, channels


def _load_with_ffmpeg(path: Path) -> DecodedAudio:
    sample_rate, channels = probe_audio_stream(path)
    cmd = [
        _require_binary(FFMPEG_BINARY),
        "-hide_banner", "-loglevel", "error",
        "-i", str(path),
        "-vn", "-sn",
        "-f", DECODE_SAMPLE_FORMAT,
        "-acodec", f"pcm_{DECODE_SAMPLE_FORMAT}",
        "-ar", str(sample_rate),
        "-ac", str(channels),
        "pipe:1",
    ]
    logger.trace(f"Decoding with: {' '.join(cmd)}")
    proc = subprocess.run(cmd, capture_output=True)
    if proc.returncode != 0:
        stderr_text = proc.stderr.decode("utf-8", errors="replace").strip()
        raise InvalidAudioFormatError(f"ffmpeg could not decode {path}: {stderr_text}")

    samples = np.frombuffer(proc.stdout, dtype="<f4")
    usable = (samples.size // channels) * channels
    samples = samples[:usable]
    if channels > 1:
        samples = samples.reshape(-1, channels)
    return DecodedAudio(samples=samples, sample_rate=sample_rate)


def _require_binary(name: str) -> str:
    location = shutil.which(name)
    if location is None:
        raise InvalidAudioFormatError(f"Missing dependency for decoding: {name}")
    return location
