"""Configuration constants for silence trimming functionality."""

# Default preset: conservative, tuned for speech with smooth transitions
DEFAULT_FRAME_DURATION = 0.03  # seconds - 30ms RMS analysis frames
DEFAULT_SILENCE_THRESHOLD_SD = 1.25  # standard deviations below mean energy
DEFAULT_MIN_SILENCE_DURATION = 0.75  # seconds - only trim silence longer than this
DEFAULT_EDGE_BUFFER = 0.15  # seconds - padding around kept speech

# Aggressive preset: trims more
AGGRESSIVE_FRAME_DURATION = 0.02  # seconds
AGGRESSIVE_SILENCE_THRESHOLD_SD = 1.0
AGGRESSIVE_MIN_SILENCE_DURATION = 0.5  # seconds
AGGRESSIVE_EDGE_BUFFER = 0.1  # seconds

DEFAULT_PRESET_NAME = "default"
AGGRESSIVE_PRESET_NAME = "aggressive"

# Speech/Silence Classification
ENERGY_EPSILON = 1e-4  # frames at or below this RMS are digital silence

# Segment Map
DEFAULT_SPEED_MULTIPLIER = 1.5  # compacted audio is sent 1.5x faster
TRIM_TOLERANCE_SECONDS = 0.1  # below this difference nothing was trimmed
REMAP_BOUNDARY_TOLERANCE = 1e-9  # seconds - float slack when snapping onto a segment start

# Analysis Batching
ANALYSIS_BATCH_FRAMES = 2048  # frames per cancellation check

# Media Pipeline
FFMPEG_BINARY = "ffmpeg"
FFPROBE_BINARY = "ffprobe"
ATEMPO_MIN = 0.5  # ffmpeg atempo per-stage lower bound
ATEMPO_MAX = 2.0  # ffmpeg atempo per-stage upper bound
EXPORT_AUDIO_CODEC = "aac"
EXPORT_AUDIO_BITRATE = "128k"
EXPORT_SUFFIX = ".m4a"
TRIMMED_FILE_PREFIX = "trimmed_"
SPED_UP_FILE_PREFIX = "spedup_"
COMPRESSED_FILE_PREFIX = "compressed_"
STDERR_TAIL_CHARS = 2000  # characters of ffmpeg stderr kept in errors
CANCEL_POLL_INTERVAL = 0.1  # seconds between cancel_event checks while ffmpeg runs

# Upload Compression
UPLOAD_SAMPLE_RATE = 16000  # Hz - plenty for speech recognition
UPLOAD_CHANNELS = 1  # mono
UPLOAD_BITRATE = 32000  # bits per second

# Audio Decoding
DECODE_SAMPLE_FORMAT = "f32le"
WAV_SUFFIXES = (".wav", ".wave")
