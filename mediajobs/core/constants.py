"""
Shared constants for MediaJobs.
Single source of truth, imported by every other module.
"""

import os
import pathlib
import tempfile

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "MediaJobs"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_DATA_DIR = HOME / ".local" / "share" / "mediajobs"
DEFAULT_TMP_ROOT = pathlib.Path(tempfile.gettempdir()) / "mediajobs"
DEFAULT_OUTPUT_ROOT = APP_DATA_DIR / "downloads"
DEFAULT_LOG_DIR = APP_DATA_DIR / "logs"
DB_PATH = APP_DATA_DIR / "jobs.db"
CONFIG_PATH = APP_DATA_DIR / "config.json"

# Environment variable prefix for every configurable value
ENV_PREFIX = "MEDIAJOBS_"

# ── Job type values ───────────────────────────────────────────────────
class JobType:
    TRANSCRIPTION = "transcription"
    ANALYSIS = "analysis"
    DOWNLOAD = "download"

    ALL = (TRANSCRIPTION, ANALYSIS, DOWNLOAD)

# ── Job status values ─────────────────────────────────────────────────
class JobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, PROCESSING, COMPLETED, FAILED)
    TERMINAL = (COMPLETED, FAILED)

# Legal forward transitions (same-status writes are progress updates)
ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PENDING, JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

# ── Progress stage values (process-local snapshots) ───────────────────
class ProgressStage:
    VALIDATING = "validating"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    ANALYZING = "analyzing"
    ANALYZING_PENDING = "analyzing_pending"
    COMPLETE = "complete"
    ERROR = "error"

# Human readable stage labels used in Job.error prefixes
STAGE_LABELS = {
    ProgressStage.VALIDATING: "Validation",
    ProgressStage.DOWNLOADING: "Downloading",
    ProgressStage.PROCESSING: "Audio processing",
    ProgressStage.ANALYZING: "Analysis",
    ProgressStage.ANALYZING_PENDING: "Analysis",
    ProgressStage.COMPLETE: "Finalizing",
    ProgressStage.ERROR: "Pipeline",
}

# ── Media kinds ───────────────────────────────────────────────────────
class MediaKind:
    VIDEO = "video"
    AUDIO = "audio"

    ALL = (VIDEO, AUDIO)

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    INVALID_SOURCE = "ERR_INVALID_SOURCE"
    ACQUISITION = "ERR_ACQUISITION"
    TRANSCODE = "ERR_TRANSCODE"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    TIMEOUT = "ERR_TIMEOUT"
    EMPTY_RESULT = "ERR_EMPTY_RESULT"
    CONTENT_BLOCKED = "ERR_CONTENT_BLOCKED"
    UPSTREAM = "ERR_UPSTREAM"
    PERSISTENCE = "ERR_PERSISTENCE"
    NOT_FOUND = "ERR_NOT_FOUND"
    CANCELLED = "ERR_CANCELLED"
    INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    CONFIGURATION = "ERR_CONFIGURATION"
    UNEXPECTED = "ERR_UNEXPECTED"

MAX_ERROR_MESSAGE_LEN = 2000
MAX_TOOL_OUTPUT_LEN = 300

CANCELLED_MESSAGE = "Job cancelled by user"

# ── Pipeline limits (defaults; overridable through AppConfig) ─────────
MAX_ARTIFACT_MB = 25
MAX_DURATION_SEC = 3600
STAGE_TIMEOUT_SEC = 600
PROBE_TIMEOUT_SEC = 30
UPSTREAM_TIMEOUT_SEC = 300
MIN_ANALYSIS_TEXT_CHARS = 50

# Poll interval while waiting on an external process
SUBPROCESS_POLL_SEC = 0.2

# ── External tools ────────────────────────────────────────────────────
YTDLP_BIN = "yt-dlp"
FFMPEG_BIN = "ffmpeg"
FFPROBE_BIN = "ffprobe"

# ── Audio quality presets ─────────────────────────────────────────────
class AudioFormat:
    MP3 = "mp3"
    WAV = "wav"
    M4A = "m4a"

    ALL = (MP3, WAV, M4A)

class Quality:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    ALL = (LOW, MEDIUM, HIGH)

# format -> codec passed to ffmpeg
AUDIO_CODECS = {
    AudioFormat.MP3: "libmp3lame",
    AudioFormat.M4A: "aac",
    AudioFormat.WAV: "pcm_s16le",
}

# (format, quality) -> (bitrate, sample_rate, channels)
# WAV bitrates are nominal (PCM s16): sample_rate * 16 * channels.
QUALITY_PRESETS = {
    (AudioFormat.MP3, Quality.LOW): ("64k", 22050, 1),
    (AudioFormat.MP3, Quality.MEDIUM): ("128k", 44100, 2),
    (AudioFormat.MP3, Quality.HIGH): ("192k", 48000, 2),
    (AudioFormat.M4A, Quality.LOW): ("64k", 22050, 1),
    (AudioFormat.M4A, Quality.MEDIUM): ("128k", 44100, 2),
    (AudioFormat.M4A, Quality.HIGH): ("256k", 48000, 2),
    (AudioFormat.WAV, Quality.LOW): ("256k", 16000, 1),
    (AudioFormat.WAV, Quality.MEDIUM): ("352k", 22050, 1),
    (AudioFormat.WAV, Quality.HIGH): ("1411k", 44100, 2),
}

DEFAULT_AUDIO_FORMAT = AudioFormat.MP3
DEFAULT_QUALITY = Quality.MEDIUM

# Video height ceilings used when downloading video
VIDEO_HEIGHT_BY_QUALITY = {
    Quality.LOW: 360,
    Quality.MEDIUM: 720,
    Quality.HIGH: 1080,
}

# Extensions the transcription service accepts without re-encoding
DIRECT_TRANSCRIBE_EXTS = {"mp3", "m4a", "wav", "webm", "mp4", "mpga", "mpeg", "ogg", "flac"}

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_START = 0
PROGRESS_VALIDATE = 5
PROGRESS_DOWNLOAD = 10
PROGRESS_DOWNLOAD_DONE = 40
PROGRESS_PROCESS = 45
PROGRESS_PROCESS_DONE = 60
PROGRESS_ANALYZE = 65
PROGRESS_ANALYZE_DONE = 95
PROGRESS_COMPLETE = 100

# ── External services ────────────────────────────────────────────────
OPENAI_API_BASE = "https://api.openai.com/v1"
OPENAI_TRANSCRIBE_MODEL = "whisper-1"

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_MODEL = "gemini-1.5-pro-latest"
GEMINI_SAFETY_THRESHOLD = "BLOCK_MEDIUM_AND_ABOVE"
GEMINI_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
GEMINI_GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 1,
    "topP": 1,
    "maxOutputTokens": 8192,
}

OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
GEMINI_API_KEY_ENV = "GOOGLE_GEMINI_API_KEY"

DEFAULT_ANALYSIS_PROMPT = (
    "Analyze the provided content and produce a structured Markdown report "
    "with level-2 headings: a concise summary, the key points discussed, "
    "techniques or methods explained, tools mentioned, and actionable advice."
)

# ── Web server ───────────────────────────────────────────────────────
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_LIST_LIMIT = 10
MAX_LIST_LIMIT = 200

# ── Misc ──────────────────────────────────────────────────────────────
YOUTUBE_URL_PATTERNS = [
    r'(?:https?://)?(?:www\.)?youtube\.com/watch\?(?:.*&)?v=([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?youtu\.be/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/embed/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/v/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?(?:www\.)?youtube\.com/shorts/([a-zA-Z0-9_-]{11})',
    r'(?:https?://)?m\.youtube\.com/watch\?(?:.*&)?v=([a-zA-Z0-9_-]{11})',
]

# Characters forbidden in file names
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FILENAME_LEN = 200

# Used for os-level process group handling
IS_POSIX = os.name == "posix"
