"""
Audio extraction and transcoding using ffmpeg, duration probing via ffprobe.
"""

import logging
import subprocess
from pathlib import Path

from mediajobs.core.config import AppConfig
from mediajobs.core.security_utils import run_subprocess_capture, CancelToken
from mediajobs.core.error_codes import (
    TranscodeError, PayloadTooLargeError, StageTimeoutError, JobCancelledError,
)
from mediajobs.core.constants import (
    QUALITY_PRESETS, AUDIO_CODECS, AudioFormat, PROBE_TIMEOUT_SEC, MAX_TOOL_OUTPUT_LEN,
)
from mediajobs.core.models_sqlite import MediaArtifact

logger = logging.getLogger(__name__)

OUTPUT_STEM = "audio"


def resolve_preset(fmt: str, quality: str) -> tuple[str, int, int]:
    """Map (format, quality) to (bitrate, sample_rate, channels)."""
    try:
        return QUALITY_PRESETS[(fmt, quality)]
    except KeyError:
        raise TranscodeError(f"Unsupported format/quality: {fmt}/{quality}") from None


def build_ffmpeg_args(ffmpeg: str, input_path: Path, output_path: Path,
                      fmt: str, quality: str,
                      start_time: float | None = None,
                      end_time: float | None = None) -> list[str]:
    bitrate, sample_rate, channels = resolve_preset(fmt, quality)
    args = [ffmpeg, "-y", "-nostdin", "-hide_banner", "-loglevel", "error"]
    if start_time is not None:
        args += ["-ss", f"{start_time:.3f}"]
    args += ["-i", str(input_path)]
    if end_time is not None:
        # -ss before -i resets timestamps, so the cut is a duration
        duration = end_time - (start_time or 0.0)
        args += ["-t", f"{duration:.3f}"]
    args += [
        "-vn",                          # audio only
        "-ar", str(sample_rate),
        "-ac", str(channels),
        "-codec:a", AUDIO_CODECS[fmt],
    ]
    if fmt != AudioFormat.WAV:
        args += ["-b:a", bitrate]
    args.append(str(output_path))
    return args


def extract_audio(input_path: Path, output_dir: Path, config: AppConfig,
                  fmt: str, quality: str,
                  start_time: float | None = None,
                  end_time: float | None = None,
                  cancel_token: CancelToken | None = None) -> MediaArtifact:
    """
    Extract/transcode the audio track of input_path into output_dir.
    The result must fit max_artifact_mb; otherwise PayloadTooLargeError.
    Returns the artifact with its probed duration.
    """
    if start_time is not None and start_time < 0:
        raise TranscodeError(f"Invalid start time: {start_time}")
    if end_time is not None and end_time <= (start_time or 0.0):
        raise TranscodeError(f"End time {end_time} must be after start time {start_time or 0}")

    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"{OUTPUT_STEM}.{fmt}"
    if output_path.resolve() == Path(input_path).resolve():
        output_path = output_dir / f"{OUTPUT_STEM}_out.{fmt}"
    args = build_ffmpeg_args(config.get('ffmpeg'), input_path, output_path,
                             fmt, quality, start_time, end_time)

    timeout = config.stage_timeout_sec
    try:
        result = run_subprocess_capture(args, timeout=timeout, cancel_token=cancel_token)
    except subprocess.TimeoutExpired:
        _discard(output_path)
        raise StageTimeoutError(f"Audio extraction exceeded {timeout}s and was terminated")
    except JobCancelledError:
        _discard(output_path)
        raise
    except OSError as e:
        _discard(output_path)
        raise TranscodeError(f"Could not start ffmpeg: {e}")

    if result.returncode != 0:
        _discard(output_path)
        stderr = (result.stderr or "").strip()
        raise TranscodeError(
            f"ffmpeg failed (rc={result.returncode}): {stderr[-MAX_TOOL_OUTPUT_LEN:]}")

    if not output_path.exists():
        raise TranscodeError("Extracted audio file not created")

    artifact = MediaArtifact.from_path(output_path)
    if artifact.size_bytes > config.max_artifact_bytes:
        _discard(output_path)
        raise PayloadTooLargeError(
            f"Extracted audio is {artifact.size_mb:.1f}MB, limit is "
            f"{config.max_artifact_mb:g}MB; try a lower quality")

    try:
        artifact.duration_seconds = probe_duration(output_path, config, cancel_token)
    except (TranscodeError, StageTimeoutError, JobCancelledError):
        _discard(output_path)
        raise

    logger.info("Extracted audio: %s (%s/%s, %.1fMB, %.1fs)",
                output_path, fmt, quality, artifact.size_mb, artifact.duration_seconds)
    return artifact


def probe_duration(media_path: Path, config: AppConfig,
                   cancel_token: CancelToken | None = None) -> float:
    """Get media duration in seconds using ffprobe. Failure is a TranscodeError."""
    args = [
        config.get('ffprobe'),
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(media_path),
    ]

    try:
        result = run_subprocess_capture(args, timeout=PROBE_TIMEOUT_SEC, cancel_token=cancel_token)
    except subprocess.TimeoutExpired:
        raise StageTimeoutError(f"Duration probe exceeded {PROBE_TIMEOUT_SEC}s")
    except OSError as e:
        raise TranscodeError(f"Could not start ffprobe: {e}")

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise TranscodeError(
            f"ffprobe failed (rc={result.returncode}): {stderr[-MAX_TOOL_OUTPUT_LEN:]}")

    try:
        duration = float(result.stdout.strip().splitlines()[0])
    except (ValueError, IndexError):
        raise TranscodeError(f"ffprobe returned no duration for {media_path.name}")
    if duration <= 0:
        raise TranscodeError(f"ffprobe reported non-positive duration ({duration})")
    return duration


def _discard(output_path: Path):
    try:
        output_path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to delete partial output %s: %s", output_path, e)
