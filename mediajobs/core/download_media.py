"""
Media acquisition via yt-dlp.
"""

import logging
import subprocess
from pathlib import Path

from mediajobs.core.config import AppConfig
from mediajobs.core.security_utils import run_subprocess_capture, CancelToken
from mediajobs.core.error_codes import (
    AcquisitionError, StageTimeoutError, InvalidSourceError, JobCancelledError,
)
from mediajobs.core.constants import (
    MediaKind, Quality, VIDEO_HEIGHT_BY_QUALITY, MAX_TOOL_OUTPUT_LEN,
)
from mediajobs.core.cleanup import delete_partial_outputs
from mediajobs.core.models_sqlite import MediaArtifact
from mediajobs.core.url_parse import validate_source_url, canonical_url

logger = logging.getLogger(__name__)

OUTPUT_STEM = "source"
_TEMP_SUFFIXES = {'.part', '.ytdl', '.temp'}


def build_format_selector(kind: str, quality: str, max_mb: float) -> str:
    """
    yt-dlp format expression bounded by max_mb.
    Alternatives are tried left to right; the last one has no size filter
    because yt-dlp often lacks size info, --max-filesize still applies.
    """
    limit = f"{int(max_mb)}M"
    if kind == MediaKind.AUDIO:
        first = "worstaudio" if quality == Quality.LOW else "bestaudio"
        return "/".join([
            f"{first}[ext=m4a][filesize<{limit}]",
            f"{first}[filesize<{limit}]",
            f"{first}[filesize_approx<{limit}]",
            first,
        ])

    height = VIDEO_HEIGHT_BY_QUALITY.get(quality, VIDEO_HEIGHT_BY_QUALITY[Quality.MEDIUM])
    return "/".join([
        f"best[height<={height}][ext=mp4][filesize<{limit}]",
        f"best[height<={height}][filesize<{limit}]",
        f"best[height<={height}][filesize_approx<{limit}]",
        f"worst[filesize<{limit}]",
        "worst",
    ])


def find_downloaded_file(output_dir: Path, stem: str = OUTPUT_STEM) -> Path | None:
    """
    Locate the file the downloader actually produced. The requested extension
    is not trusted: remuxing or merging may change it.
    """
    candidates = [
        p for p in output_dir.glob(f"{stem}.*")
        if p.is_file() and p.suffix.lower() not in _TEMP_SUFFIXES
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.stat().st_size)


def acquire_media(source_url: str, kind: str, quality: str,
                  output_dir: Path, config: AppConfig,
                  cancel_token: CancelToken | None = None) -> MediaArtifact:
    """
    Download a remote source into output_dir using yt-dlp.
    Returns the produced artifact (duration not yet probed).
    """
    if kind not in MediaKind.ALL:
        raise InvalidSourceError(f"Unsupported media kind: {kind}")
    video_id = validate_source_url(source_url)

    output_dir.mkdir(parents=True, exist_ok=True)
    output_template = str(output_dir / f"{OUTPUT_STEM}.%(ext)s")

    args = [
        config.get('ytdlp'),
        "--no-playlist",
        "--no-progress",
        "--no-part",
        "-f", build_format_selector(kind, quality, config.max_artifact_mb),
        "--max-filesize", f"{int(config.max_artifact_mb)}M",
        "-o", output_template,
        "--", canonical_url(video_id),
    ]

    timeout = config.stage_timeout_sec
    try:
        result = run_subprocess_capture(args, timeout=timeout, cancel_token=cancel_token)
    except subprocess.TimeoutExpired:
        delete_partial_outputs(output_dir, OUTPUT_STEM)
        raise StageTimeoutError(f"Download exceeded {timeout}s and was terminated")
    except JobCancelledError:
        delete_partial_outputs(output_dir, OUTPUT_STEM)
        raise
    except OSError as e:
        delete_partial_outputs(output_dir, OUTPUT_STEM)
        raise AcquisitionError(f"Could not start downloader: {e}")

    if result.returncode != 0:
        delete_partial_outputs(output_dir, OUTPUT_STEM)
        stderr = (result.stderr or "").strip()
        raise AcquisitionError(
            f"yt-dlp download failed (rc={result.returncode}): {stderr[-MAX_TOOL_OUTPUT_LEN:]}")

    downloaded = find_downloaded_file(output_dir)
    if downloaded is None:
        delete_partial_outputs(output_dir, OUTPUT_STEM)
        stdout = (result.stdout or "").strip()
        raise AcquisitionError(
            "No media file found after download (the source may exceed "
            f"{config.max_artifact_mb:g}MB): {stdout[-MAX_TOOL_OUTPUT_LEN:]}")

    artifact = MediaArtifact.from_path(downloaded)
    logger.info("Downloaded %s for %s: %s (%.1fMB)", kind, video_id, downloaded, artifact.size_mb)
    return artifact
