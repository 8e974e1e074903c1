"""
Diagnostics: external tool version detection and service key checks.
"""

import logging
import shutil

from mediajobs.core.config import AppConfig
from mediajobs.core.security_utils import run_subprocess_capture

logger = logging.getLogger(__name__)


def get_tool_version(binary: str, version_flag: str) -> str:
    """Return the first line of a tool's version output, or an error string."""
    try:
        result = run_subprocess_capture([binary, version_flag], timeout=10)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip().splitlines()[0]
        return f"Error (rc={result.returncode})"
    except FileNotFoundError:
        return "Not installed"
    except Exception as e:
        return f"Error: {e}"


def missing_tools(config: AppConfig) -> list[str]:
    """Names of required external tools not found on PATH."""
    return [
        config.get(key) for key in ('ytdlp', 'ffmpeg', 'ffprobe')
        if not shutil.which(config.get(key))
    ]


def get_diagnostics(config: AppConfig) -> dict:
    """Gather all diagnostic information. Never includes key values."""
    return {
        "ytdlp_version": get_tool_version(config.get('ytdlp'), "--version"),
        "ffmpeg_version": get_tool_version(config.get('ffmpeg'), "-version"),
        "ffprobe_version": get_tool_version(config.get('ffprobe'), "-version"),
        "openai_key_configured": bool(config.openai_api_key),
        "gemini_key_configured": bool(config.gemini_api_key),
    }
