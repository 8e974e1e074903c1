#!/usr/bin/env python3
"""
MediaJobs v1.0.0: main entry point.
Starts the HTTP job service with uvicorn.
"""

import sys
import os
import logging
import shutil
import traceback
from pathlib import Path
from datetime import datetime

import uvicorn

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mediajobs.core.constants import APP_NAME, APP_VERSION
from mediajobs.core.config import AppConfig
from mediajobs.core.diagnostics import missing_tools

logger = logging.getLogger("mediajobs")


def setup_logging(config: AppConfig) -> Path:
    """Log to <log_dir>/app.log and to stderr."""
    log_dir = config.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "app.log"

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    return log_file


def check_prerequisites(config: AppConfig):
    """Check that yt-dlp, ffmpeg and ffprobe are available; exit if not."""
    missing = missing_tools(config)
    if missing:
        logger.error("Missing tools: %s. PATH = %s", ", ".join(missing), os.environ.get("PATH", ""))
        sys.exit(1)

    for key in ('ytdlp', 'ffmpeg', 'ffprobe'):
        logger.info("%s found at: %s", config.get(key), shutil.which(config.get(key)))

    if not config.openai_api_key:
        logger.warning("OpenAI API key not set; transcription jobs will fail")
    if not config.gemini_api_key:
        logger.warning("Gemini API key not set; media analysis jobs will fail")


def main():
    config = AppConfig()
    log_file = setup_logging(config)

    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("Log file: %s", log_file)
    logger.info("Config: %s", config.as_dict())
    logger.info("=" * 60)

    try:
        check_prerequisites(config)
        from mediajobs.web.server import create_app
        uvicorn.run(create_app(config), host=config.get('host'), port=config.get('port'),
                    log_level="info")
    except Exception as e:
        logger.critical("Fatal error: %s: %s\n%s", type(e).__name__, e, traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
