"""
Speech-to-text via the OpenAI audio transcription endpoint.
One request per call; callers never retry automatically.
"""

import json
import logging
import mimetypes
import requests

from mediajobs.core.error_codes import (
    EmptyResultError, UpstreamError, ConfigurationError, PayloadTooLargeError,
)
from mediajobs.core.constants import (
    OPENAI_API_BASE, OPENAI_TRANSCRIBE_MODEL, UPSTREAM_TIMEOUT_SEC, MAX_TOOL_OUTPUT_LEN,
)
from mediajobs.core.models_sqlite import MediaArtifact

logger = logging.getLogger(__name__)

OPENAI_TRANSCRIBE_URL = f"{OPENAI_API_BASE}/audio/transcriptions"


def transcribe_audio(artifact: MediaArtifact, api_key: str | None,
                     language: str | None = None, prompt: str | None = None,
                     timeout: float = UPSTREAM_TIMEOUT_SEC) -> str:
    """
    Transcribe an audio artifact and return the plain text.
    Raises EmptyResultError when the service returns no text.
    """
    if not api_key:
        raise ConfigurationError("OpenAI API key is not configured")

    data = {
        "model": OPENAI_TRANSCRIBE_MODEL,
        "response_format": "json",
    }
    if language:
        data["language"] = language
    if prompt:
        data["prompt"] = prompt

    mime = mimetypes.guess_type(artifact.path.name)[0] or "application/octet-stream"

    try:
        with open(artifact.path, 'rb') as f:
            resp = requests.post(
                OPENAI_TRANSCRIBE_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                data=data,
                files={"file": (artifact.path.name, f, mime)},
                timeout=timeout,
            )
    except requests.exceptions.Timeout:
        raise UpstreamError("Transcription request timed out")
    except requests.exceptions.ConnectionError:
        raise UpstreamError("Network error connecting to the transcription service")
    except requests.exceptions.RequestException as e:
        raise UpstreamError(f"Transcription request failed: {e}")

    if resp.status_code == 413:
        raise PayloadTooLargeError("Transcription service rejected the file as too large")

    if resp.status_code == 429:
        raise UpstreamError("Transcription service quota or rate limit exceeded (429)")

    if resp.status_code != 200:
        # Sanitize error message (never log API key)
        error_body = resp.text[:MAX_TOOL_OUTPUT_LEN] if resp.text else "No response body"
        raise UpstreamError(f"Transcription service returned {resp.status_code}: {error_body}")

    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError):
        raise UpstreamError("Failed to parse transcription response JSON")

    text = extract_transcript_text(payload)
    if not text:
        raise EmptyResultError("Transcription returned no text")

    logger.info("Transcribed %s: %d characters", artifact.path.name, len(text))
    return text


def extract_transcript_text(response: dict) -> str:
    """Pull the transcript out of a transcription response."""
    if not isinstance(response, dict):
        return ""
    text = response.get('text') or ""
    if not text and response.get('segments'):
        text = ' '.join(s.get('text', '').strip() for s in response['segments'])
    return text.strip()


def count_words(text: str) -> int:
    return len(text.split())
