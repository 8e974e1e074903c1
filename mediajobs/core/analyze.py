"""
Generative analysis of media or transcript text.

Gemini (generateContent REST) accepts both inline media and text; the GPT
chat endpoint accepts transcript text only. Upstream outcomes are classified
as ContentBlockedError, EmptyResultError or UpstreamError.
"""

import base64
import json
import logging
import mimetypes
import requests

from mediajobs.core.error_codes import (
    ContentBlockedError, EmptyResultError, UpstreamError, ConfigurationError,
    InvalidSourceError,
)
from mediajobs.core.constants import (
    GEMINI_API_BASE, GEMINI_MODEL, GEMINI_SAFETY_CATEGORIES, GEMINI_SAFETY_THRESHOLD,
    GEMINI_GENERATION_CONFIG, OPENAI_API_BASE, UPSTREAM_TIMEOUT_SEC, MAX_TOOL_OUTPUT_LEN,
)
from mediajobs.core.models_sqlite import MediaArtifact

logger = logging.getLogger(__name__)

MODEL_GEMINI = "gemini"
MODEL_GPT = "gpt"

GPT_MODEL = "gpt-4-turbo"
GPT_SYSTEM_PROMPT = (
    "You are an expert analyst specializing in extracting techniques and "
    "advice from educational content."
)


def build_prompt(prompt_template: str, transcript: str | None = None,
                 source_url: str | None = None) -> str:
    """Assemble the prompt text sent alongside the content."""
    prompt = prompt_template.strip()
    if source_url:
        prompt += f"\n\nThe content is from this video: {source_url}"
    if transcript is not None:
        prompt += f"\n\nTRANSCRIPT TO ANALYZE:\n\n{transcript}"
    return prompt


def analyze_content(source, prompt_template: str, api_key: str | None,
                    model: str = MODEL_GEMINI, source_url: str | None = None,
                    timeout: float = UPSTREAM_TIMEOUT_SEC) -> str:
    """
    Analyze a MediaArtifact or transcript text and return Markdown.
    """
    if model == MODEL_GPT:
        if isinstance(source, MediaArtifact):
            raise InvalidSourceError("GPT analysis accepts transcript text only")
        return analyze_with_gpt(source, prompt_template, api_key, source_url, timeout)
    if model != MODEL_GEMINI:
        raise ConfigurationError(f"Unknown analysis model: {model}")
    return analyze_with_gemini(source, prompt_template, api_key, source_url, timeout)


# ── Gemini ────────────────────────────────────────────────────────────

def _gemini_parts(source, prompt_template: str, source_url: str | None) -> list[dict]:
    if isinstance(source, MediaArtifact):
        mime = mimetypes.guess_type(source.path.name)[0] or "application/octet-stream"
        with open(source.path, 'rb') as f:
            data = base64.b64encode(f.read()).decode('ascii')
        return [
            {"text": build_prompt(prompt_template, source_url=source_url)},
            {"inline_data": {"mime_type": mime, "data": data}},
        ]
    return [{"text": build_prompt(prompt_template, transcript=source, source_url=source_url)}]


def analyze_with_gemini(source, prompt_template: str, api_key: str | None,
                        source_url: str | None = None,
                        timeout: float = UPSTREAM_TIMEOUT_SEC) -> str:
    if not api_key:
        raise ConfigurationError("Gemini API key is not configured")

    body = {
        "contents": [{"role": "user", "parts": _gemini_parts(source, prompt_template, source_url)}],
        "generationConfig": GEMINI_GENERATION_CONFIG,
        "safetySettings": [
            {"category": c, "threshold": GEMINI_SAFETY_THRESHOLD}
            for c in GEMINI_SAFETY_CATEGORIES
        ],
    }
    url = f"{GEMINI_API_BASE}/models/{GEMINI_MODEL}:generateContent"

    try:
        resp = requests.post(
            url,
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
            json=body,
            timeout=timeout,
        )
    except requests.exceptions.Timeout:
        raise UpstreamError("Analysis request timed out")
    except requests.exceptions.ConnectionError:
        raise UpstreamError("Network error connecting to the analysis service")
    except requests.exceptions.RequestException as e:
        raise UpstreamError(f"Analysis request failed: {e}")

    payload = _json_or_upstream_error(resp, "Gemini")
    return extract_gemini_text(payload)


def extract_gemini_text(payload: dict) -> str:
    """
    Classify a generateContent response: blocked prompt or candidate,
    empty completion, or the joined candidate text.
    """
    block_reason = (payload.get('promptFeedback') or {}).get('blockReason')
    if block_reason:
        raise ContentBlockedError(block_reason)

    candidates = payload.get('candidates') or []
    if not candidates:
        raise EmptyResultError("Analysis service returned no candidates")

    first = candidates[0]
    parts = (first.get('content') or {}).get('parts') or []
    text = ''.join(p.get('text', '') for p in parts).strip()

    if not text and first.get('finishReason') in ('SAFETY', 'PROHIBITED_CONTENT', 'BLOCKLIST'):
        raise ContentBlockedError(first['finishReason'])
    if not text:
        raise EmptyResultError("Analysis service returned an empty response")
    return text


# ── GPT ───────────────────────────────────────────────────────────────

def analyze_with_gpt(transcript: str, prompt_template: str, api_key: str | None,
                     source_url: str | None = None,
                     timeout: float = UPSTREAM_TIMEOUT_SEC) -> str:
    if not api_key:
        raise ConfigurationError("OpenAI API key is not configured")

    body = {
        "model": GPT_MODEL,
        "messages": [
            {"role": "system", "content": GPT_SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(prompt_template, transcript, source_url)},
        ],
        "temperature": 0.7,
        "max_tokens": 4000,
    }

    try:
        resp = requests.post(
            f"{OPENAI_API_BASE}/chat/completions",
            headers={"Authorization": f"Bearer {api_key}"},
            json=body,
            timeout=timeout,
        )
    except requests.exceptions.Timeout:
        raise UpstreamError("Analysis request timed out")
    except requests.exceptions.ConnectionError:
        raise UpstreamError("Network error connecting to the analysis service")
    except requests.exceptions.RequestException as e:
        raise UpstreamError(f"Analysis request failed: {e}")

    payload = _json_or_upstream_error(resp, "OpenAI")
    choices = payload.get('choices') or []
    if choices and choices[0].get('finish_reason') == 'content_filter':
        raise ContentBlockedError('content_filter')
    text = ((choices[0].get('message') or {}).get('content') or "").strip() if choices else ""
    if not text:
        raise EmptyResultError("Analysis service returned an empty response")
    return text


def _json_or_upstream_error(resp: requests.Response, service: str) -> dict:
    if resp.status_code == 429:
        raise UpstreamError(f"{service} quota or rate limit exceeded (429)")
    if resp.status_code != 200:
        error_body = resp.text[:MAX_TOOL_OUTPUT_LEN] if resp.text else "No response body"
        raise UpstreamError(f"{service} returned {resp.status_code}: {error_body}")
    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError):
        raise UpstreamError(f"Failed to parse {service} response JSON")
    if not isinstance(payload, dict):
        raise UpstreamError(f"Unexpected {service} response shape")
    return payload
