#!/usr/bin/env python3
"""
Pipeline tests: acquisition, transcoding, service adapters and whole jobs
run through the JobQueueManager with external tools and services mocked.
"""

import sys
import subprocess
import tempfile
import time
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

import requests

from mediajobs.core.constants import JobStatus, JobType, MediaKind, CANCELLED_MESSAGE
from mediajobs.core.config import AppConfig
from mediajobs.core.db_sqlite import Database
from mediajobs.core.job_status import JobStatusController, JobNotifier
from mediajobs.core.progress_tracker import ProgressTracker
from mediajobs.core.job_queue import JobQueueManager
from mediajobs.core.models_sqlite import MediaArtifact
from mediajobs.core.error_codes import (
    AcquisitionError, PayloadTooLargeError, TranscodeError, EmptyResultError,
    UpstreamError, ConfigurationError, ContentBlockedError, InvalidSourceError,
    StageTimeoutError,
)
from mediajobs.core.download_media import acquire_media, build_format_selector
from mediajobs.core.transcode import extract_audio, build_ffmpeg_args, resolve_preset
from mediajobs.core.transcribe_openai import transcribe_audio, count_words
from mediajobs.core.analyze import extract_gemini_text, analyze_content
from mediajobs.core.security_utils import run_subprocess

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]
MB = 1024 * 1024


def write_file(path: Path, size: int) -> Path:
    """Create a (sparse) file of the given size."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return path


def fake_response(status: int = 200, payload=None, text: str = ""):
    resp = mock.Mock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = payload if payload is not None else {}
    return resp


def make_config(root: Path, **overrides) -> AppConfig:
    values = dict(
        tmp_root=str(root / "work"),
        output_root=str(root / "out"),
        db_path=str(root / "jobs.db"),
        openai_api_key="sk-test",
        gemini_api_key="gemini-test",
    )
    values.update(overrides)
    return AppConfig(root / "missing.json", environ={}, **values)


class TestAcquisition(unittest.TestCase):
    """Test the yt-dlp stage."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.config = make_config(self.root)
        self.output_dir = self.root / "dl"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_format_selector_bounded(self):
        selector = build_format_selector(MediaKind.AUDIO, "medium", 25)
        self.assertTrue(selector.startswith("bestaudio[ext=m4a][filesize<25M]"))
        video = build_format_selector(MediaKind.VIDEO, "low", 25)
        self.assertIn("height<=360", video)

    def test_nonzero_exit_leaves_no_file(self):
        def fake_run(args, timeout, cancel_token=None):
            write_file(self.output_dir / "source.webm.part", 1024)
            write_file(self.output_dir / "source.webm", 512)
            return subprocess.CompletedProcess(args, 1, "", "ERROR: Video unavailable")

        with mock.patch("mediajobs.core.download_media.run_subprocess_capture",
                        side_effect=fake_run):
            with self.assertRaises(AcquisitionError) as ctx:
                acquire_media(VIDEO_URL, MediaKind.AUDIO, "medium", self.output_dir, self.config)
        self.assertIn("Video unavailable", ctx.exception.message)
        self.assertEqual(list(self.output_dir.iterdir()), [])

    def test_argument_list_and_located_file(self):
        calls = []

        def fake_run(args, timeout, cancel_token=None):
            calls.append(args)
            # Remuxed: extension differs from what was requested
            write_file(self.output_dir / "source.m4a", 2 * MB)
            return subprocess.CompletedProcess(args, 0, "", "")

        with mock.patch("mediajobs.core.download_media.run_subprocess_capture",
                        side_effect=fake_run):
            artifact = acquire_media(VIDEO_URL + "&t=10", MediaKind.AUDIO, "medium",
                                     self.output_dir, self.config)
        self.assertEqual(artifact.format, "m4a")
        self.assertEqual(artifact.size_bytes, 2 * MB)
        args = calls[0]
        self.assertIsInstance(args, list)
        self.assertEqual(args[-1], "https://www.youtube.com/watch?v=dQw4w9WgXcQ")
        self.assertIn("--max-filesize", args)

    def test_timeout_becomes_stage_timeout(self):
        def fake_run(args, timeout, cancel_token=None):
            write_file(self.output_dir / "source.mp4.part", 1024)
            raise subprocess.TimeoutExpired(args, timeout)

        with mock.patch("mediajobs.core.download_media.run_subprocess_capture",
                        side_effect=fake_run):
            with self.assertRaises(StageTimeoutError):
                acquire_media(VIDEO_URL, MediaKind.VIDEO, "high", self.output_dir, self.config)
        self.assertEqual(list(self.output_dir.iterdir()), [])

    def test_invalid_url(self):
        with self.assertRaises(InvalidSourceError):
            acquire_media("https://example.com/x", MediaKind.AUDIO, "low",
                          self.output_dir, self.config)


class TestTranscode(unittest.TestCase):
    """Test the ffmpeg stage."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.config = make_config(self.root)
        self.source = write_file(self.root / "input.mp4", MB)
        self.output_dir = self.root / "audio"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_preset_table(self):
        self.assertEqual(resolve_preset("mp3", "high"), ("192k", 48000, 2))
        self.assertEqual(resolve_preset("wav", "low"), ("256k", 16000, 1))
        with self.assertRaises(TranscodeError):
            resolve_preset("flac", "medium")

    def test_ffmpeg_args_clip(self):
        args = build_ffmpeg_args("ffmpeg", Path("in.mp4"), Path("out.m4a"), "m4a", "low", 10, 40)
        self.assertEqual(args[args.index("-ss") + 1], "10.000")
        self.assertEqual(args[args.index("-t") + 1], "30.000")
        self.assertEqual(args[args.index("-codec:a") + 1], "aac")
        self.assertEqual(args[args.index("-b:a") + 1], "64k")

    def test_oversized_output_rejected(self):
        calls = []

        def fake_run(args, timeout, cancel_token=None):
            calls.append(args)
            write_file(Path(args[-1]), 30 * MB)
            return subprocess.CompletedProcess(args, 0, "", "")

        with mock.patch("mediajobs.core.transcode.run_subprocess_capture", side_effect=fake_run):
            with self.assertRaises(PayloadTooLargeError):
                extract_audio(self.source, self.output_dir, self.config, "wav", "high")
        # ffmpeg ran, ffprobe never did
        self.assertEqual(len(calls), 1)
        self.assertFalse((self.output_dir / "audio.wav").exists())
        self.assertTrue(self.source.exists())

    def test_ffmpeg_failure_deletes_partial(self):
        def fake_run(args, timeout, cancel_token=None):
            write_file(Path(args[-1]), 1024)
            return subprocess.CompletedProcess(args, 1, "", "Invalid data found")

        with mock.patch("mediajobs.core.transcode.run_subprocess_capture", side_effect=fake_run):
            with self.assertRaises(TranscodeError):
                extract_audio(self.source, self.output_dir, self.config, "mp3", "medium")
        self.assertEqual(list(self.output_dir.iterdir()), [])

    def test_probe_failure_is_transcode_error(self):
        def fake_run(args, timeout, cancel_token=None):
            if "ffprobe" in args[0]:
                return subprocess.CompletedProcess(args, 0, "N/A\n", "")
            write_file(Path(args[-1]), MB)
            return subprocess.CompletedProcess(args, 0, "", "")

        with mock.patch("mediajobs.core.transcode.run_subprocess_capture", side_effect=fake_run):
            with self.assertRaises(TranscodeError):
                extract_audio(self.source, self.output_dir, self.config, "mp3", "low")
        self.assertFalse((self.output_dir / "audio.mp3").exists())

    def test_extract_success(self):
        def fake_run(args, timeout, cancel_token=None):
            if "ffprobe" in args[0]:
                return subprocess.CompletedProcess(args, 0, "95.5\n", "")
            write_file(Path(args[-1]), 3 * MB)
            return subprocess.CompletedProcess(args, 0, "", "")

        with mock.patch("mediajobs.core.transcode.run_subprocess_capture", side_effect=fake_run):
            artifact = extract_audio(self.source, self.output_dir, self.config, "mp3", "medium")
        self.assertEqual(artifact.duration_seconds, 95.5)
        self.assertEqual(artifact.format, "mp3")


class TestTranscriptionAdapter(unittest.TestCase):
    """Test the speech-to-text adapter with requests mocked."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.artifact = MediaArtifact.from_path(write_file(Path(self.tmpdir.name) / "a.mp3", 1024))

    def tearDown(self):
        self.tmpdir.cleanup()

    def _post(self, resp):
        return mock.patch("mediajobs.core.transcribe_openai.requests.post", return_value=resp)

    def test_text_returned(self):
        with self._post(fake_response(200, {"text": " hello world "})) as post:
            text = transcribe_audio(self.artifact, "sk-test", language="en")
        self.assertEqual(text, "hello world")
        self.assertEqual(post.call_args.kwargs["data"]["language"], "en")
        self.assertEqual(post.call_args.kwargs["headers"]["Authorization"], "Bearer sk-test")

    def test_empty_text(self):
        with self._post(fake_response(200, {"text": ""})):
            with self.assertRaises(EmptyResultError):
                transcribe_audio(self.artifact, "sk-test")

    def test_rate_limited(self):
        with self._post(fake_response(429, text="quota")):
            with self.assertRaises(UpstreamError):
                transcribe_audio(self.artifact, "sk-test")

    def test_too_large(self):
        with self._post(fake_response(413)):
            with self.assertRaises(PayloadTooLargeError):
                transcribe_audio(self.artifact, "sk-test")

    def test_timeout(self):
        with mock.patch("mediajobs.core.transcribe_openai.requests.post",
                        side_effect=requests.exceptions.Timeout()):
            with self.assertRaises(UpstreamError):
                transcribe_audio(self.artifact, "sk-test")

    def test_missing_key(self):
        with self.assertRaises(ConfigurationError):
            transcribe_audio(self.artifact, None)

    def test_count_words(self):
        self.assertEqual(count_words("hello world"), 2)
        self.assertEqual(count_words("  "), 0)


class TestAnalysisAdapter(unittest.TestCase):
    """Test classification of generative service responses."""

    def test_prompt_blocked(self):
        with self.assertRaises(ContentBlockedError) as ctx:
            extract_gemini_text({"promptFeedback": {"blockReason": "SAFETY"}})
        self.assertEqual(ctx.exception.block_reason, "SAFETY")

    def test_candidate_blocked(self):
        payload = {"candidates": [{"finishReason": "SAFETY", "content": {"parts": []}}]}
        with self.assertRaises(ContentBlockedError):
            extract_gemini_text(payload)

    def test_no_candidates(self):
        with self.assertRaises(EmptyResultError):
            extract_gemini_text({"candidates": []})

    def test_text_joined(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "# Report\n"}, {"text": "Body"}]},
                                   "finishReason": "STOP"}]}
        self.assertEqual(extract_gemini_text(payload), "# Report\nBody")

    def test_gemini_request(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}
        with mock.patch("mediajobs.core.analyze.requests.post",
                        return_value=fake_response(200, payload)) as post:
            report = analyze_content("some transcript", "Summarize.", "gemini-key",
                                     source_url=VIDEO_URL)
        self.assertEqual(report, "ok")
        self.assertEqual(post.call_args.kwargs["headers"]["x-goog-api-key"], "gemini-key")
        text = post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        self.assertIn("some transcript", text)
        self.assertIn(VIDEO_URL, text)

    def test_gpt_content_filter(self):
        payload = {"choices": [{"finish_reason": "content_filter", "message": {"content": ""}}]}
        with mock.patch("mediajobs.core.analyze.requests.post",
                        return_value=fake_response(200, payload)):
            with self.assertRaises(ContentBlockedError):
                analyze_content("text", "Summarize.", "sk-test", model="gpt")

    def test_server_error(self):
        with mock.patch("mediajobs.core.analyze.requests.post",
                        return_value=fake_response(503, text="overloaded")):
            with self.assertRaises(UpstreamError):
                analyze_content("text", "Summarize.", "gemini-key")


class PipelineTestCase(unittest.TestCase):
    """Wires a real store, controller, tracker and runner in a temp dir."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.config = make_config(self.root)
        self.db = Database(self.config.db_path)
        notifier = JobNotifier()
        self.tracker = ProgressTracker()
        notifier.subscribe(self.tracker)
        self.controller = JobStatusController(self.db, notifier)
        self.runner = JobQueueManager(self.controller, self.config, self.tracker)

    def tearDown(self):
        self.runner.shutdown()
        self.db.close()
        self.tmpdir.cleanup()

    def assertWorkspaceGone(self, job_id):
        self.assertFalse(self.runner.workspace_for(job_id).exists())


class TestTranscriptionJobs(PipelineTestCase):

    def test_hello_world(self):
        downloaded = []

        def fake_acquire(url, kind, quality, output_dir, config, cancel_token=None):
            path = write_file(output_dir / "source.m4a", 10 * MB)
            downloaded.append(path)
            return MediaArtifact.from_path(path)

        with mock.patch("mediajobs.core.job_queue.acquire_media", side_effect=fake_acquire), \
                mock.patch("mediajobs.core.job_queue.probe_duration", return_value=120.0), \
                mock.patch("mediajobs.core.job_queue.extract_audio") as extract, \
                mock.patch("mediajobs.core.job_queue.transcribe_audio",
                           return_value="hello world") as transcribe, \
                mock.patch.object(self.tracker, "set_content_duration",
                                  wraps=self.tracker.set_content_duration) as set_duration:
            job = self.runner.submit(JobType.TRANSCRIPTION, {"youtubeUrl": VIDEO_URL}, wait=True)

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.progress, 100)
        self.assertEqual(job.result.text, "hello world")
        self.assertEqual(job.result.word_count, 2)
        self.assertEqual(job.result.duration_seconds, 120.0)
        self.assertIsNone(job.error)
        # The audio-only download went straight to the service
        extract.assert_not_called()
        self.assertEqual(transcribe.call_args.args[0].path, downloaded[0])
        self.assertFalse(downloaded[0].exists())
        self.assertWorkspaceGone(job.id)
        set_duration.assert_called_with(job.id, 120.0)
        # Finished jobs leave no snapshot behind
        self.assertIsNone(self.tracker.get(job.id))

    def test_oversized_audio_never_reaches_service(self):
        video = write_file(self.root / "talk.mp4", 2 * MB)

        def fake_run(args, timeout, cancel_token=None):
            write_file(Path(args[-1]), 30 * MB)
            return subprocess.CompletedProcess(args, 0, "", "")

        with mock.patch("mediajobs.core.transcode.run_subprocess_capture", side_effect=fake_run), \
                mock.patch("mediajobs.core.job_queue.transcribe_audio") as transcribe:
            job = self.runner.submit(JobType.TRANSCRIPTION,
                                     {"videoPath": str(video), "format": "wav", "quality": "high"},
                                     wait=True)

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertTrue(job.error.startswith("Audio processing failed:"))
        self.assertIsNone(job.result)
        transcribe.assert_not_called()
        # Caller-owned input is left alone
        self.assertTrue(video.exists())
        self.assertWorkspaceGone(job.id)

    def test_empty_transcription_fails(self):
        upload = write_file(self.root / "upload" / "clip.mp3", MB)
        extracted = []

        def fake_extract(input_path, output_dir, config, fmt, quality, start, end, token):
            path = write_file(output_dir / f"audio.{fmt}", MB)
            extracted.append(path)
            return MediaArtifact.from_path(path, duration_seconds=30.0)

        with mock.patch("mediajobs.core.job_queue.extract_audio", side_effect=fake_extract), \
                mock.patch("mediajobs.core.transcribe_openai.requests.post",
                           return_value=fake_response(200, {"text": "   "})):
            job = self.runner.submit(JobType.TRANSCRIPTION, {"originalFilename": "clip.mp3"},
                                     inputs={"upload_path": upload}, wait=True)

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("Transcription returned no text", job.error)
        self.assertIsNone(job.result)
        # Upload and extracted audio are both owned by the run
        self.assertFalse(upload.exists())
        self.assertFalse(extracted[0].exists())

    def test_duration_limit(self):
        video = write_file(self.root / "long.mp4", MB)

        def fake_extract(input_path, output_dir, config, fmt, quality, start, end, token):
            path = write_file(output_dir / "audio.mp3", MB)
            return MediaArtifact.from_path(path, duration_seconds=7200.0)

        with mock.patch("mediajobs.core.job_queue.extract_audio", side_effect=fake_extract), \
                mock.patch("mediajobs.core.job_queue.transcribe_audio") as transcribe:
            job = self.runner.submit(JobType.TRANSCRIPTION, {"videoPath": str(video)}, wait=True)

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("limit is 3600s", job.error)
        transcribe.assert_not_called()

    def test_missing_video_path(self):
        job = self.runner.submit(JobType.TRANSCRIPTION,
                                 {"videoPath": str(self.root / "nope.mp4")}, wait=True)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertTrue(job.error.startswith("Validation failed:"))

    def test_cancel_mid_download(self):
        tokens = []

        def fake_acquire(url, kind, quality, output_dir, config, cancel_token=None):
            tokens.append(cancel_token)
            run_subprocess(SLEEPER, timeout=60, cancel_token=cancel_token)
            raise AssertionError("download should have been cancelled")

        with mock.patch("mediajobs.core.job_queue.acquire_media", side_effect=fake_acquire), \
                mock.patch("mediajobs.core.job_queue.transcribe_audio") as transcribe:
            job = self.runner.submit(JobType.TRANSCRIPTION, {"youtubeUrl": VIDEO_URL})

            deadline = time.monotonic() + 10
            while (not tokens or tokens[0].process is None) and time.monotonic() < deadline:
                time.sleep(0.02)
            proc = tokens[0].process
            self.assertIsNotNone(proc)

            cancelled = self.runner.cancel(job.id)
            self.assertTrue(self.runner.wait_for(job.id, timeout=15))

        self.assertEqual(cancelled.status, JobStatus.FAILED)
        job = self.controller.get_job(job.id)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("cancelled", job.error.lower())
        self.assertEqual(job.error, CANCELLED_MESSAGE)
        self.assertIsNotNone(proc.poll())
        transcribe.assert_not_called()
        self.assertWorkspaceGone(job.id)

    def test_cancel_before_run_removes_upload(self):
        job = self.runner.create_job(JobType.TRANSCRIPTION, {"originalFilename": "clip.mp3"})
        upload = write_file(self.runner.workspace_for(job.id) / "upload" / "clip.mp3", MB)
        self.runner.cancel(job.id)

        with mock.patch("mediajobs.core.job_queue.transcribe_audio") as transcribe:
            job = self.runner.run_job(job.id, {"upload_path": upload})

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, CANCELLED_MESSAGE)
        transcribe.assert_not_called()
        self.assertFalse(upload.exists())
        self.assertWorkspaceGone(job.id)

    def test_unsupported_format_removes_upload(self):
        job = self.runner.create_job(JobType.TRANSCRIPTION,
                                     {"originalFilename": "clip.mp3", "format": "flac"})
        upload = write_file(self.runner.workspace_for(job.id) / "upload" / "clip.mp3", MB)

        job = self.runner.run_job(job.id, {"upload_path": upload})

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("Unsupported format/quality", job.error)
        self.assertFalse(upload.exists())
        self.assertWorkspaceGone(job.id)

    def test_processing_job_is_left_alone(self):
        job = self.runner.create_job(JobType.TRANSCRIPTION, {"originalFilename": "clip.mp3"})
        upload = write_file(self.runner.workspace_for(job.id) / "upload" / "clip.mp3", MB)
        self.controller.update_status(job.id, JobStatus.PROCESSING, progress=10)

        job = self.runner.run_job(job.id, {"upload_path": upload})

        self.assertEqual(job.status, JobStatus.PROCESSING)
        self.assertTrue(upload.exists())


class TestOtherJobTypes(PipelineTestCase):

    def test_download_exported(self):
        def fake_acquire(url, kind, quality, output_dir, config, cancel_token=None):
            return MediaArtifact.from_path(write_file(output_dir / "source.m4a", 2 * MB))

        with mock.patch("mediajobs.core.job_queue.acquire_media", side_effect=fake_acquire), \
                mock.patch("mediajobs.core.job_queue.probe_duration", return_value=42.0):
            job = self.runner.submit(JobType.DOWNLOAD,
                                     {"youtubeUrl": VIDEO_URL, "kind": "audio"}, wait=True)

        self.assertEqual(job.status, JobStatus.COMPLETED)
        exported = Path(job.result.path)
        self.assertTrue(exported.exists())
        self.assertEqual(exported.parent, self.config.output_root)
        self.assertEqual(exported.name, f"dQw4w9WgXcQ_audio_{job.id[:8]}.m4a")
        self.assertEqual(job.result.duration_seconds, 42.0)
        self.assertEqual(job.result.size_bytes, 2 * MB)
        self.assertWorkspaceGone(job.id)

    def test_video_analysis(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "# Techniques"}]}}]}

        def fake_acquire(url, kind, quality, output_dir, config, cancel_token=None):
            return MediaArtifact.from_path(write_file(output_dir / "source.mp4", 1024))

        with mock.patch("mediajobs.core.job_queue.acquire_media", side_effect=fake_acquire), \
                mock.patch("mediajobs.core.analyze.requests.post",
                           return_value=fake_response(200, payload)) as post:
            job = self.runner.submit(JobType.ANALYSIS,
                                     {"youtubeUrl": VIDEO_URL, "analysisType": "video"}, wait=True)

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.result.report, "# Techniques")
        self.assertEqual(job.result.analysis_method, "video")
        parts = post.call_args.kwargs["json"]["contents"][0]["parts"]
        self.assertEqual(parts[1]["inline_data"]["mime_type"], "video/mp4")
        self.assertWorkspaceGone(job.id)

    def test_blocked_analysis_fails(self):
        with mock.patch("mediajobs.core.analyze.requests.post",
                        return_value=fake_response(200, {"promptFeedback": {"blockReason": "OTHER"}})):
            job = self.runner.submit(JobType.ANALYSIS, {"model": "gemini"},
                                     inputs={"transcript_text": "word " * 40}, wait=True)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("OTHER", job.error)

    def test_short_transcript_rejected(self):
        with mock.patch("mediajobs.core.job_queue.analyze_content") as analyze:
            job = self.runner.submit(JobType.ANALYSIS, {"model": "gemini"},
                                     inputs={"transcript_text": "too short"}, wait=True)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("too short", job.error)
        analyze.assert_not_called()

    def test_unexpected_error_recorded(self):
        with mock.patch("mediajobs.core.job_queue.analyze_content",
                        side_effect=RuntimeError("kaboom")):
            job = self.runner.submit(JobType.ANALYSIS, {},
                                     inputs={"transcript_text": "word " * 40}, wait=True)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertTrue(job.error.startswith("Unexpected error: RuntimeError"))


if __name__ == "__main__":
    unittest.main()
