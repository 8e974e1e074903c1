#!/usr/bin/env python3
"""
HTTP surface tests using FastAPI's TestClient.
"""

import sys
import io
import tempfile
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from fastapi.testclient import TestClient

from mediajobs.core.config import AppConfig
from mediajobs.core.constants import JobStatus, JobType
from mediajobs.core.models_sqlite import MediaArtifact, TranscriptionResult
from mediajobs.web.server import create_app
from mediajobs.web.state import build_services

VIDEO_URL = "https://youtu.be/dQw4w9WgXcQ"


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        root = Path(self.tmpdir.name)
        self.config = AppConfig(
            root / "missing.json", environ={},
            tmp_root=str(root / "work"), output_root=str(root / "out"),
            db_path=str(root / "jobs.db"),
            openai_api_key="sk-test", gemini_api_key="gemini-test",
        )
        self.services = build_services(self.config)
        self.client = TestClient(create_app(services=self.services))
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self.services.close()
        self.tmpdir.cleanup()

    def create_job(self, job_type=JobType.TRANSCRIPTION, metadata=None):
        return self.services.controller.create_job(job_type, metadata or {})


class TestJobsApi(ApiTestCase):

    def test_get_missing_job(self):
        resp = self.client.get("/api/jobs", params={"id": "nope"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "ERR_NOT_FOUND")

    def test_list_jobs_newest_first(self):
        first = self.create_job()
        second = self.create_job(JobType.DOWNLOAD)
        resp = self.client.get("/api/jobs")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([j["id"] for j in resp.json()], [second.id, first.id])

        resp = self.client.get("/api/jobs", params={"type": "download", "status": "bogus"})
        self.assertEqual([j["id"] for j in resp.json()], [second.id])

    def test_put_requires_id_and_status(self):
        self.assertEqual(self.client.put("/api/jobs", json={"status": "processing"}).status_code, 400)
        job = self.create_job()
        self.assertEqual(self.client.put("/api/jobs", json={"id": job.id}).status_code, 400)

    def test_put_walks_state_machine(self):
        job = self.create_job()
        resp = self.client.put("/api/jobs", json={"id": job.id, "status": "processing", "progress": 40})
        self.assertEqual(resp.json()["progress"], 40)

        result = {"text": "hello world", "duration_seconds": 120, "word_count": 2}
        resp = self.client.put("/api/jobs", json={"id": job.id, "status": "completed", "result": result})
        body = resp.json()
        self.assertEqual(body["status"], "completed")
        self.assertEqual(body["result"]["type"], "transcription")
        self.assertEqual(body["result"]["word_count"], 2)

        # Terminal: further writes leave the job unchanged
        resp = self.client.put("/api/jobs", json={"id": job.id, "status": "failed", "error": "late"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "completed")
        self.assertIsNone(resp.json()["error"])

    def test_put_illegal_transition(self):
        job = self.create_job()
        resp = self.client.put("/api/jobs", json={"id": job.id, "status": "completed",
                                                  "result": {"text": "x", "duration_seconds": 1,
                                                             "word_count": 1}})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "ERR_INVALID_TRANSITION")

    def test_put_bad_result_payload(self):
        job = self.create_job()
        self.client.put("/api/jobs", json={"id": job.id, "status": "processing"})
        resp = self.client.put("/api/jobs", json={"id": job.id, "status": "completed",
                                                  "result": {"report": "wrong variant"}})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.services.controller.get_job(job.id).status, JobStatus.PROCESSING)

    def test_delete(self):
        job = self.create_job()
        resp = self.client.delete("/api/jobs", params={"id": job.id})
        self.assertEqual(resp.json(), {"success": True, "message": f"Job {job.id} deleted"})
        self.assertEqual(self.client.delete("/api/jobs", params={"id": job.id}).status_code, 404)
        self.assertEqual(self.client.delete("/api/jobs").status_code, 400)

    def test_job_status_payload(self):
        self.assertEqual(self.client.get("/api/job-status").status_code, 400)
        job = self.create_job()
        self.services.controller.update_status(job.id, JobStatus.PROCESSING, progress=10,
                                               message="Downloading audio", stage="downloading")
        body = self.client.get("/api/job-status", params={"id": job.id}).json()
        self.assertEqual(body["status"], "processing")
        self.assertEqual(body["job_type"], "transcription")
        self.assertEqual(body["progress"], 10)
        self.assertEqual(body["message"], "Downloading audio")
        self.assertEqual(body["stage"], "downloading")
        self.assertIsNotNone(body["estimated_time_remaining"])
        self.assertIsNone(body["result"])

    def test_job_status_of_finished_job(self):
        job = self.create_job()
        self.services.controller.fail(job.id, "boom")
        self.assertIsNone(self.services.tracker.get(job.id))
        body = self.client.get("/api/job-status", params={"id": job.id}).json()
        self.assertEqual(body["status"], "failed")
        self.assertEqual(body["stage"], "error")
        self.assertEqual(body["estimated_time_remaining"], 0)
        self.assertEqual(body["error"], "boom")

    def test_cancel_pending_job(self):
        job = self.create_job()
        resp = self.client.post("/api/jobs/cancel", params={"id": job.id})
        body = resp.json()
        self.assertEqual(body["status"], "failed")
        self.assertIn("cancelled", body["error"])

    def test_health(self):
        with mock.patch("mediajobs.web.jobs_api.get_diagnostics",
                        return_value={"ffmpeg_version": "ffmpeg version 6.1"}):
            body = self.client.get("/api/health").json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["ffmpeg_version"], "ffmpeg version 6.1")


class TestSubmissionApi(ApiTestCase):

    def test_transcribe_requires_one_source(self):
        self.assertEqual(self.client.post("/api/transcribe", data={}).status_code, 400)
        resp = self.client.post("/api/transcribe",
                                data={"youtubeUrl": VIDEO_URL, "videoPath": "/tmp/a.mp4"})
        self.assertEqual(resp.status_code, 400)

    def test_transcribe_rejects_bad_options(self):
        resp = self.client.post("/api/transcribe", data={"youtubeUrl": VIDEO_URL, "format": "ogg"})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/api/transcribe", data={"youtubeUrl": VIDEO_URL, "quality": "ultra"})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/api/transcribe", data={"youtubeUrl": "https://example.com/v"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "ERR_INVALID_SOURCE")

    def test_transcribe_upload(self):
        def fake_extract(input_path, output_dir, config, fmt, quality, start, end, token):
            output_dir.mkdir(parents=True, exist_ok=True)
            path = output_dir / f"audio.{fmt}"
            path.write_bytes(b"\0" * 2048)
            return MediaArtifact.from_path(path, duration_seconds=120.0)

        with mock.patch("mediajobs.core.job_queue.extract_audio", side_effect=fake_extract), \
                mock.patch("mediajobs.core.job_queue.transcribe_audio", return_value="hello world"):
            resp = self.client.post(
                "/api/transcribe",
                files={"audioFile": ("lecture.wav", io.BytesIO(b"RIFF....WAVE"), "audio/wav")},
                data={"format": "mp3", "quality": "low"},
            )

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["text"], "hello world")
        self.assertEqual(body["word_count"], 2)
        self.assertEqual(body["duration_seconds"], 120.0)
        self.assertEqual(body["id"], body["job_id"])

        job = self.services.controller.get_job(body["job_id"])
        self.assertEqual(job.metadata["originalFilename"], "lecture.wav")
        self.assertIsInstance(job.result, TranscriptionResult)
        self.assertFalse(self.services.runner.workspace_for(job.id).exists())

    def test_transcribe_failure(self):
        resp = self.client.post("/api/transcribe", data={"videoPath": "/definitely/not/here.mp4"})
        self.assertEqual(resp.status_code, 422)
        body = resp.json()
        self.assertFalse(body["success"])
        self.assertIn("Video file not found", body["error"])

    def test_transcribe_background(self):
        resp = self.client.post("/api/transcribe",
                                data={"videoPath": "/definitely/not/here.mp4", "wait": "false"})
        self.assertEqual(resp.status_code, 202)
        job_id = resp.json()["job_id"]
        self.assertTrue(self.services.runner.wait_for(job_id, timeout=10))
        self.assertEqual(self.services.controller.get_job(job_id).status, JobStatus.FAILED)

    def test_analyze_transcription(self):
        with mock.patch("mediajobs.core.job_queue.analyze_content",
                        return_value="# Report") as analyze:
            resp = self.client.post("/api/analyze-transcription",
                                    json={"transcriptionText": "word " * 30, "modelType": "GPT",
                                          "youtubeUrl": VIDEO_URL})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["reportContent"], "# Report")
        self.assertEqual(body["modelUsed"], "gpt")
        self.assertEqual(body["analysisMethod"], "transcription")
        self.assertEqual(analyze.call_args.args[2], "sk-test")

    def test_analyze_transcription_too_short(self):
        resp = self.client.post("/api/analyze-transcription", json={"transcriptionText": "hi"})
        self.assertEqual(resp.status_code, 422)
        self.assertIn("too short", resp.json()["error"])

    def test_analyze_validation(self):
        resp = self.client.post("/api/analyze", json={"youtubeUrl": VIDEO_URL, "analysisType": "text"})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/api/analyze", json={"youtubeUrl": "nope"})
        self.assertEqual(resp.status_code, 400)

    def test_download_validation(self):
        resp = self.client.post("/api/download", json={"youtubeUrl": VIDEO_URL, "kind": "image"})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/api/download", json={"youtubeUrl": VIDEO_URL, "quality": "4k"})
        self.assertEqual(resp.status_code, 400)


if __name__ == "__main__":
    unittest.main()
