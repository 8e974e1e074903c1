"""
Job runner: drives one job through acquisition → transcoding → invocation.
Each job runs on its own thread (or the caller's, for synchronous
submissions); stages inside a job run strictly one after another.
"""

import logging
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from mediajobs.core.constants import (
    JobStatus, JobType, MediaKind, ProgressStage, STAGE_LABELS,
    CANCELLED_MESSAGE, DEFAULT_AUDIO_FORMAT, DEFAULT_QUALITY, DEFAULT_ANALYSIS_PROMPT,
    MIN_ANALYSIS_TEXT_CHARS, DIRECT_TRANSCRIBE_EXTS,
    PROGRESS_VALIDATE, PROGRESS_DOWNLOAD, PROGRESS_DOWNLOAD_DONE,
    PROGRESS_PROCESS, PROGRESS_PROCESS_DONE, PROGRESS_ANALYZE,
)
from mediajobs.core.config import AppConfig
from mediajobs.core.job_status import JobStatusController
from mediajobs.core.progress_tracker import ProgressTracker
from mediajobs.core.models_sqlite import (
    Job, MediaArtifact, TranscriptionResult, AnalysisResult, DownloadResult,
)
from mediajobs.core.error_codes import (
    JobError, JobCancelledError, InvalidSourceError, PayloadTooLargeError,
    EmptyResultError, truncate_message,
)
from mediajobs.core.security_utils import CancelToken, safe_child_path
from mediajobs.core.cleanup import JobResources
from mediajobs.core.url_parse import validate_source_url
from mediajobs.core.download_media import acquire_media
from mediajobs.core.transcode import extract_audio, probe_duration, resolve_preset
from mediajobs.core.transcribe_openai import transcribe_audio, count_words
from mediajobs.core.analyze import analyze_content, MODEL_GPT, MODEL_GEMINI

logger = logging.getLogger(__name__)


@dataclass
class JobRun:
    """Everything one execution of a job owns. Never shared between jobs."""
    job: Job
    resources: JobResources
    token: CancelToken
    inputs: dict = field(default_factory=dict)
    stage: str = ProgressStage.VALIDATING

    @property
    def metadata(self) -> dict:
        return self.job.metadata


class JobQueueManager:
    """
    Creates jobs, runs their pipelines and handles cancellation.
    All status writes go through the JobStatusController.
    """

    def __init__(self, controller: JobStatusController, config: AppConfig,
                 tracker: Optional[ProgressTracker] = None):
        self.controller = controller
        self.config = config
        self.tracker = tracker
        self._tokens: dict[str, CancelToken] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

        self._handlers = {
            JobType.TRANSCRIPTION: self._run_transcription,
            JobType.ANALYSIS: self._run_analysis,
            JobType.DOWNLOAD: self._run_download,
        }

    # ── Submission ────────────────────────────────────────────────────

    def create_job(self, job_type: str, metadata: dict) -> Job:
        job = self.controller.create_job(job_type, metadata)
        with self._lock:
            self._tokens[job.id] = CancelToken()
        return job

    def workspace_for(self, job_id: str) -> Path:
        return self.config.tmp_root / job_id

    def start(self, job: Job, inputs: dict | None = None, wait: bool = False) -> Job:
        """
        Run a created job. With wait=True the pipeline runs on the calling
        thread and the terminal job is returned; otherwise a job thread is
        started and the job is returned as submitted.
        """
        if wait:
            return self.run_job(job.id, inputs)

        thread = threading.Thread(
            target=self.run_job, args=(job.id, inputs),
            name=f"job-{job.id[:8]}", daemon=True,
        )
        with self._lock:
            self._threads[job.id] = thread
        thread.start()
        return job

    def submit(self, job_type: str, metadata: dict, inputs: dict | None = None,
               wait: bool = False) -> Job:
        return self.start(self.create_job(job_type, metadata), inputs, wait)

    def wait_for(self, job_id: str, timeout: float | None = None) -> bool:
        """Block until a background job thread ends. Returns False on timeout."""
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._tokens

    # ── Cancellation ──────────────────────────────────────────────────

    def cancel(self, job_id: str) -> Job:
        """
        Fail the job with a cancellation marker and kill whatever external
        process is running for it.
        """
        job = self.controller.get_job(job_id)
        if job.status in JobStatus.TERMINAL:
            logger.info("Cancel requested for finished job %s (%s)", job_id, job.status)
            return job

        job = self.controller.fail(job_id, CANCELLED_MESSAGE, stage=ProgressStage.ERROR)
        with self._lock:
            token = self._tokens.get(job_id)
        if token is not None:
            token.cancel()
            logger.info("Cancelled job %s", job_id)
        return job

    def abandon(self, job_id: str, message: str) -> Job | None:
        """Fail a created job whose inputs could not be prepared."""
        with self._lock:
            self._tokens.pop(job_id, None)
        return self._finish_failed(job_id, message)

    def shutdown(self, timeout: float = 5.0):
        """Cancel every running job and wait briefly for their threads."""
        with self._lock:
            running = list(self._tokens)
            threads = list(self._threads.values())
        for job_id in running:
            try:
                self.cancel(job_id)
            except JobError as e:
                logger.warning("Could not cancel job %s on shutdown: %s", job_id, e)
        for thread in threads:
            thread.join(timeout)

    # ── Pipeline ──────────────────────────────────────────────────────

    def run_job(self, job_id: str, inputs: dict | None = None) -> Job:
        """Run one job to a terminal state and return it."""
        with self._lock:
            token = self._tokens.setdefault(job_id, CancelToken())

        run = None
        inputs = dict(inputs or {})
        try:
            job = self.controller.get_job(job_id)
            if job.status == JobStatus.PROCESSING:
                logger.warning("Job %s is already processing, not running it", job_id)
                return job

            with JobResources(job_id, self.workspace_for(job_id)) as resources:
                # The run owns the upload from the start, whatever happens next
                if inputs.get('upload_path'):
                    resources.register(Path(inputs['upload_path']))
                if job.status != JobStatus.PENDING:
                    logger.warning("Job %s is %s, not running it", job_id, job.status)
                    return job

                run = JobRun(job=job, resources=resources, token=token, inputs=inputs)
                token.raise_if_cancelled()
                self._update(run, ProgressStage.VALIDATING, PROGRESS_VALIDATE, "Validating input")
                result = self._handlers[job.type](run)
                token.raise_if_cancelled()

            # Resources are released before the terminal write
            return self.controller.update_status(
                job_id, JobStatus.COMPLETED, result=result,
                message="Completed", stage=ProgressStage.COMPLETE)

        except JobCancelledError:
            logger.info("Job %s stopped after cancellation", job_id)
            return self._finish_failed(job_id, CANCELLED_MESSAGE)
        except JobError as e:
            stage = run.stage if run else ProgressStage.VALIDATING
            label = STAGE_LABELS[stage]
            if run and run.job.type == JobType.TRANSCRIPTION and stage == ProgressStage.ANALYZING:
                label = "Transcription"
            logger.warning("Job %s failed during %s: %s", job_id, stage, e)
            return self._finish_failed(job_id, f"{label} failed: {e.message}")
        except Exception as e:
            logger.error("Unexpected error processing job %s: %s", job_id, e, exc_info=True)
            return self._finish_failed(job_id, f"Unexpected error: {type(e).__name__}: {e}")
        finally:
            with self._lock:
                self._tokens.pop(job_id, None)
                self._threads.pop(job_id, None)

    def _finish_failed(self, job_id: str, message: str) -> Job | None:
        try:
            job = self.controller.get_job(job_id)
            if job.status in JobStatus.TERMINAL:
                return job
            return self.controller.fail(job_id, truncate_message(message),
                                        stage=ProgressStage.ERROR)
        except JobError as e:
            # Job deleted mid-run or store unavailable: nothing left to record
            logger.error("Could not record failure of job %s: %s", job_id, e)
            return None

    def _update(self, run: JobRun, stage: str, progress: int, message: str):
        run.token.raise_if_cancelled()
        run.stage = stage
        job = self.controller.update_status(run.job.id, JobStatus.PROCESSING,
                                            progress=progress, message=message, stage=stage)
        if job.status in JobStatus.TERMINAL:
            # Someone else finished the job (cancel or admin write)
            raise JobCancelledError(f"Job {run.job.id} is already {job.status}")

    # ── Shared stages ─────────────────────────────────────────────────

    def _acquire_source(self, run: JobRun, kind: str) -> tuple[MediaArtifact, bool]:
        """
        Resolve the job's media source into an artifact.
        Returns (artifact, downloaded) where downloaded marks a fresh
        audio-only download eligible for direct reuse.
        """
        md = run.metadata
        url = md.get('youtubeUrl')
        upload = run.inputs.get('upload_path')
        video_path = md.get('videoPath')

        if url:
            validate_source_url(url)
            self._update(run, ProgressStage.DOWNLOADING, PROGRESS_DOWNLOAD, f"Downloading {kind}")
            artifact = acquire_media(url, kind, md.get('quality') or DEFAULT_QUALITY,
                                     run.resources.workspace / "source", self.config, run.token)
            run.resources.register(artifact.path)
            self._update(run, ProgressStage.DOWNLOADING, PROGRESS_DOWNLOAD_DONE,
                         f"Downloaded {artifact.size_mb:.1f}MB")
            return artifact, kind == MediaKind.AUDIO

        if upload:
            path = Path(upload)
            if not path.is_file():
                raise InvalidSourceError("Uploaded file is missing")
            return MediaArtifact.from_path(path), False

        if video_path:
            # Caller-owned file: read it, never delete it
            path = Path(video_path)
            if not path.is_file():
                raise InvalidSourceError(f"Video file not found: {path.name}")
            return MediaArtifact.from_path(path), False

        raise InvalidSourceError("No media source provided")

    def _prepare_audio(self, run: JobRun, source: MediaArtifact, reusable: bool) -> MediaArtifact:
        """Transcode the source to the requested preset, or reuse it as is."""
        md = run.metadata
        fmt = md.get('format') or DEFAULT_AUDIO_FORMAT
        quality = md.get('quality') or DEFAULT_QUALITY
        start_time, end_time = md.get('startTime'), md.get('endTime')

        self._update(run, ProgressStage.PROCESSING, PROGRESS_PROCESS, "Preparing audio")

        clip = start_time is not None or end_time is not None
        if (reusable and not clip and source.format in DIRECT_TRANSCRIBE_EXTS
                and source.size_bytes <= self.config.max_artifact_bytes):
            # Ownership passes straight to the invocation stage
            source.duration_seconds = probe_duration(source.path, self.config, run.token)
            audio = source
            logger.info("Job %s: reusing downloaded %s without transcoding", run.job.id, source.format)
        else:
            audio = extract_audio(source.path, run.resources.workspace / "audio", self.config,
                                  fmt, quality, start_time, end_time, run.token)
            run.resources.register(audio.path)

        if audio.duration_seconds > self.config.max_duration_sec:
            raise PayloadTooLargeError(
                f"Content is {audio.duration_seconds:.0f}s long, limit is "
                f"{self.config.max_duration_sec}s")
        if self.tracker is not None:
            self.tracker.set_content_duration(run.job.id, audio.duration_seconds)

        self._update(run, ProgressStage.PROCESSING, PROGRESS_PROCESS_DONE,
                     f"Audio ready ({audio.duration_seconds:.0f}s)")
        return audio

    # ── Job types ─────────────────────────────────────────────────────

    def _run_transcription(self, run: JobRun) -> TranscriptionResult:
        md = run.metadata
        resolve_preset(md.get('format') or DEFAULT_AUDIO_FORMAT, md.get('quality') or DEFAULT_QUALITY)

        source, reusable = self._acquire_source(run, MediaKind.AUDIO)
        audio = self._prepare_audio(run, source, reusable)

        self._update(run, ProgressStage.ANALYZING, PROGRESS_ANALYZE, "Transcribing audio")
        text = transcribe_audio(audio, self.config.openai_api_key,
                                language=md.get('language'), prompt=md.get('prompt'),
                                timeout=self.config.upstream_timeout_sec)
        run.token.raise_if_cancelled()

        return TranscriptionResult(
            text=text,
            duration_seconds=audio.duration_seconds,
            word_count=count_words(text),
            language=md.get('language'),
            source=md.get('youtubeUrl') or md.get('originalFilename') or md.get('videoPath'),
        )

    def _run_analysis(self, run: JobRun) -> AnalysisResult:
        md = run.metadata
        model = md.get('model') or MODEL_GEMINI
        prompt = md.get('customPrompt') or DEFAULT_ANALYSIS_PROMPT
        source_url = md.get('youtubeUrl')
        api_key = self.config.openai_api_key if model == MODEL_GPT else self.config.gemini_api_key

        text = run.inputs.get('transcript_text')
        if text is not None:
            if len(text.strip()) < MIN_ANALYSIS_TEXT_CHARS:
                raise EmptyResultError("Transcription text is too short or empty to analyze")
            content = text
            method = 'transcription'
        else:
            kind = md.get('analysisType') or MediaKind.VIDEO
            if kind not in MediaKind.ALL:
                raise InvalidSourceError(f"Invalid analysis type: {kind}")
            source, reusable = self._acquire_source(run, kind)
            if kind == MediaKind.AUDIO:
                content = self._prepare_audio(run, source, reusable)
            else:
                content = source
            method = kind

        self._update(run, ProgressStage.ANALYZING, PROGRESS_ANALYZE, "Analyzing content")
        self._update(run, ProgressStage.ANALYZING_PENDING, PROGRESS_ANALYZE,
                     "Waiting for analysis response")
        report = analyze_content(content, prompt, api_key, model=model, source_url=source_url,
                                 timeout=self.config.upstream_timeout_sec)
        run.token.raise_if_cancelled()

        return AnalysisResult(report=report, model=model, analysis_method=method,
                              source_url=source_url)

    def _run_download(self, run: JobRun) -> DownloadResult:
        md = run.metadata
        kind = md.get('kind') or MediaKind.AUDIO
        video_id = validate_source_url(md.get('youtubeUrl') or "")
        source, _ = self._acquire_source(run, kind)

        self._update(run, ProgressStage.PROCESSING, PROGRESS_PROCESS, "Probing media")
        duration = probe_duration(source.path, self.config, run.token)

        self.config.output_root.mkdir(parents=True, exist_ok=True)
        dest = safe_child_path(self.config.output_root,
                               f"{video_id}_{kind}_{run.job.id[:8]}.{source.format}",
                               f"{run.job.id}.{source.format}")
        shutil.move(str(source.path), dest)
        # The exported file now belongs to the output folder
        run.resources.release(source.path)
        logger.info("Job %s: exported download to %s", run.job.id, dest)

        return DownloadResult(path=str(dest), size_bytes=source.size_bytes,
                              duration_seconds=duration, format=source.format)
