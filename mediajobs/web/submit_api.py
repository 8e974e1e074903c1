"""
Submission endpoints: transcription, media/transcript analysis and downloads.
"""

import logging
import shutil
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from mediajobs.core.constants import (
    JobStatus, JobType, MediaKind, AudioFormat, Quality, CANCELLED_MESSAGE,
    DEFAULT_AUDIO_FORMAT, DEFAULT_QUALITY,
)
from mediajobs.core.analyze import MODEL_GEMINI, MODEL_GPT
from mediajobs.core.cleanup import remove_empty_workspace
from mediajobs.core.error_codes import NotFoundError
from mediajobs.core.models_sqlite import Job
from mediajobs.core.security_utils import sanitize_filename
from mediajobs.core.url_parse import validate_source_url
from mediajobs.web.state import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["submission"])


class AnalyzeRequest(BaseModel):
    youtubeUrl: str
    analysisType: str = MediaKind.VIDEO
    customPrompt: Optional[str] = None
    model: str = MODEL_GEMINI
    wait: bool = False


class AnalyzeTranscriptionRequest(BaseModel):
    transcriptionText: str
    youtubeUrl: Optional[str] = None
    modelType: Optional[str] = None
    customPrompt: Optional[str] = None


class DownloadRequest(BaseModel):
    youtubeUrl: str
    kind: str = MediaKind.AUDIO
    quality: str = DEFAULT_QUALITY
    wait: bool = False


def _failed_response(job: Job | None) -> JSONResponse:
    if job is None:
        # Deleted while it ran
        raise NotFoundError("Job no longer exists")
    cancelled = bool(job.error) and CANCELLED_MESSAGE in job.error
    return JSONResponse(
        status_code=409 if cancelled else 422,
        content={"id": job.id, "job_id": job.id, "success": False, "error": job.error},
    )


def _accepted_response(job: Job) -> JSONResponse:
    return JSONResponse(
        status_code=202,
        content={"id": job.id, "job_id": job.id, "status": job.status, "success": True},
    )


@router.post("/transcribe")
def transcribe(audioFile: Optional[UploadFile] = File(None),
               videoPath: Optional[str] = Form(None),
               youtubeUrl: Optional[str] = Form(None),
               format: str = Form(DEFAULT_AUDIO_FORMAT),
               quality: str = Form(DEFAULT_QUALITY),
               language: Optional[str] = Form(None),
               prompt: Optional[str] = Form(None),
               startTime: Optional[float] = Form(None),
               endTime: Optional[float] = Form(None),
               wait: bool = Form(True),
               services: AppServices = Depends(get_services)):
    """Create a transcription job; by default run it and return the text."""
    sources = [s for s in (audioFile, videoPath, youtubeUrl) if s]
    if len(sources) != 1:
        raise HTTPException(status_code=400,
                            detail="Provide exactly one of audioFile, videoPath or youtubeUrl")
    if format not in AudioFormat.ALL:
        raise HTTPException(status_code=400, detail=f"Unsupported format: {format}")
    if quality not in Quality.ALL:
        raise HTTPException(status_code=400, detail=f"Unsupported quality: {quality}")
    if youtubeUrl:
        validate_source_url(youtubeUrl)

    metadata = {"format": format, "quality": quality}
    for key, value in (("youtubeUrl", youtubeUrl), ("videoPath", videoPath),
                       ("language", language), ("prompt", prompt),
                       ("startTime", startTime), ("endTime", endTime)):
        if value is not None and value != "":
            metadata[key] = value
    if audioFile:
        metadata["originalFilename"] = audioFile.filename
        metadata["contentType"] = audioFile.content_type

    runner = services.runner
    job = runner.create_job(JobType.TRANSCRIPTION, metadata)
    inputs = {}

    if audioFile:
        upload_dir = runner.workspace_for(job.id) / "upload"
        save_path = upload_dir / (sanitize_filename(audioFile.filename or "") or "upload.bin")
        try:
            upload_dir.mkdir(parents=True, exist_ok=True)
            with open(save_path, "wb") as buffer:
                shutil.copyfileobj(audioFile.file, buffer)
        except OSError as e:
            logger.error("Failed to store upload for job %s: %s", job.id, e)
            save_path.unlink(missing_ok=True)
            remove_empty_workspace(runner.workspace_for(job.id))
            runner.abandon(job.id, "Upload could not be stored")
            raise HTTPException(status_code=500, detail="Failed to store uploaded file")
        inputs["upload_path"] = save_path

    if not wait:
        runner.start(job, inputs)
        return _accepted_response(job)

    job = runner.start(job, inputs, wait=True)
    if job is None or job.status != JobStatus.COMPLETED:
        return _failed_response(job)

    result = job.result
    return {
        "id": job.id,
        "job_id": job.id,
        "text": result.text,
        "duration_seconds": result.duration_seconds,
        "word_count": result.word_count,
        "success": True,
    }


@router.post("/analyze")
def analyze(body: AnalyzeRequest, services: AppServices = Depends(get_services)):
    """Create an analysis job for a remote video or its audio track."""
    if body.analysisType not in MediaKind.ALL:
        raise HTTPException(status_code=400, detail="Invalid analysisType")
    if body.model not in (MODEL_GEMINI, MODEL_GPT):
        raise HTTPException(status_code=400, detail="Invalid model")
    if body.model == MODEL_GPT:
        raise HTTPException(status_code=400, detail="GPT analysis needs a transcript; use /api/analyze-transcription")
    validate_source_url(body.youtubeUrl)

    metadata = {
        "youtubeUrl": body.youtubeUrl,
        "analysisType": body.analysisType,
        "model": body.model,
    }
    if body.customPrompt:
        metadata["customPrompt"] = body.customPrompt

    job = services.runner.submit(JobType.ANALYSIS, metadata, wait=body.wait)
    if not body.wait:
        return _accepted_response(job)
    if job is None or job.status != JobStatus.COMPLETED:
        return _failed_response(job)
    return job.to_dict()


@router.post("/analyze-transcription")
def analyze_transcription(body: AnalyzeTranscriptionRequest,
                          services: AppServices = Depends(get_services)):
    """Analyze transcript text synchronously."""
    model = MODEL_GPT if (body.modelType or "").lower() == MODEL_GPT else MODEL_GEMINI
    metadata = {"model": model, "analysisMethod": "transcription"}
    if body.youtubeUrl:
        metadata["youtubeUrl"] = body.youtubeUrl
    if body.customPrompt:
        metadata["customPrompt"] = body.customPrompt

    job = services.runner.submit(JobType.ANALYSIS, metadata,
                                 inputs={"transcript_text": body.transcriptionText}, wait=True)
    if job is None or job.status != JobStatus.COMPLETED:
        return _failed_response(job)
    return {
        "job_id": job.id,
        "reportContent": job.result.report,
        "modelUsed": job.result.model,
        "analysisMethod": job.result.analysis_method,
    }


@router.post("/download")
def download(body: DownloadRequest, services: AppServices = Depends(get_services)):
    """Create a download job that exports media to the output folder."""
    if body.kind not in MediaKind.ALL:
        raise HTTPException(status_code=400, detail="Invalid kind")
    if body.quality not in Quality.ALL:
        raise HTTPException(status_code=400, detail="Invalid quality")
    validate_source_url(body.youtubeUrl)

    metadata = {"youtubeUrl": body.youtubeUrl, "kind": body.kind, "quality": body.quality}
    job = services.runner.submit(JobType.DOWNLOAD, metadata, wait=body.wait)
    if not body.wait:
        return _accepted_response(job)
    if job is None or job.status != JobStatus.COMPLETED:
        return _failed_response(job)
    return job.to_dict()
