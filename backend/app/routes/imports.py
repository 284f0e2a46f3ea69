"""
Import endpoints for the media catalog.

POST /api/import/csv   multipart upload (field "csvFile")
POST /api/import/json  body {"items": [...]}
GET  /api/import/runs  recent import run log

Each import is one atomic run: it either commits and reports the number of
rows processed, or rolls back and reports a single categorized error.
"""

import json
import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from ..config import Config
from ..feature_flags import FeatureFlags, get_feature_flags
from ..ingestion import ImportOrchestrator, IngestionError, RowSource
from ..ingestion.adapters import CsvRowSource, JsonRowSource
from ..models.enums import ErrorCategory
from ..models.response import ImportResponse, ImportRunResponse
from ..services.media_repository import MediaRepository, get_media_repository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/import")

# HTTP status per run-level error category
STATUS_BY_CATEGORY = {
    ErrorCategory.INVALID_INPUT_FORMAT: 400,
    ErrorCategory.SIZE_EXCEEDED: 413,
    ErrorCategory.PARSE_FAILURE: 422,
    ErrorCategory.STORE_FAILURE: 500,
    ErrorCategory.CANCELLED: 409,
}


def _error_response(error: IngestionError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_CATEGORY.get(error.category, 500),
        detail={"error": error.message, "category": error.category.value},
    )


def _run_import(repo: MediaRepository, flags: FeatureFlags, source: RowSource) -> ImportResponse:
    orchestrator = ImportOrchestrator(
        repository=repo,
        log_runs=flags.feature_import_run_log,
    )
    try:
        summary = orchestrator.import_batch(source)
    except IngestionError as e:
        raise _error_response(e) from e
    except Exception as e:
        logger.error(f"Unexpected import failure: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e

    data = summary.to_dict()
    return ImportResponse(imported=data.pop("rows_processed"), **data)


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


@router.post("/csv", response_model=ImportResponse)
def import_csv(
    csv_file: UploadFile = File(..., alias="csvFile", description="Vendor CSV export"),
    repo: MediaRepository = Depends(get_media_repository),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> ImportResponse:
    """
    Import a CSV file.

    The upload is streamed through the pipeline; malformed lines are skipped
    and reported in rows_skipped.
    """
    source = CsvRowSource(
        csv_file.file,
        filename=csv_file.filename,
        content_type=csv_file.content_type,
        size_bytes=_upload_size(csv_file),
        max_size_bytes=Config.max_upload_size_bytes(),
    )
    return _run_import(repo, flags, source)


@router.post("/json", response_model=ImportResponse)
async def import_json(
    request: Request,
    repo: MediaRepository = Depends(get_media_repository),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> ImportResponse:
    """Import a JSON batch of shape {"items": [...]}."""
    if not flags.feature_json_import:
        raise HTTPException(status_code=404, detail="JSON import is disabled")

    body = await request.body()
    if len(body) > Config.MAX_JSON_BODY_BYTES:
        raise _error_response(IngestionError(
            ErrorCategory.SIZE_EXCEEDED,
            f"Request body exceeds {Config.MAX_JSON_BODY_MB}MB limit",
        ))

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise _error_response(IngestionError(
            ErrorCategory.INVALID_INPUT_FORMAT,
            f"Request body is not valid JSON: {e}",
        )) from e

    source = JsonRowSource.from_payload(payload, size_bytes=len(body))
    return await run_in_threadpool(_run_import, repo, flags, source)


@router.get("/runs", response_model=list[ImportRunResponse])
async def list_import_runs(
    limit: int = Query(default=20, ge=1, le=200, description="Max runs to return"),
    repo: MediaRepository = Depends(get_media_repository),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> list[ImportRunResponse]:
    """Most recent import runs, newest first."""
    if not flags.feature_import_run_log:
        raise HTTPException(status_code=404, detail="Import run log is disabled")

    try:
        runs = repo.recent_runs(limit)
    except Exception as e:
        logger.error(f"Failed to read import runs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to read import runs")

    return [ImportRunResponse(**run) for run in runs]
