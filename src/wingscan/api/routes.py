"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, UploadFile, status
from fastapi.responses import JSONResponse

from wingscan.api.schemas import (
    ClassifyResponse,
    HealthResponse,
    HistoryItem,
    HistoryResponse,
    ModelInfo,
    ModelsResponse,
)
from wingscan.errors import ErrorKind
from wingscan.imaging.camera import CameraConstraints
from wingscan.ml.model_manager import MODEL_REGISTRY

if TYPE_CHECKING:
    from wingscan.config import Settings
    from wingscan.orchestrator import ClassificationOrchestrator, ClassificationOutcome

router = APIRouter(prefix="/api/v1")

_ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_MEDIA_TYPE: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    ErrorKind.FILE_TOO_LARGE: 413,  # Content Too Large
    ErrorKind.DECODE_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.MODEL_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.MODEL_LOAD_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INFERENCE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.CAMERA_UNSUPPORTED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.CAMERA_ACCESS_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.CLASSIFIER_BUSY: status.HTTP_409_CONFLICT,
}

_OUTCOME_RESPONSES: dict[int | str, dict[str, object]] = {
    code: {"model": ClassifyResponse} for code in sorted(set(_ERROR_STATUS.values()))
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_orchestrator(request: Request) -> ClassificationOrchestrator:
    orchestrator: ClassificationOrchestrator = request.app.state.orchestrator
    return orchestrator


def _outcome_response(outcome: ClassificationOutcome) -> JSONResponse:
    code = status.HTTP_200_OK if outcome.error is None else _ERROR_STATUS[outcome.error]
    body = ClassifyResponse.from_outcome(outcome)
    return JSONResponse(status_code=code, content=body.model_dump())


@router.post(
    "/classify",
    response_model=ClassifyResponse,
    responses=_OUTCOME_RESPONSES,
    summary="Classify an uploaded image",
)
async def classify_image(request: Request, file: UploadFile) -> JSONResponse:
    """Classify an uploaded or dropped image and return ranked labels."""
    outcome = await _get_orchestrator(request).submit_file(file)
    return _outcome_response(outcome)


@router.post(
    "/camera/capture",
    response_model=ClassifyResponse,
    responses=_OUTCOME_RESPONSES,
    summary="Capture and classify a camera frame",
)
async def capture_frame(request: Request) -> JSONResponse:
    """Open the configured camera, classify one frame, and release the camera."""
    settings = _get_settings(request)
    constraints = CameraConstraints(
        index=settings.camera_index,
        width=settings.camera_width,
        height=settings.camera_height,
    )
    outcome = await _get_orchestrator(request).capture(constraints)
    return _outcome_response(outcome)


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Recent classification history",
)
async def history(request: Request) -> HistoryResponse:
    """Return the most recent results, newest first, and the completed scan count."""
    orchestrator = _get_orchestrator(request)
    return HistoryResponse(
        entries=[HistoryItem.from_entry(entry) for entry in orchestrator.history],
        completed_scans=orchestrator.completed_scans,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    orchestrator = _get_orchestrator(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        busy=orchestrator.busy,
        state=orchestrator.phase.value,
        model_loaded=orchestrator.model_loaded,
        completed_scans=orchestrator.completed_scans,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return available classifier variants and which one is configured."""
    settings = _get_settings(request)

    models: list[ModelInfo] = []
    for spec in MODEL_REGISTRY.values():
        active = spec.version == settings.model_version and spec.alpha == settings.model_alpha
        models.append(
            ModelInfo(
                name=spec.name,
                version=spec.version,
                alpha=spec.alpha,
                input_size=spec.input_size,
                status="active" if active else "available",
                license=spec.license,
            )
        )

    return ModelsResponse(models=models)
