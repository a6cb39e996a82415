from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.settings import get_settings
from ..schemas.program import (
    CachedProgramRecord,
    ProgramListResponse,
    ProgramVersionsResponse,
    RunProgramRequest,
    RunProgramResponse,
)
from ..services import (
    CacheMissError,
    CacheStoreError,
    ConfigError,
    ExecutionError,
    GenerationError,
    ProgramRunner,
    build_runner,
    program,
)
from ..services.program_runner import PROGRAM_KIND

router = APIRouter(prefix="/programs", tags=["programs"])

_runner: Optional[ProgramRunner] = None


def get_runner() -> ProgramRunner:
    global _runner
    if _runner is None:
        _runner = build_runner(get_settings())
    return _runner


def _spec_from_request(payload: RunProgramRequest):
    options: Dict[str, Any] = dict(payload.options)
    if payload.force_regenerate:
        options["force_regenerate"] = True
    spec = (
        program(payload.prompt)
        .with_model(payload.model)
        .with_options(options)
        .with_examples([example.model_dump() for example in payload.examples])
        .with_cache_id(payload.cache_id)
        .with_unwrap_result(payload.unwrap_result)
    )
    if payload.expected_shape is not None:
        spec = spec.with_expected_shape(payload.expected_shape)
    return spec


@router.post("/run", response_model=RunProgramResponse)
def run(payload: RunProgramRequest, runner: ProgramRunner = Depends(get_runner)) -> RunProgramResponse:
    spec = _spec_from_request(payload)
    try:
        outcome = runner.run(spec, payload.input)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except GenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ExecutionError as exc:
        raise HTTPException(status_code=422, detail=exc.to_dict()) from exc
    return RunProgramResponse(
        value=outcome.value,
        source=outcome.source,
        from_cache=outcome.from_cache,
        version_id=outcome.version_id,
        strategy=outcome.strategy,
        logs=outcome.logs,
    )


@router.get("", response_model=ProgramListResponse)
def list_programs(runner: ProgramRunner = Depends(get_runner)) -> ProgramListResponse:
    return ProgramListResponse(ids=runner.store.list_ids(PROGRAM_KIND))


def _load(runner: ProgramRunner, program_id: str, version: Optional[str]) -> CachedProgramRecord:
    try:
        return runner.store.load(PROGRAM_KIND, program_id, version)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CacheMissError as exc:
        raise HTTPException(status_code=404, detail=f"Program '{program_id}' not found.") from exc
    except CacheStoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("/{program_id}")
def get_program(
    program_id: str,
    version: Optional[str] = Query(None),
    runner: ProgramRunner = Depends(get_runner),
) -> Dict[str, Any]:
    record = _load(runner, program_id, version)
    document = record.to_document()
    document["version"] = record.version
    return document


@router.get("/{program_id}/versions", response_model=ProgramVersionsResponse)
def list_versions(program_id: str, runner: ProgramRunner = Depends(get_runner)) -> ProgramVersionsResponse:
    try:
        versions = runner.store.list_versions(PROGRAM_KIND, program_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not versions:
        raise HTTPException(status_code=404, detail=f"Program '{program_id}' not found.")
    return ProgramVersionsResponse(id=program_id, versions=versions, latest=_load(runner, program_id, None).version)


@router.delete("/{program_id}")
def delete_program(program_id: str, runner: ProgramRunner = Depends(get_runner)) -> Dict[str, Any]:
    try:
        deleted = runner.store.delete(PROGRAM_KIND, program_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Program '{program_id}' not found.")
    return {"id": program_id, "deleted": True}
