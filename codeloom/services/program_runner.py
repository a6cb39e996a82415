from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..core.settings import Settings, get_settings
from ..schemas.program import CachedProgramRecord
from .cache_store import FileProgramStore, ProgramStore
from .code_extractor import extract_code
from .errors import ConfigError, ExecutionError, GenerationError
from .input_profile import describe_shape, sanitize_input
from .llm_client import ModelRegistry, default_registry, invoke_model
from .program_spec import ProgramSpec
from .prompt_assembler import assemble_prompt
from .result_validator import validate_result
from .sandbox_runner import ExecutionOutcome, adapt_input, execute_source

PROGRAM_KIND = "program"

ProgressCallback = Callable[[str, Dict[str, Any]], None]


@dataclass
class ProgramOutcome:
    value: Any
    source: str
    from_cache: bool
    version_id: Optional[str] = None
    strategy: Optional[str] = None
    logs: List[str] = field(default_factory=list)


class ProgramRunner:
    """Runs a program spec: cached source if possible, otherwise generate, execute, validate, persist."""

    def __init__(
        self,
        registry: ModelRegistry,
        store: ProgramStore,
        sandbox: Callable[..., ExecutionOutcome] = execute_source,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.sandbox = sandbox
        self.settings = settings or get_settings()
        self.logger = logger or logging.getLogger(__name__)
        self.progress_callback = progress_callback

    def _emit(self, callback: Optional[ProgressCallback], event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        if callback is None:
            return
        try:
            callback(event, payload or {})
        except Exception:  # noqa: BLE001
            self.logger.debug("progress callback failed on %s", event, exc_info=True)

    def _execute(self, spec: ProgramSpec, source: str, value: Any, from_cache: bool) -> ExecutionOutcome:
        if spec.options.get("adapt_text_input"):
            value = adapt_input(source, value)
        timeout = float(spec.options.get("sandbox_timeout", self.settings.sandbox_timeout))
        outcome = self.sandbox(source, value, timeout=timeout, unwrap_result=spec.unwrap_result)
        if not outcome.ok:
            error = outcome.error
            if error.detail:
                self.logger.debug("execution failure detail:\n%s", error.detail)
            raise ExecutionError(
                f"Program execution failed ({error.kind}): {error.message}",
                source,
                kind=error.kind,
                from_cache=from_cache,
            )
        result = outcome.value if spec.unwrap_result else (outcome.value or {}).get("result")
        validate_result(result, spec.expected_shape, source, from_cache=from_cache)
        return outcome

    def _load_cached(self, spec: ProgramSpec, emit: Callable[..., None]) -> Optional[CachedProgramRecord]:
        emit("cache_check", {"cache_id": spec.cache_id})
        try:
            record = self.store.load(PROGRAM_KIND, spec.cache_id)
        except LookupError:
            emit("cache_miss", {"cache_id": spec.cache_id})
            return None
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Cache load failed for '%s': %s", spec.cache_id, exc)
            emit("cache_error", {"cache_id": spec.cache_id, "error": str(exc)})
            return None
        emit("cache_hit", {"cache_id": spec.cache_id, "version": record.version})
        return record

    def _generate(self, spec: ProgramSpec, adapter: Any, value: Any, emit: Callable[..., None]) -> str:
        prompt = assemble_prompt(spec, value)
        emit("prompt_ready", {"prompt": prompt, "chars": len(prompt)})
        started = time.perf_counter()
        try:
            reply = invoke_model(adapter, prompt, timeout=spec.options.get("timeout"))
        except GenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise GenerationError(f"Model '{spec.model}' failed: {exc}") from exc
        emit(
            "llm_io",
            {"model": spec.model, "reply": reply, "elapsed_ms": round((time.perf_counter() - started) * 1000.0, 1)},
        )
        source = extract_code(reply)
        spec.last_generated_source = source
        emit("code_extracted", {"source": source, "lines": source.count("\n") + 1})
        return source

    def _persist(self, spec: ProgramSpec, source: str, emit: Callable[..., None]) -> Optional[str]:
        record = CachedProgramRecord(
            source=source,
            prompt=spec.prompt or "",
            model=spec.model or "",
            metadata={"options": dict(spec.options), "examples": len(spec.examples)},
        )
        try:
            version = self.store.save(PROGRAM_KIND, spec.cache_id, record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Failed to persist program '%s': %s", spec.cache_id, exc)
            emit("persist_failed", {"cache_id": spec.cache_id, "error": str(exc)})
            return None
        emit("persisted", {"cache_id": spec.cache_id, "version": version})
        return version

    def run(self, spec: ProgramSpec, value: Any = None, progress_callback: Optional[ProgressCallback] = None) -> ProgramOutcome:
        callback = progress_callback or self.progress_callback

        def emit(event: str, payload: Optional[Dict[str, Any]] = None) -> None:
            self._emit(callback, event, payload)

        spec.validate()
        adapter = self.registry.get_adapter(spec.model)
        try:
            sanitize_input(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Program input is not representable as plain data: {exc}") from exc
        emit(
            "startup",
            {"model": spec.model, "cache_id": spec.cache_id, "input_shape": describe_shape(value)},
        )

        if spec.cache_id and not spec.force_regenerate:
            record = self._load_cached(spec, emit)
            if record is not None:
                emit("execution_start", {"from_cache": True})
                outcome = self._execute(spec, record.source, value, from_cache=True)
                emit("execution_end", {"strategy": outcome.strategy, "duration_ms": outcome.duration_ms})
                emit("validated", {"from_cache": True})
                emit("finished", {"from_cache": True, "value": outcome.value})
                return ProgramOutcome(
                    value=outcome.value,
                    source=record.source,
                    from_cache=True,
                    version_id=record.version,
                    strategy=outcome.strategy,
                    logs=outcome.logs,
                )

        source = self._generate(spec, adapter, value, emit)
        emit("execution_start", {"from_cache": False})
        outcome = self._execute(spec, source, value, from_cache=False)
        emit("execution_end", {"strategy": outcome.strategy, "duration_ms": outcome.duration_ms})
        emit("validated", {"from_cache": False})

        version = self._persist(spec, source, emit) if spec.cache_id else None
        emit("finished", {"from_cache": False, "value": outcome.value})
        return ProgramOutcome(
            value=outcome.value,
            source=source,
            from_cache=False,
            version_id=version,
            strategy=outcome.strategy,
            logs=outcome.logs,
        )

    async def arun(self, spec: ProgramSpec, value: Any = None, progress_callback: Optional[ProgressCallback] = None) -> ProgramOutcome:
        return await asyncio.to_thread(self.run, spec, value, progress_callback)


def build_runner(settings: Optional[Settings] = None, **kwargs: Any) -> ProgramRunner:
    settings = settings or get_settings()
    return ProgramRunner(
        registry=kwargs.pop("registry", None) or default_registry(settings),
        store=kwargs.pop("store", None) or FileProgramStore(settings.store_root),
        settings=settings,
        **kwargs,
    )


def run_program(spec: ProgramSpec, value: Any = None, runner: Optional[ProgramRunner] = None) -> Any:
    """Run ``spec`` against ``value`` and return only the resulting value."""

    return (runner or build_runner()).run(spec, value).value


async def arun_program(spec: ProgramSpec, value: Any = None, runner: Optional[ProgramRunner] = None) -> Any:
    outcome = await (runner or build_runner()).arun(spec, value)
    return outcome.value
