from .cache_store import CacheMissError, CacheStoreError, FileProgramStore, ProgramStore
from .code_extractor import extract_code
from .errors import ConfigError, ExecutionError, GenerationError, ProgramError
from .llm_client import (
    MockModelAdapter,
    ModelDefinition,
    ModelRegistry,
    OllamaAdapter,
    OpenAIChatAdapter,
    default_registry,
    invoke_model,
)
from .program_runner import ProgramOutcome, ProgramRunner, arun_program, build_runner, run_program
from .program_spec import Example, ProgramSpec, program
from .prompt_assembler import assemble_prompt
from .result_validator import infer_schema, schema_from_hint, validate_result
from .sandbox_runner import ExecutionOutcome, execute_source
from .source_analyzer import analyze_source, plan_resolution

__all__ = [
    "CacheMissError",
    "CacheStoreError",
    "FileProgramStore",
    "ProgramStore",
    "extract_code",
    "ConfigError",
    "ExecutionError",
    "GenerationError",
    "ProgramError",
    "MockModelAdapter",
    "ModelDefinition",
    "ModelRegistry",
    "OllamaAdapter",
    "OpenAIChatAdapter",
    "default_registry",
    "invoke_model",
    "ProgramOutcome",
    "ProgramRunner",
    "arun_program",
    "build_runner",
    "run_program",
    "Example",
    "ProgramSpec",
    "program",
    "assemble_prompt",
    "infer_schema",
    "schema_from_hint",
    "validate_result",
    "ExecutionOutcome",
    "execute_source",
    "analyze_source",
    "plan_resolution",
]
