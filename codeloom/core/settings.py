from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() not in {"", "0", "false", "no"}


@dataclass
class Settings:
    llm_api_base: str | None
    llm_api_key: str | None
    llm_model: str
    llm_timeout: float
    llm_retries: int
    sandbox_timeout: float
    store_root: Path
    debug: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    default_root = Path.home() / ".codeloom"
    root = Path(os.getenv("CODELOOM_STORE_ROOT", str(default_root))).expanduser().resolve()
    return Settings(
        llm_api_base=os.getenv("LLM_API_BASE"),
        llm_api_key=os.getenv("LLM_API_KEY"),
        llm_model=os.getenv("LLM_MODEL", "gpt-4.1-mini"),
        llm_timeout=float(os.getenv("LLM_TIMEOUT", "60")),
        llm_retries=max(int(os.getenv("LLM_RETRY", "2")), 0),
        sandbox_timeout=float(os.getenv("SANDBOX_TIMEOUT", "3.0")),
        store_root=root,
        debug=_env_flag("CODELOOM_DEBUG"),
    )
