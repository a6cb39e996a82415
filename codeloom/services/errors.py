from __future__ import annotations

from typing import Any, Dict, List, Optional


class ProgramError(RuntimeError):
    """Base error for the program execution pipeline."""


class ConfigError(ProgramError):
    """Raised when a program spec cannot be executed as configured."""


class GenerationError(ProgramError):
    """Raised when the model call fails or yields no usable source."""

    def __init__(self, message: str, reply: Optional[str] = None) -> None:
        super().__init__(message)
        self.reply = reply


class ExecutionError(ProgramError):
    """Raised when generated source fails to compile, run or validate."""

    def __init__(
        self,
        message: str,
        source: str = "",
        *,
        kind: str = "runtime",
        diff: Optional[List[Dict[str, Any]]] = None,
        from_cache: bool = False,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.kind = kind
        self.diff = diff or []
        self.from_cache = from_cache

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "kind": self.kind,
            "source": self.source,
            "diff": self.diff,
            "from_cache": self.from_cache,
        }
