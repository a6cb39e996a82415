from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CachedProgramRecord(BaseModel):
    """One stored version of a generated program, in its on-disk JSON shape."""

    model_config = ConfigDict(populate_by_name=True)

    source: str
    prompt: str = ""
    created_at: str = Field("", alias="createdAt")
    model: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict, alias="_metadata")
    version: Optional[str] = Field(None, exclude=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"version"})


class ExampleModel(BaseModel):
    input: Any = None
    output: Any = None


class RunProgramRequest(BaseModel):
    prompt: str
    input: Any = None
    model: str = "default"
    cache_id: Optional[str] = None
    force_regenerate: bool = False
    examples: List[ExampleModel] = Field(default_factory=list)
    expected_shape: Optional[Any] = Field(None, description="Type hint string or JSON schema.")
    unwrap_result: bool = True
    options: Dict[str, Any] = Field(default_factory=dict)


class RunProgramResponse(BaseModel):
    value: Any = None
    source: str
    from_cache: bool
    version_id: Optional[str] = None
    strategy: Optional[str] = None
    logs: List[str] = Field(default_factory=list)


class ProgramListResponse(BaseModel):
    ids: List[str]


class ProgramVersionsResponse(BaseModel):
    id: str
    versions: List[str]
    latest: Optional[str] = None
