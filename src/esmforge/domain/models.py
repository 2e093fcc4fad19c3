"""
Pipeline Domain Models

Pydantic models for type safety and validation across the pipeline.
These models are created once per run and never mutated afterwards.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import WorkerCategory


class WorkerSpec(BaseModel):
    """One configured pipeline step."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Worker id, e.g. 'build:ts,tsx' or 'mount:public'")
    command: str = Field(..., description="Shell command, plugin module specifier or mount command")
    category: WorkerCategory = Field(..., description="Category derived from the id prefix")
    extensions: tuple[str, ...] = Field(default=(), description="Matched file extensions (build/plugin only)")

    @property
    def is_transform(self) -> bool:
        """Whether this worker is dispatched against source files."""
        return self.category in (WorkerCategory.BUILD, WorkerCategory.PLUGIN)


class DependencyImportMap(BaseModel):
    """Bare module specifier to installed path fragment, read-only for the run."""
    model_config = ConfigDict(frozen=True)

    imports: dict[str, str] = Field(default_factory=dict, description="Bare specifier -> path fragment")

    def lookup(self, specifier: str) -> Optional[str]:
        return self.imports.get(specifier)


class SourceFile(BaseModel):
    """A file enumerated from the include root."""
    model_config = ConfigDict(frozen=True)

    path: Path = Field(..., description="Absolute path of the source file")
    extension: str = Field(..., description="Extension without the leading dot")

    @classmethod
    def from_path(cls, path: Path) -> "SourceFile":
        return cls(path=path, extension=path.suffix[1:])


class TransformResult(BaseModel):
    """Code produced by one worker for one file, and where it goes."""
    model_config = ConfigDict(frozen=True)

    code: str
    out_path: Path
