"""Collaborator contracts consumed by the update pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union, runtime_checkable

from .models import Artifact, ParsedFile, SymbolSnapshot


@runtime_checkable
class VersionControlSource(Protocol):
    def current_revision(self) -> str:
        ...

    def changed_files_since(self, revision: Optional[str]) -> List[str]:
        """Repository-relative paths changed since *revision* (all tracked files when None)."""
        ...

    def is_repository(self, path: Union[str, Path]) -> bool:
        ...


@runtime_checkable
class ParsedFileProvider(Protocol):
    def parse_files(self, paths: Sequence[str]) -> List[ParsedFile]:
        ...


@runtime_checkable
class ArtifactStore(Protocol):
    def load(self, artifact_id: str) -> Optional[Artifact]:
        ...

    def save(self, artifact: Artifact) -> None:
        ...

    def list(self) -> List[str]:
        ...

    def delete(self, artifact_id: str) -> bool:
        ...


@runtime_checkable
class ContentGenerator(Protocol):
    def generate(self, artifact_id: str, symbols: Sequence[SymbolSnapshot], files: Sequence[str]) -> str:
        """Return replacement text for *artifact_id*."""
        ...
