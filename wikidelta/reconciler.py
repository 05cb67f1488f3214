"""Regenerate artifacts and reconcile them with hand edits.

Every stored artifact keeps the text that was last generated for it
(``base_content``). When an artifact is regenerated, the fresh text and the
stored, possibly hand-edited, text are three-way merged against that base,
so edits on either side survive unless both touched the same lines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Literal, Optional, Sequence

from .diff_engine import MyersDiff
from .impact import artifact_title
from .interfaces import ArtifactStore, ContentGenerator
from .models import Artifact, MergeConflict, SymbolSnapshot
from .symbol_tracker import module_name

logger = logging.getLogger(__name__)

ConflictPolicy = Literal["keep", "markers"]


@dataclass
class ReconcileOutcome:
    artifact_id: str
    status: Literal["created", "updated", "merged", "unchanged", "conflict", "deleted"]
    conflicts: List[MergeConflict] = field(default_factory=list)

    def __str__(self) -> str:
        if self.status == "conflict":
            return f"⚠️  {self.artifact_id}: {len(self.conflicts)} conflict(s)"
        return f"✅ {self.artifact_id}: {self.status}"


class TemplateContentGenerator:
    """Deterministic Markdown renderer for artifact pages."""

    def generate(self, artifact_id: str, symbols: Sequence[SymbolSnapshot], files: Sequence[str]) -> str:
        lines = [f"# {artifact_title(artifact_id)}", ""]
        source_files = sorted(set(files) | {s.file_path for s in symbols})
        lines.append(f"_Generated from {len(source_files)} source file(s)._")
        lines.append("")

        if artifact_id in ("overview", "architecture"):
            modules = sorted({module_name(s.file_path) for s in symbols})
            lines.append("## Modules")
            lines.append("")
            lines.extend(f"- [{m}](module-{m}.md)" for m in modules)
            lines.append("")
            return "\n".join(lines)

        if not symbols:
            lines.append("_No documented symbols._")
            return "\n".join(lines)

        for path in source_files:
            in_file = sorted((s for s in symbols if s.file_path == path), key=lambda s: s.start_line)
            if not in_file:
                continue
            lines.append(f"## `{path}`")
            lines.append("")
            for symbol in in_file:
                lines.append(f"### `{symbol.name}` ({symbol.kind})")
                lines.append("")
                lines.append(f"    {symbol.signature}")
                lines.append("")
                if symbol.description:
                    lines.append(symbol.description)
                    lines.append("")
                if symbol.dependencies:
                    lines.append("Uses: " + ", ".join(f"`{d}`" for d in symbol.dependencies))
                    lines.append("")

        return "\n".join(lines).rstrip("\n") + "\n"


class ArtifactReconciler:
    """Writes regenerated content into an :class:`ArtifactStore`.

    Args:
        store: Artifact persistence
        generator: Produces fresh text for an artifact
        on_conflict: ``"keep"`` leaves the stored text untouched when the merge
            conflicts; ``"markers"`` stores the merged text with conflict markers
    """

    def __init__(
        self,
        store: ArtifactStore,
        generator: Optional[ContentGenerator] = None,
        on_conflict: ConflictPolicy = "keep",
    ) -> None:
        self.store = store
        self.generator = generator or TemplateContentGenerator()
        self.on_conflict = on_conflict
        self.diff = MyersDiff()

    def reconcile(
        self,
        artifact_id: str,
        symbols: Sequence[SymbolSnapshot],
        files: Sequence[str],
    ) -> ReconcileOutcome:
        existing = self.store.load(artifact_id)

        if not symbols and artifact_id.startswith("module-"):
            if existing is not None:
                self.store.delete(artifact_id)
                logger.info("Deleted artifact %s, its module has no symbols left", artifact_id)
                return ReconcileOutcome(artifact_id, "deleted")
            return ReconcileOutcome(artifact_id, "unchanged")

        fresh = self.generator.generate(artifact_id, symbols, files)
        source_files = sorted(set(files) | {s.file_path for s in symbols})

        if existing is None:
            self._save(artifact_id, fresh, fresh, source_files)
            return ReconcileOutcome(artifact_id, "created")

        if existing.content == existing.base_content:
            if existing.content == fresh:
                return ReconcileOutcome(artifact_id, "unchanged")
            self._save(artifact_id, fresh, fresh, source_files)
            return ReconcileOutcome(artifact_id, "updated")

        merged = self.diff.merge(existing.base_content, fresh, existing.content)
        if merged.resolved:
            self._save(artifact_id, merged.content, fresh, source_files)
            return ReconcileOutcome(artifact_id, "merged")

        logger.warning("Artifact %s has %d merge conflict(s)", artifact_id, len(merged.conflicts))
        if self.on_conflict == "markers":
            self._save(artifact_id, merged.content, fresh, source_files)
        return ReconcileOutcome(artifact_id, "conflict", conflicts=merged.conflicts)

    def _save(self, artifact_id: str, content: str, base: str, source_files: List[str]) -> None:
        self.store.save(Artifact(
            artifact_id=artifact_id,
            title=artifact_title(artifact_id),
            content=content,
            base_content=base,
            source_files=source_files,
            updated_at=datetime.now().isoformat(),
        ))
