"""Git-backed change source and hash-based change detection."""

from __future__ import annotations

import hashlib
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Union

from .interfaces import VersionControlSource
from .models import ChangeInfo

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 30


class NotARepositoryError(RuntimeError):
    """Path is not a git repository."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(f"Not a git repository: {path}")
        self.path = str(path)


class GitSource:
    """:class:`VersionControlSource` that shells out to the ``git`` binary.

    Args:
        root: Working tree root
        suffixes: Only report files with these suffixes (all files when empty)
    """

    def __init__(self, root: Union[str, Path], suffixes: Optional[List[str]] = None):
        self.root = Path(root).resolve()
        self.suffixes = suffixes or []
        if not self.is_repository(self.root):
            raise NotARepositoryError(self.root)

    @staticmethod
    def git_available() -> bool:
        return shutil.which("git") is not None

    def _run(self, *args: str, cwd: Optional[Path] = None) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd or self.root),
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
            check=False,
        )
        if result.returncode != 0:
            raise RuntimeError(f"git {' '.join(args)} failed: {result.stderr.strip()}")
        return result.stdout

    def is_repository(self, path: Union[str, Path]) -> bool:
        if not self.git_available():
            return False
        path = Path(path)
        if not path.is_dir():
            return False
        try:
            result = subprocess.run(
                ["git", "rev-parse", "--is-inside-work-tree"],
                cwd=str(path),
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("Could not run git in %s: %s", path, exc)
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def current_revision(self) -> str:
        return self._run("rev-parse", "HEAD").strip()

    def changed_files_since(self, revision: Optional[str]) -> List[str]:
        """Committed, staged, unstaged and untracked paths changed since *revision*."""
        if revision:
            output = self._run("diff", "--name-only", "--relative", revision, "--")
        else:
            output = self._run("ls-files")
        paths = [line for line in output.splitlines() if line.strip()]

        untracked = self._run("ls-files", "--others", "--exclude-standard")
        paths.extend(line for line in untracked.splitlines() if line.strip())

        unique = list(dict.fromkeys(paths))
        if self.suffixes:
            unique = [p for p in unique if Path(p).suffix in self.suffixes]
        return unique


def content_hash(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def detect_file_changes(
    source: VersionControlSource,
    since: Optional[str],
    stored_hashes: Mapping[str, str],
    read_file: Callable[[str], Optional[str]],
    root: Union[str, Path, None] = None,
) -> List[ChangeInfo]:
    """Turn the paths reported by *source* into :class:`ChangeInfo` records.

    A path whose content can no longer be read is ``deleted``; a path with no
    stored hash is ``added``; a path whose md5 differs from the stored one is
    ``modified``. Paths with unchanged content are dropped.

    Raises:
        NotARepositoryError: If *source* does not report a repository at *root*
    """
    if root is not None and not source.is_repository(root):
        raise NotARepositoryError(root)

    changes: List[ChangeInfo] = []
    for path in source.changed_files_since(since):
        if not path:
            logger.warning("Skipping empty path reported by version control")
            continue

        old_hash = stored_hashes.get(path)
        content = read_file(path)

        if content is None:
            if old_hash is not None:
                changes.append(ChangeInfo(file_path=path, change_type="deleted", old_hash=old_hash))
            continue

        new_hash = content_hash(content)
        if old_hash is None:
            changes.append(ChangeInfo(file_path=path, change_type="added", new_hash=new_hash))
        elif old_hash != new_hash:
            changes.append(ChangeInfo(
                file_path=path,
                change_type="modified",
                old_hash=old_hash,
                new_hash=new_hash,
            ))

    # Files tracked previously but no longer reported may have been removed.
    reported = {c.file_path for c in changes}
    for path, old_hash in stored_hashes.items():
        if path not in reported and read_file(path) is None:
            changes.append(ChangeInfo(file_path=path, change_type="deleted", old_hash=old_hash))

    logger.info("Detected %d file change(s) since %s", len(changes), since or "the beginning")
    return changes


def filesystem_reader(root: Union[str, Path]) -> Callable[[str], Optional[str]]:
    """Return a ``read_file`` callable that reads paths relative to *root*."""
    base = Path(root)

    def read(path: str) -> Optional[str]:
        target = base / path
        if not target.is_file():
            return None
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read %s: %s", target, exc)
            return None

    return read
