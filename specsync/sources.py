"""
Source access: current file text and diffs from a working tree or git
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .core.models import ChangedFile
from .segmenter import DiffSegmenter

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 30

_STATUS_CODES = {
    "A": "added",
    "D": "removed",
    "M": "modified",
    "R": "renamed",
    "C": "copied"
}


class SourceAccessor(ABC):
    """Provides file contents and diffs to the pipeline"""

    @abstractmethod
    def read_file(self, path: str, revision: Optional[str] = None) -> Optional[str]:
        """Text of a file at a revision, or None when it does not exist"""

    @abstractmethod
    def read_diff(self, base: str, head: Optional[str] = None) -> str:
        """Unified diff between two revisions"""

    def changed_files(self, base: str, head: Optional[str] = None) -> List[ChangedFile]:
        return []

    def find_test_files(self, path: str) -> List[str]:
        """Existing test files that cover a source file"""
        return []


class InMemorySourceAccessor(SourceAccessor):
    """Serves files from a dict; used by the HTTP API and tests"""

    def __init__(self, files: Optional[Dict[str, str]] = None, diff: str = ""):
        self.files = dict(files or {})
        self.diff = diff

    def read_file(self, path: str, revision: Optional[str] = None) -> Optional[str]:
        return self.files.get(path)

    def read_diff(self, base: str, head: Optional[str] = None) -> str:
        return self.diff

    def find_test_files(self, path: str) -> List[str]:
        return [c for c in DiffSegmenter.test_file_candidates(path) if c in self.files]


class LocalSourceAccessor(SourceAccessor):
    """
    Reads a local checkout.

    Without a revision files come from the working tree; with one they come
    from ``git show <rev>:<path>``.
    """

    def __init__(self, root: str = "."):
        self.root = os.path.abspath(root)

    def _git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.root,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
            check=True
        )
        return result.stdout

    def read_file(self, path: str, revision: Optional[str] = None) -> Optional[str]:
        if revision:
            try:
                return self._git("show", f"{revision}:{path}")
            except (subprocess.CalledProcessError, FileNotFoundError) as e:
                logger.info("Cannot read %s at %s: %s", path, revision, e)
                return None

        full_path = os.path.join(self.root, path)
        try:
            with open(full_path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read %s: %s", full_path, e)
            return None

    def read_diff(self, base: str, head: Optional[str] = None) -> str:
        args = ["diff", base] + ([head] if head else [])
        return self._git(*args)

    def find_test_files(self, path: str) -> List[str]:
        return DiffSegmenter.find_test_files(path, self.root)

    def changed_files(self, base: str, head: Optional[str] = None) -> List[ChangedFile]:
        """Files touched between two revisions, from ``git diff --name-status``"""
        args = ["diff", "--name-status", base] + ([head] if head else [])
        files = []
        for line in self._git(*args).splitlines():
            parts = line.split("\t")
            if len(parts) < 2:
                continue
            status = _STATUS_CODES.get(parts[0][:1], "modified")
            files.append(ChangedFile(path=parts[-1], status=status))
        return files
