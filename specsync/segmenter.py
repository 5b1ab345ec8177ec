"""
Split a unified diff into per-function change regions.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple, Union

from .core.config import (
    COMMENT_KEYWORDS,
    COMMENT_MARKERS,
    COMMENT_WINDOW,
    DEFAULT_COMMENT_MARKERS,
    EXTENSION_TO_LANGUAGE,
    FUNCTION_SIGNATURES,
    INDENTED_LANGUAGES,
    NON_FUNCTION_NAMES,
    TEST_FILE_PATTERN,
    TEST_FILE_TEMPLATES
)
from .core.models import ChangedFile, ChangeType, CodeComment, CommentKind, FunctionChange

logger = logging.getLogger(__name__)

GIT_HEADER_RE = re.compile(r"^diff --git a/(.+?) b/(.+)$")
HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,\d+)? \+(\d+)(?:,\d+)? @@ ?(.*)$")
FILE_HEADER_PREFIXES = (
    "index ", "--- ", "+++ ", "new file mode", "deleted file mode", "old mode",
    "new mode", "similarity index", "rename from", "rename to", "Binary files"
)

ChangedFileLike = Union[ChangedFile, Mapping[str, Any], str]


def language_for_path(file_path: str) -> Optional[str]:
    """Language tag for a file, from its extension"""
    return EXTENSION_TO_LANGUAGE.get(Path(file_path).suffix)


def _compile_signatures() -> Dict[str, List[Pattern]]:
    table: Dict[str, List[Pattern]] = {}
    for language, pattern in FUNCTION_SIGNATURES:
        table.setdefault(language, []).append(re.compile(pattern))
    return table


def _indent_of(text: str) -> int:
    return len(text.expandtabs(4)) - len(text.expandtabs(4).lstrip())


class _Capture:
    """A function region being collected while scanning diff lines"""

    def __init__(self, name: str, position: int, start_line: int, marker: str, indent: int,
                 inside_body: bool = False):
        self.name = name
        self.position = position
        self.start_line = start_line
        self.marker = marker
        self.indent = indent
        self.lines: List[str] = []
        self.twin_seen = False
        start = 1 if inside_body else 0
        self.balance = {"old": start, "new": start}
        self.opened = {"old": inside_body, "new": inside_body}

    @property
    def block_opened(self) -> bool:
        return self.opened["old"] or self.opened["new"]

    def feed_braces(self, marker: str, text: str) -> None:
        if marker == "+":
            sides = ("new",)
        elif marker == "-":
            sides = ("old",)
        else:
            sides = ("old", "new")
        for char in text:
            if char == "{":
                for side in sides:
                    self.balance[side] += 1
                    self.opened[side] = True
            elif char == "}":
                for side in sides:
                    self.balance[side] -= 1

    @property
    def closed(self) -> bool:
        """True once every side that opened a block has balanced back to zero"""
        opened_sides = [side for side, opened in self.opened.items() if opened]
        return bool(opened_sides) and all(self.balance[side] <= 0 for side in opened_sides)


class DiffSegmenter:
    """
    Locates function-shaped regions inside a unified diff.

    A single scanner is driven by the (language, pattern) table in
    ``core.config``. Brace languages close a region when its brace balance
    returns to zero after going positive; Python regions close on dedent.
    """

    def __init__(self, comment_window: int = COMMENT_WINDOW):
        self.comment_window = comment_window
        self.signatures = _compile_signatures()
        all_patterns: List[Pattern] = []
        for patterns in self.signatures.values():
            for pattern in patterns:
                if pattern.pattern not in [p.pattern for p in all_patterns]:
                    all_patterns.append(pattern)
        self._all_patterns = all_patterns

    def parse_diff(self, diff: str, changed_files: Iterable[ChangedFileLike]) -> List[FunctionChange]:
        """
        Extract function changes for every source file in a diff.

        Args:
            diff: Raw unified diff text
            changed_files: Changed-file descriptors (ChangedFile, dicts with
                "filename"/"path" and "status", or bare paths)

        Returns:
            FunctionChange list in file order, then diff order
        """
        changes: List[FunctionChange] = []
        sections = self.split_file_sections(diff)

        for descriptor in changed_files:
            changed = self._coerce(descriptor)
            if not self.is_code_file(changed.path):
                logger.debug("Skipping non-source file %s", changed.path)
                continue

            section = sections.get(changed.path)
            if section is None:
                logger.debug("No diff section found for %s", changed.path)
                continue

            changes.extend(self.extract_functions(
                "\n".join(section),
                language=language_for_path(changed.path),
                file_path=changed.path
            ))

        return changes

    @staticmethod
    def _coerce(descriptor: ChangedFileLike) -> ChangedFile:
        if isinstance(descriptor, ChangedFile):
            return descriptor
        if isinstance(descriptor, str):
            return ChangedFile(path=descriptor)
        path = descriptor.get("filename") or descriptor.get("path") or ""
        return ChangedFile(path=path, status=descriptor.get("status", "modified"))

    def is_code_file(self, file_path: str) -> bool:
        """Source file by extension, and not a test/spec file"""
        if Path(file_path).suffix not in EXTENSION_TO_LANGUAGE:
            return False
        return TEST_FILE_PATTERN.search(file_path) is None

    def split_file_sections(self, diff: str) -> Dict[str, List[str]]:
        """
        Map each file path in a diff to the lines of its section.

        Sections start at ``diff --git`` boundaries. Diffs without git
        headers fall back to ``---``/``+++`` pairs. Both the old and new path
        of a section map to the same lines.
        """
        lines = diff.split("\n")
        sections: Dict[str, List[str]] = {}
        current: Optional[List[str]] = None
        has_git_headers = any(line.startswith("diff --git") for line in lines)

        for i, line in enumerate(lines):
            if line.startswith("diff --git"):
                current = []
                match = GIT_HEADER_RE.match(line)
                if match:
                    sections[match.group(1)] = current
                    sections[match.group(2)] = current
                else:
                    logger.debug("Unparsable diff header: %s", line)
                continue

            if (not has_git_headers and line.startswith("--- ")
                    and i + 1 < len(lines) and lines[i + 1].startswith("+++ ")):
                current = []
                for header in (line[4:], lines[i + 1][4:]):
                    path = header.split("\t")[0].strip()
                    if path[:2] in ("a/", "b/"):
                        path = path[2:]
                    if path != "/dev/null":
                        sections[path] = current

            if current is not None:
                current.append(line)

        return sections

    def changed_files_from_diff(self, diff: str) -> List[ChangedFile]:
        """
        Changed-file descriptors read from the diff's own headers.

        Used when the caller has no file list. A section keeps its new path,
        or its old path when the file was deleted.
        """
        files: List[ChangedFile] = []
        status = "modified"
        path: Optional[str] = None

        def flush() -> None:
            if path and all(f.path != path for f in files):
                files.append(ChangedFile(path=path, status=status))

        for line in diff.split("\n"):
            match = GIT_HEADER_RE.match(line)
            if match:
                flush()
                path, status = match.group(2), "modified"
            elif path is not None and line.startswith("new file mode"):
                status = "added"
            elif path is not None and line.startswith("deleted file mode"):
                status = "removed"
        flush()
        return files

    def extract_file_diff(self, diff: str, file_path: str) -> str:
        """Diff text for a single file, or an empty string"""
        return "\n".join(self.split_file_sections(diff).get(file_path, []))

    def match_signature(self, text: str, language: Optional[str] = None) -> Optional[str]:
        """Function name if the line opens a function in the given language"""
        patterns = self.signatures.get(language, []) if language else self._all_patterns
        for pattern in patterns:
            match = pattern.match(text)
            if match and match.group("name") not in NON_FUNCTION_NAMES:
                return match.group("name")
        return None

    def extract_functions(self,
                          file_diff: str,
                          language: Optional[str] = None,
                          file_path: str = "") -> List[FunctionChange]:
        """
        Scan one file's diff and return a FunctionChange per captured region.

        Regions whose end is not visible are still returned. A signature
        inside an open region opens its own region; both are returned.
        """
        indented = language in INDENTED_LANGUAGES
        captures: List[_Capture] = []
        finished: List[_Capture] = []
        content: List[Tuple[str, str, int]] = []  # (marker, text, source line)

        old_no = new_no = 0
        numbered = False
        in_header = True

        def close(capture: _Capture) -> None:
            captures.remove(capture)
            finished.append(capture)

        for raw in file_diff.split("\n"):
            hunk = HUNK_HEADER_RE.match(raw)
            if hunk:
                old_no, new_no = int(hunk.group(1)), int(hunk.group(2))
                numbered = True
                in_header = False
                context_name = self.match_signature(hunk.group(3), language) if hunk.group(3) else None
                if context_name and not any(c.name == context_name for c in captures):
                    # Hunk starts inside a function whose signature is above it
                    captures.append(_Capture(context_name, len(content), new_no,
                                             " ", _indent_of(hunk.group(3)), inside_body=True))
                continue
            if in_header and (raw.startswith("diff --git") or raw.startswith(FILE_HEADER_PREFIXES)):
                continue
            in_header = False
            if raw.startswith("\\"):
                continue

            marker = raw[0] if raw[:1] in ("+", "-", " ") else ""
            text = raw[1:] if marker else raw
            if numbered:
                line_no = old_no if marker == "-" else new_no
            else:
                line_no = len(content) + 1
            position = len(content)
            content.append((marker, text, line_no))

            name = self.match_signature(text, language)
            twin = None
            if name and marker in ("+", "-"):
                twin = next((c for c in captures
                             if c.name == name and not c.twin_seen
                             and c.marker in ("+", "-") and c.marker != marker), None)

            if indented and text.strip() and not text.strip().startswith("#"):
                indent = _indent_of(text)
                for capture in list(captures):
                    if capture is not twin and indent <= capture.indent:
                        close(capture)

            if twin is not None:
                # Edited signature: old and new versions belong to one region
                twin.twin_seen = True
            elif name:
                if not indented:
                    for capture in list(captures):
                        if not capture.block_opened:
                            close(capture)
                captures.append(_Capture(name, position, line_no, marker, _indent_of(text)))

            for capture in captures:
                capture.lines.append(raw)

            if not indented:
                for capture in list(captures):
                    capture.feed_braces(marker, text)
                    if capture.closed:
                        close(capture)

            if numbered:
                if marker in ("", " "):
                    old_no += 1
                    new_no += 1
                elif marker == "+":
                    new_no += 1
                else:
                    old_no += 1

        finished.extend(captures)
        finished.sort(key=lambda c: c.position)

        changes = []
        for capture in finished:
            if not capture.lines:
                continue
            body = "\n".join(capture.lines)
            changes.append(FunctionChange(
                file_path=file_path,
                function_name=capture.name,
                raw_body=body,
                start_line=capture.start_line,
                change_type=self.determine_change_type(body),
                language=language,
                comments=self._comments_near(content, capture.position, language)
            ))
        return changes

    def determine_change_type(self, body: str) -> ChangeType:
        """
        added if every non-blank line is '+', removed if every one is '-',
        otherwise modified (mixed, or any unchanged context line)
        """
        markers = {line[0] for line in body.split("\n") if line.strip()}
        if markers == {"+"}:
            return ChangeType.ADDED
        if markers == {"-"}:
            return ChangeType.REMOVED
        return ChangeType.MODIFIED

    def extract_comments(self, file_diff: str, function_line: int,
                         language: Optional[str] = None) -> List[CodeComment]:
        """
        Comments within the window around a 1-based line of a file diff.

        Args:
            file_diff: Diff text (or plain source) to scan
            function_line: 1-based line index of the function start
            language: Language tag selecting the comment markers

        Returns:
            Classified comments, in order
        """
        content = []
        for i, raw in enumerate(file_diff.split("\n")):
            marker = raw[0] if raw[:1] in ("+", "-", " ") else ""
            content.append((marker, raw[1:] if marker else raw, i + 1))
        return self._comments_near(content, function_line - 1, language)

    def _comments_near(self, content: List[Tuple[str, str, int]], position: int,
                       language: Optional[str]) -> List[CodeComment]:
        markers = COMMENT_MARKERS.get(language, DEFAULT_COMMENT_MARKERS) if language else \
            DEFAULT_COMMENT_MARKERS + COMMENT_MARKERS["python"]
        start = max(0, position - self.comment_window)
        end = min(len(content), position + self.comment_window + 1)

        comments = []
        for marker, text, line_no in content[start:end]:
            stripped = text.strip()
            if not stripped:
                continue
            if any(m in stripped for m in markers) or stripped.startswith("* "):
                comments.append(CodeComment(
                    text=stripped,
                    line_number=line_no,
                    kind=self.get_comment_type(stripped)
                ))
        return comments

    @staticmethod
    def get_comment_type(comment: str) -> CommentKind:
        for kind, keywords in COMMENT_KEYWORDS:
            if any(keyword in comment for keyword in keywords):
                return CommentKind(kind)
        return CommentKind.GENERAL

    @staticmethod
    def test_file_candidates(file_path: str) -> List[str]:
        """Conventional test file paths next to a source file, existing or not"""
        source = Path(file_path)
        return [(source.parent / template.format(base=source.stem)).as_posix()
                for template in TEST_FILE_TEMPLATES]

    @staticmethod
    def find_test_files(file_path: str, root: Union[str, Path] = ".") -> List[str]:
        """Existing test files that sit next to a source file"""
        return [candidate for candidate in DiffSegmenter.test_file_candidates(file_path)
                if (Path(root) / candidate).exists()]
