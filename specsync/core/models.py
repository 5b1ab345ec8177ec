"""
Data models for diff segments, control-flow facts and theorem artifacts
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


LEAN_PRELUDE = (
    "import Mathlib.Data.Nat.Basic",
    "import Mathlib.Data.Real.Basic",
    "import Mathlib.Data.String.Basic",
    "import Mathlib.Logic.Basic",
    "",
    "set_option autoImplicit true"
)


class ChangeType(str, Enum):
    """How a function region was touched by a diff"""
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class CommentKind(str, Enum):
    """Classification of a comment found near a changed function"""
    TODO = "todo"
    DOCUMENTATION = "documentation"
    SPECIFICATION = "specification"
    GENERAL = "general"


@dataclass(frozen=True)
class ChangedFile:
    """Changed-file descriptor supplied alongside a diff"""
    path: str
    status: str = "modified"


@dataclass(frozen=True)
class CodeComment:
    """A comment line found in the window around a function change"""
    text: str
    line_number: int
    kind: CommentKind = CommentKind.GENERAL


@dataclass
class FunctionChange:
    """One function-shaped region located inside a diff hunk"""
    file_path: str
    function_name: str
    raw_body: str  # diff lines, markers kept
    start_line: int
    change_type: ChangeType
    language: Optional[str] = None
    comments: List[CodeComment] = field(default_factory=list)
    test_files: List[str] = field(default_factory=list)

    @property
    def function_key(self) -> str:
        return f"{self.file_path}:{self.function_name}"

    @property
    def line_count(self) -> int:
        return len(self.raw_body.splitlines())

    def clean_body(self) -> str:
        """
        Current version of the body without diff markers or blank lines.

        Removed lines are dropped unless the whole function was removed.
        """
        dropped = "+" if self.change_type == ChangeType.REMOVED else "-"
        lines = []
        for line in self.raw_body.splitlines():
            if line[:1] == dropped:
                continue
            if line[:1] in ("+", "-", " "):
                line = line[1:]
            if line.strip():
                lines.append(line)
        return "\n".join(lines)


@dataclass(frozen=True)
class Parameter:
    """Declared function parameter"""
    name: str
    type: str = "any"
    required: bool = True

    @property
    def typed(self) -> bool:
        return self.type not in ("", "any")


@dataclass(frozen=True)
class Guard:
    """Condition of an if statement"""
    condition: str
    line_number: int
    kind: str = "if"


@dataclass(frozen=True)
class Loop:
    """Loop header with its condition (or iteration) text"""
    kind: str
    condition: str
    line_number: int


@dataclass(frozen=True)
class Branch:
    """Branch point: if, switch/match or conditional expression"""
    kind: str
    condition: str
    line_number: int


@dataclass(frozen=True)
class EarlyReturn:
    """Return statement that is not the final statement of the function"""
    value: str
    line_number: int


@dataclass(frozen=True)
class ControlFlowFacts:
    """Structural facts about a function, derived from one parse tree"""
    parameters: Tuple[Parameter, ...] = ()
    return_type: str = "any"
    guards: Tuple[Guard, ...] = ()
    loops: Tuple[Loop, ...] = ()
    branches: Tuple[Branch, ...] = ()
    early_returns: Tuple[EarlyReturn, ...] = ()
    raises: Tuple[str, ...] = ()
    has_return: bool = False
    complexity: int = 1
    max_nesting_depth: int = 0
    degraded: bool = False

    @classmethod
    def degraded_facts(cls) -> "ControlFlowFacts":
        """Facts for a function that could not be parsed or located"""
        return cls(degraded=True)

    @property
    def has_validation(self) -> bool:
        return bool(self.guards) or bool(self.raises)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TheoremArtifact:
    """Lean 4 proof-obligation document for one function"""
    function_name: str
    type_defs: str
    auxiliary_defs: str
    theorem_statement: str
    helper_lemmas: List[str]
    performance_lemmas: List[str]
    proof_skeleton: str
    security_lemmas: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        """
        Assemble a complete .lean file.

        The implementation skeleton precedes the theorem that refers to it.
        """
        header = [
            "-- SpecSync generated Lean 4 specification",
            f"-- Function: {self.function_name}"
        ]
        for key in ("function_key", "confidence", "provenance"):
            if key in self.metadata:
                header.append(f"-- {key.replace('_', ' ').capitalize()}: {self.metadata[key]}")

        sections = [
            "\n".join(header),
            "\n".join(LEAN_PRELUDE),
            ("-- Auxiliary definitions", self.auxiliary_defs),
            ("-- Input and output bindings", self.type_defs),
            ("-- Implementation skeleton", self.proof_skeleton),
            ("-- Main theorem", self.theorem_statement),
            ("-- Helper lemmas", "\n\n".join(self.helper_lemmas)),
            ("-- Performance lemmas", "\n\n".join(self.performance_lemmas)),
            ("-- Security lemmas", "\n\n".join(self.security_lemmas))
        ]

        parts = []
        for section in sections:
            if isinstance(section, tuple):
                title, body = section
                if not body:
                    continue
                section = f"{title}\n{body}"
            parts.append(section)
        return "\n\n".join(parts) + "\n"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "function_name": self.function_name,
            "type_defs": self.type_defs,
            "auxiliary_defs": self.auxiliary_defs,
            "theorem_statement": self.theorem_statement,
            "helper_lemmas": self.helper_lemmas,
            "performance_lemmas": self.performance_lemmas,
            "security_lemmas": self.security_lemmas,
            "proof_skeleton": self.proof_skeleton,
            "metadata": self.metadata
        }
