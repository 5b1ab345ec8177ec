"""
Language tables, type mappings and pipeline configuration
"""

import os
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Tuple

# Source files
EXTENSION_TO_LANGUAGE = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".py": "python",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".cpp": "cpp",
    ".c": "c",
    ".h": "c"
}

LANGUAGE_DISPLAY_NAMES = {
    "javascript": "JavaScript",
    "typescript": "TypeScript",
    "tsx": "TypeScript",
    "python": "Python",
    "java": "Java",
    "go": "Go",
    "rust": "Rust",
    "cpp": "C++",
    "c": "C"
}

TEST_FILE_PATTERN = re.compile(r"test|Test|spec|Spec")

# Test file candidates next to a source file, by basename
TEST_FILE_TEMPLATES = [
    "{base}.test.js",
    "{base}.spec.js",
    "{base}.test.ts",
    "{base}.spec.ts",
    "{base}_test.py",
    "test_{base}.py",
    "Test{base}.java",
    "{base}Test.java",
    "{base}_test.go",
    "{base}_test.rs"
]

# Function-start signatures: (language, pattern). Group "name" is the function name.
_JS_SIGNATURES = [
    r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*(?P<name>\w+)\s*\(",
    r"^\s*(?:export\s+)?(?:const|let|var)\s+(?P<name>\w+)\s*(?::[^=]+)?=\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*(?::\s*[^=]+)?=>|\w+\s*=>)",
    r"^\s*(?:(?:public|private|protected|static|readonly|async|override)\s+)*(?P<name>\w+)\s*\([^)]*\)\s*(?::\s*[^{]+)?\{",
    r"^\s*(?P<name>\w+)\s*:\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*=>)"
]

FUNCTION_SIGNATURES: List[Tuple[str, str]] = (
    [(lang, p) for lang in ("javascript", "typescript", "tsx") for p in _JS_SIGNATURES] + [
        ("python", r"^\s*(?:async\s+)?def\s+(?P<name>\w+)\s*\("),
        ("java", r"^\s*(?:@\w+\s+)*(?:(?:public|private|protected|static|final|abstract|synchronized|native|default)\s+)*"
                 r"(?:<[^>]+>\s+)?(?!(?:return|new|else|throw|case)\b)[\w<>\[\],.?]+\s+(?P<name>\w+)\s*\([^;]*$"),
        ("go", r"^\s*func\s+(?:\([^)]*\)\s*)?(?P<name>\w+)\s*[\[(]"),
        ("rust", r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?(?:extern\s+\"[^\"]*\"\s+)?fn\s+(?P<name>\w+)"),
        ("c", r"^\s*(?:(?:static|inline|extern|const|volatile|unsigned|signed|long|short|struct|enum|union)\s+)*"
              r"(?!(?:return|else|if|while|for|switch|do)\b)\w+(?:\s*\*+)?\s+\**(?P<name>\w+)\s*\([^;]*$"),
        ("cpp", r"^\s*(?:(?:static|inline|virtual|explicit|constexpr|extern|const|volatile|unsigned|signed|long|short|struct|enum)\s+)*"
                r"(?!(?:return|else|if|while|for|switch|do|new|delete)\b)[\w:<>]+(?:\s*[*&]+)?\s+[*&]?(?:\w+::)*(?P<name>\w+)\s*\([^;]*$")
    ]
)

# Names the loose signature patterns can pick up from ordinary statements
NON_FUNCTION_NAMES = {
    "if", "for", "while", "switch", "catch", "return", "function", "else",
    "do", "new", "typeof", "sizeof", "with", "super", "this", "await"
}

# Languages whose blocks are delimited by indentation instead of braces
INDENTED_LANGUAGES = {"python"}

COMMENT_MARKERS: Dict[str, Tuple[str, ...]] = {
    "python": ("#", '"""'),
}
DEFAULT_COMMENT_MARKERS = ("//", "/*", "*/")

# Checked in order; first match wins
COMMENT_KEYWORDS = [
    ("todo", ("TODO", "FIXME")),
    ("documentation", ("@param", "@return", ":param", ":return")),
    ("specification", ("@spec", "@pre", "@post", "@requires", "@ensures", "@invariant"))
]

COMMENT_WINDOW = 5

# Lean 4 type mapping
LEAN_TYPE_MAP = {
    "number": "ℕ",
    "nat": "ℕ",
    "uint": "ℕ",
    "usize": "ℕ",
    "u8": "ℕ",
    "u16": "ℕ",
    "u32": "ℕ",
    "u64": "ℕ",
    "int": "ℤ",
    "integer": "ℤ",
    "long": "ℤ",
    "short": "ℤ",
    "isize": "ℤ",
    "i8": "ℤ",
    "i16": "ℤ",
    "i32": "ℤ",
    "i64": "ℤ",
    "bigint": "ℤ",
    "float": "ℝ",
    "double": "ℝ",
    "f32": "ℝ",
    "f64": "ℝ",
    "decimal": "ℝ",
    "string": "String",
    "str": "String",
    "&str": "String",
    "char": "Char",
    "boolean": "Bool",
    "bool": "Bool",
    "void": "Unit",
    "none": "Unit",
    "()": "Unit",
    "any": "α"
}

GENERIC_LEAN_TYPE = "α"

# Recognized domain structures and the structures they depend on
DOMAIN_STRUCTURES = {
    "Money": ((), """structure Money where
  amount : ℝ
  currency : String
  deriving Repr"""),
    "Email": ((), """structure Email where
  address : String
  isValid : Bool
  deriving Repr"""),
    "Account": (("Money",), """structure Account where
  id : ℕ
  balance : Money
  owner : String
  isActive : Bool
  deriving Repr"""),
    "User": (("Email",), """structure User where
  id : ℕ
  name : String
  email : Email
  isVerified : Bool
  deriving Repr""")
}

# Natural-language predicate idioms to Lean notation, applied in order
PREDICATE_REWRITES: List[Tuple[Pattern, str]] = [
    (re.compile(r"\bis not (?:null/undefined|null|undefined|None|nil)\b"), "≠ none"),
    (re.compile(r"\bis (?:null/undefined|null|undefined|None|nil)\b"), "= none"),
    (re.compile(r"\bis of type (\w+)"), r": \1"),
    (re.compile(r"(\w+)\.length\s*>\s*0"), r'¬(\1 = "")'),
    (re.compile(r"(\w+)\.length\s*===?\s*0"), r'\1 = ""'),
    (re.compile(r"\bis true\b"), "= true"),
    (re.compile(r"\bis false\b"), "= false"),
    (re.compile(r"\s*!==?\s*"), " ≠ "),
    (re.compile(r"\s*===?\s*"), " = "),
    (re.compile(r"\s*>=\s*"), " ≥ "),
    (re.compile(r"\s*<=\s*"), " ≤ "),
    (re.compile(r"\s*&&\s*"), " ∧ "),
    (re.compile(r"\s*\|\|\s*"), " ∨ ")
]

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class PipelineConfig:
    """Runtime settings for the pipeline, backends and drift heuristic"""
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    openai_model: str = DEFAULT_OPENAI_MODEL
    backend_timeout: float = 30.0
    max_tokens: int = 2000
    max_concurrency: int = 4
    drift_threshold: float = 1.5
    drift_reason_weight: int = 25
    output_dir: str = "./specs"

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build a config from ANTHROPIC_API_KEY, OPENAI_API_KEY and SPECSYNC_* variables"""
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            anthropic_model=os.getenv("SPECSYNC_ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL),
            openai_model=os.getenv("SPECSYNC_OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
            backend_timeout=_env_float("SPECSYNC_BACKEND_TIMEOUT", 30.0),
            max_concurrency=max(1, _env_int("SPECSYNC_MAX_CONCURRENCY", 4)),
            drift_threshold=_env_float("SPECSYNC_DRIFT_THRESHOLD", 1.5),
            drift_reason_weight=_env_int("SPECSYNC_DRIFT_WEIGHT", 25),
            output_dir=os.getenv("SPECSYNC_OUTPUT_DIR", "./specs")
        )
