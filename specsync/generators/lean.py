"""
Lean 4 theorem skeleton generation from specification records
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence

from ..api_models import SpecificationRecord
from ..core.config import DOMAIN_STRUCTURES, GENERIC_LEAN_TYPE, LEAN_TYPE_MAP
from ..core.errors import SchemaViolation
from ..core.models import ControlFlowFacts, Parameter, TheoremArtifact
from ..translators.predicates import conjoin, translate_predicate, translate_predicates

logger = logging.getLogger(__name__)

LEAN_KEYWORDS = {
    "at", "by", "def", "do", "else", "end", "fun", "from", "have", "if", "in",
    "lemma", "let", "match", "namespace", "open", "section", "show", "structure",
    "then", "theorem", "where", "with", "variable", "instance", "class"
}

_ARRAY_PATTERNS = [
    re.compile(r"^(?P<elem>.+)\[\]$"),
    re.compile(r"^(?:Array|List|Vec|Set|Sequence|Iterable|ReadonlyArray)\s*<(?P<elem>.+)>$"),
    re.compile(r"^(?:list|List|Sequence|Iterable|set|Set|tuple)\[(?P<elem>.+)\]$")
]
_OPTIONAL_PATTERNS = [
    re.compile(r"^Optional\[(?P<elem>.+)\]$"),
    re.compile(r"^Option\s*<(?P<elem>.+)>$"),
    re.compile(r"^(?P<elem>.+?)\s*\|\s*(?:None|null|undefined)$"),
    re.compile(r"^(?:None|null|undefined)\s*\|\s*(?P<elem>.+)$"),
    re.compile(r"^(?P<elem>[^?]+)\?$")
]
_BARE_ARRAYS = {"array", "list", "vec", "tuple", "set", "sequence"}

_IDENT_INVALID = re.compile(r"[^A-Za-z0-9_]")
_UNDERSCORES = re.compile(r"_+")

# Lean expressions for common big-O classes, in terms of constant c and size n
_COMPLEXITY_BOUNDS = {
    "1": "c",
    "n": "c * n",
    "logn": "c * Nat.log 2 n",
    "nlogn": "c * n * Nat.log 2 n",
    "n^2": "c * n ^ 2",
    "n²": "c * n ^ 2",
    "n^3": "c * n ^ 3",
    "n³": "c * n ^ 3"
}
_BIG_O = re.compile(r"\s*O\((.+)\)\s*")


def map_type_to_lean(type_name: Optional[str]) -> str:
    """
    Map a source-language type annotation to a Lean 4 type.

    Arrays and optionals are mapped recursively; recognized domain types
    keep their name. Anything unknown becomes the generic type α.

    Args:
        type_name: Type text as written in the source, or None

    Returns:
        Lean type expression
    """
    if not type_name:
        return GENERIC_LEAN_TYPE
    text = type_name.strip()

    for pattern in _OPTIONAL_PATTERNS:
        match = pattern.match(text)
        if match:
            return f"Option {_wrap(map_type_to_lean(match.group('elem')))}"

    for pattern in _ARRAY_PATTERNS:
        match = pattern.match(text)
        if match:
            return f"List {_wrap(map_type_to_lean(match.group('elem')))}"

    if text.lower() in _BARE_ARRAYS:
        return f"List {GENERIC_LEAN_TYPE}"

    if text in DOMAIN_STRUCTURES:
        return text

    lean_type = LEAN_TYPE_MAP.get(text.lower())
    if lean_type is not None:
        return lean_type

    logger.warning("%s", SchemaViolation(text, f"no Lean mapping, using {GENERIC_LEAN_TYPE}"))
    return GENERIC_LEAN_TYPE


def _wrap(lean_type: str) -> str:
    return f"({lean_type})" if " " in lean_type else lean_type


def lean_identifier(name: str) -> str:
    """Make a source identifier usable as a Lean name"""
    ident = _IDENT_INVALID.sub("_", name) or "x"
    if ident[0].isdigit():
        ident = f"_{ident}"
    if ident in LEAN_KEYWORDS:
        return f"«{ident}»"
    return ident


def sanitize_name(text: str, max_length: int = 40) -> str:
    """Lowercase snake-case fragment for lemma names"""
    name = _UNDERSCORES.sub("_", _IDENT_INVALID.sub("_", text.lower())).strip("_")
    return name[:max_length].rstrip("_")


def required_structures(lean_types: Iterable[str]) -> List[str]:
    """
    Domain structures referenced by some types, dependencies first.

    Returns:
        Structure names in definition order
    """
    ordered: List[str] = []

    def visit(name: str) -> None:
        if name in ordered:
            return
        deps, _ = DOMAIN_STRUCTURES[name]
        for dep in deps:
            visit(dep)
        ordered.append(name)

    for lean_type in lean_types:
        for token in re.findall(r"\w+", lean_type):
            if token in DOMAIN_STRUCTURES:
                visit(token)
    return ordered


def _complexity_bound(expression: str) -> Optional[str]:
    match = _BIG_O.fullmatch(expression)
    if not match:
        return None
    key = match.group(1).replace(" ", "").replace("*", "").replace("·", "")
    return _COMPLEXITY_BOUNDS.get(key)


def _passthrough_bound(expression: str) -> str:
    match = _BIG_O.fullmatch(expression)
    inner = match.group(1).strip() if match else expression.strip()
    return f"c * ({inner})"


class TheoremSkeletonEmitter:
    """Renders a SpecificationRecord and a function signature as Lean 4 obligations"""

    def emit(self, record: SpecificationRecord, function_name: str,
             parameters: Sequence[Parameter] = (), return_type: str = "any") -> TheoremArtifact:
        """
        Build the theorem artifact for one function.

        Emits exactly one helper lemma per invariant and per edge case, one
        performance lemma per complexity estimate and one security lemma per
        reported vulnerability.

        Args:
            record: Specification record to formalize
            function_name: Name of the function in the source
            parameters: Declared parameters in order
            return_type: Declared return type

        Returns:
            TheoremArtifact whose proofs are all `sorry`
        """
        fn = lean_identifier(function_name)
        params = [(lean_identifier(p.name), map_type_to_lean(p.type)) for p in parameters]
        result_type = map_type_to_lean(return_type)

        structures = required_structures([t for _, t in params] + [result_type])
        auxiliary_defs = "\n\n".join(DOMAIN_STRUCTURES[name][1] for name in structures)

        bindings = [f"def {name} : {lean_type} := sorry" for name, lean_type in params]
        bindings.append(f"def expected_output : {result_type} := sorry")

        return TheoremArtifact(
            function_name=function_name,
            type_defs="\n".join(bindings),
            auxiliary_defs=auxiliary_defs,
            theorem_statement=self._theorem(fn, params, result_type, record),
            helper_lemmas=self._helper_lemmas(fn, record),
            performance_lemmas=self._performance_lemmas(fn, record),
            proof_skeleton=self._skeleton(fn, params, result_type),
            security_lemmas=self._security_lemmas(fn, record),
            metadata={
                "function_key": record.function_key,
                "confidence": record.confidence,
                "provenance": record.provenance.value,
                "rationale": record.rationale,
                "complexity": record.complexity_estimate.model_dump(),
                "security": record.security.model_dump(),
                "structures": structures
            }
        )

    def emit_for_facts(self, record: SpecificationRecord, function_name: str,
                       facts: ControlFlowFacts) -> TheoremArtifact:
        return self.emit(record, function_name, facts.parameters, facts.return_type)

    def _binders(self, params) -> str:
        return " ".join(f"({name} : {lean_type})" for name, lean_type in params)

    def _theorem(self, fn: str, params, result_type: str, record: SpecificationRecord) -> str:
        binders = self._binders(params)
        head = f"theorem {fn}_spec {binders} :" if binders else f"theorem {fn}_spec :"
        call = " ".join([fn] + [name for name, _ in params])

        lines = [head]
        pre = translate_predicates(record.preconditions)
        if pre:
            lines.append(f"  ({conjoin(pre)}) →")
        lines.append(f"  let result : {result_type} := {call}")
        lines.append(f"  {conjoin(translate_predicates(record.postconditions))} := by")
        lines.append("  sorry")
        return "\n".join(lines)

    def _helper_lemmas(self, fn: str, record: SpecificationRecord) -> List[str]:
        lemmas = []
        groups = (("invariant", record.invariants), ("edge_case", record.edge_cases))
        for prefix, statements in groups:
            for i, statement in enumerate(statements, start=1):
                suffix = sanitize_name(statement)
                name = f"{fn}_{prefix}_{i}_{suffix}" if suffix else f"{fn}_{prefix}_{i}"
                lemmas.append(
                    f"-- {statement}\n"
                    f"lemma {name} : {translate_predicate(statement) or 'True'} := sorry"
                )
        return lemmas

    def _performance_lemmas(self, fn: str, record: SpecificationRecord) -> List[str]:
        lemmas = []
        estimates = (
            ("time", "executionTime", record.complexity_estimate.time),
            ("space", "memoryUsage", record.complexity_estimate.space)
        )
        for kind, measure, expression in estimates:
            if not expression:
                continue
            bound = _complexity_bound(expression)
            if bound is None:
                logger.warning("%s", SchemaViolation(
                    fn, f"unrecognized {kind} complexity {expression!r}, bound passed through"))
                bound = _passthrough_bound(expression)
            lemmas.append(
                f"-- {kind.capitalize()} complexity: {expression}\n"
                f"lemma {fn}_{kind}_complexity : ∃ c : ℕ, ∀ n : ℕ, {measure} n ≤ {bound} := sorry"
            )
        return lemmas

    def _security_lemmas(self, fn: str, record: SpecificationRecord) -> List[str]:
        mitigations = record.security.mitigations
        lemmas = []
        for i, vulnerability in enumerate(record.security.vulnerabilities, start=1):
            suffix = sanitize_name(vulnerability)
            name = f"{fn}_security_{i}_{suffix}" if suffix else f"{fn}_security_{i}"
            comment = f"-- Vulnerability: {vulnerability}"
            if i <= len(mitigations):
                comment += f"\n-- Mitigation: {mitigations[i - 1]}"
            lemmas.append(
                f"{comment}\n"
                f"lemma {name} : ∀ input, isValidInput input → isSecureInput input := sorry"
            )
        return lemmas

    def _skeleton(self, fn: str, params, result_type: str) -> str:
        binders = self._binders(params)
        signature = f"def {fn} {binders} : {result_type}" if binders else f"def {fn} : {result_type}"
        return f"{signature} :=\n  sorry"
