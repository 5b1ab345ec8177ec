"""
Control-flow fact extraction for brace languages using tree-sitter grammars
"""

from typing import Callable, Dict, Iterator, List, Optional

import tree_sitter_java
import tree_sitter_javascript
import tree_sitter_rust
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

from ..core.errors import ParseFailure
from ..core.models import Branch, ControlFlowFacts, EarlyReturn, Guard, Loop, Parameter

GRAMMARS: Dict[str, Callable[[], object]] = {
    "javascript": tree_sitter_javascript.language,
    "typescript": tree_sitter_typescript.language_typescript,
    "tsx": tree_sitter_typescript.language_tsx,
    "java": tree_sitter_java.language,
    "rust": tree_sitter_rust.language
}

FUNCTION_NODES = {
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "arrow_function",
    "method_definition",
    "method_declaration",
    "constructor_declaration",
    "function_item"
}

IF_NODES = {"if_statement", "if_expression"}
LOOP_NODES = {
    "for_statement",
    "for_in_statement",
    "enhanced_for_statement",
    "while_statement",
    "do_statement",
    "for_expression",
    "while_expression",
    "loop_expression"
}
SWITCH_NODES = {"switch_statement", "switch_expression", "match_expression"}
TERNARY_NODES = {"ternary_expression", "conditional_expression"}
TRY_NODES = {"try_statement", "try_with_resources_statement"}
RETURN_NODES = {"return_statement", "return_expression"}
THROW_NODES = {"throw_statement"}
PANIC_MACROS = {"panic", "unreachable", "unimplemented", "todo"}

NESTING_NODES = IF_NODES | LOOP_NODES | SWITCH_NODES | TRY_NODES

# Parameter node types and whether they are optional by construction
PARAMETER_NODES = {
    "identifier": False,
    "required_parameter": False,
    "formal_parameter": False,
    "parameter": False,
    "object_pattern": False,
    "array_pattern": False,
    "assignment_pattern": True,
    "optional_parameter": True,
    "rest_pattern": True,
    "spread_parameter": True,
    "variadic_parameter": True
}

_parsers: Dict[str, Parser] = {}


def supports(language: Optional[str]) -> bool:
    return language in GRAMMARS


def get_parser(language: str) -> Parser:
    """Cached parser for a supported language tag"""
    if language not in _parsers:
        _parsers[language] = Parser(Language(GRAMMARS[language]()))
    return _parsers[language]


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def _strip_parens(text: str) -> str:
    text = text.strip().rstrip(";").strip()
    while text.startswith("(") and text.endswith(")") and _balanced(text[1:-1]):
        text = text[1:-1].strip()
    return text


def _balanced(text: str) -> bool:
    depth = 0
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _strip_annotation(text: str) -> str:
    text = text.strip()
    if text.startswith(":"):
        text = text[1:]
    if text.startswith("->"):
        text = text[2:]
    return text.strip()


def _line(node: Node) -> int:
    return node.start_point[0] + 1


def walk(node: Node) -> Iterator[Node]:
    """Pre-order walk of a subtree"""
    yield node
    for child in node.children:
        yield from walk(child)


def function_name(node: Node) -> str:
    """Declared name, or the name of the binding an anonymous function is assigned to"""
    name = node.child_by_field_name("name")
    if name is not None:
        return node_text(name)

    parent = node.parent
    if parent is None:
        return ""
    if parent.type == "variable_declarator":
        return node_text(parent.child_by_field_name("name"))
    if parent.type == "pair":
        return node_text(parent.child_by_field_name("key")).strip("'\"")
    if parent.type == "assignment_expression":
        left = node_text(parent.child_by_field_name("left"))
        return left.split(".")[-1]
    if parent.type in ("public_field_definition", "field_definition"):
        return node_text(parent.child_by_field_name("name") or parent.child_by_field_name("property"))
    return ""


def find_function(root: Node, name: str) -> Optional[Node]:
    """First function node, in source order, whose name matches"""
    for node in walk(root):
        if node.type in FUNCTION_NODES and function_name(node) == name:
            return node
    return None


def _parameter(node: Node) -> Optional[Parameter]:
    if node.type not in PARAMETER_NODES:
        return None
    optional = PARAMETER_NODES[node.type]

    if node.type == "identifier":
        return Parameter(name=node_text(node))

    if node.type == "assignment_pattern":
        return Parameter(name=node_text(node.child_by_field_name("left")), required=False)

    if node.type in ("rest_pattern", "spread_parameter", "variadic_parameter"):
        named = [c for c in node.named_children if c.type != "comment"]
        target = node.child_by_field_name("name") or (named[-1] if named else node)
        type_node = node.child_by_field_name("type") or (
            named[0] if node.type == "spread_parameter" and len(named) > 1 else None)
        return Parameter(name=node_text(target).lstrip("."),
                         type=_strip_annotation(node_text(type_node)) or "any",
                         required=False)

    if node.type in ("object_pattern", "array_pattern"):
        return Parameter(name=node_text(node))

    target = node.child_by_field_name("name") or node.child_by_field_name("pattern")
    type_node = node.child_by_field_name("type")
    has_default = node.child_by_field_name("value") is not None
    return Parameter(
        name=node_text(target) or node_text(node),
        type=_strip_annotation(node_text(type_node)) or "any",
        required=not (optional or has_default)
    )


def extract_parameters(function: Node) -> List[Parameter]:
    single = function.child_by_field_name("parameter")
    if single is not None:
        return [Parameter(name=node_text(single))]

    parameters_node = function.child_by_field_name("parameters")
    if parameters_node is None:
        return []

    parameters = []
    for child in parameters_node.named_children:
        if child.type in ("self_parameter", "this", "comment", "receiver_parameter"):
            continue
        parameter = _parameter(child)
        if parameter is not None:
            parameters.append(parameter)
    return parameters


def extract_return_type(function: Node) -> str:
    node = function.child_by_field_name("return_type")
    if node is None and function.type == "method_declaration":
        node = function.child_by_field_name("type")
    return _strip_annotation(node_text(node)) or "any"


def _condition(node: Node) -> str:
    for field in ("condition", "value", "test"):
        child = node.child_by_field_name(field)
        if child is not None:
            return _strip_parens(node_text(child))
    return _header(node)


def _header(node: Node) -> str:
    """Source between the keyword and the body, for loops without a condition field"""
    body = node.child_by_field_name("body")
    raw = node.text or b""
    if body is not None:
        raw = raw[:body.start_byte - node.start_byte]
    text = raw.decode("utf-8", errors="replace").strip()
    for keyword in ("for", "while", "loop", "do"):
        if text.startswith(keyword):
            text = text[len(keyword):]
            break
    return _strip_parens(text)


def _loop_condition(node: Node) -> str:
    if node.type in ("for_in_statement", "enhanced_for_statement", "for_expression", "loop_expression"):
        return _header(node)
    if node.type == "for_statement" and node.child_by_field_name("condition") is None:
        return _header(node)
    return _condition(node)


def _return_value(node: Node) -> str:
    named = [c for c in node.named_children if c.type != "comment"]
    return _strip_parens(node_text(named[0])) if named else ""


def _final_statement(function: Node) -> Optional[Node]:
    body = function.child_by_field_name("body")
    if body is None:
        return None
    statements = [c for c in body.named_children if c.type != "comment"]
    if not statements:
        return None
    last = statements[-1]
    # Rust wraps a trailing `return x;` in an expression statement
    if last.type == "expression_statement" and last.named_child_count == 1:
        inner = last.named_children[0]
        if inner.type in RETURN_NODES:
            return inner
    return last


class _FactCollector:
    def __init__(self, function: Node):
        self.function = function
        self.guards: List[Guard] = []
        self.loops: List[Loop] = []
        self.branches: List[Branch] = []
        self.returns: List[Node] = []
        self.raises: List[str] = []
        self.max_depth = 0

    def collect(self) -> None:
        body = self.function.child_by_field_name("body")
        if body is not None:
            self._visit(body, 0)

    def _visit(self, node: Node, depth: int) -> None:
        kind = node.type
        if kind in FUNCTION_NODES:
            return

        if kind in IF_NODES:
            condition = _condition(node)
            self.guards.append(Guard(condition=condition, line_number=_line(node)))
            self.branches.append(Branch(kind="if", condition=condition, line_number=_line(node)))
        elif kind in LOOP_NODES:
            self.loops.append(Loop(kind=kind, condition=_loop_condition(node), line_number=_line(node)))
        elif kind in SWITCH_NODES:
            self.branches.append(Branch(kind=kind, condition=_condition(node), line_number=_line(node)))
        elif kind in TERNARY_NODES:
            self.branches.append(Branch(kind=kind, condition=_condition(node), line_number=_line(node)))
        elif kind in RETURN_NODES:
            self.returns.append(node)
        elif kind in THROW_NODES:
            self.raises.append(_return_value(node) or "throw")
        elif kind == "macro_invocation":
            macro = node_text(node.child_by_field_name("macro"))
            if macro in PANIC_MACROS:
                self.raises.append(node_text(node))

        if kind in NESTING_NODES:
            depth += 1
            self.max_depth = max(self.max_depth, depth)

        for child in node.children:
            self._visit(child, depth)


def extract_tree_sitter_facts(source: str, target: str, language: str,
                              file_path: str = "<unknown>") -> ControlFlowFacts:
    """
    Extract control-flow facts for a function in a tree-sitter supported language.

    Raises:
        ParseFailure: Unsupported language, unparsable source or missing function
    """
    if not supports(language):
        raise ParseFailure(file_path, target, f"no grammar for language {language!r}")

    tree = get_parser(language).parse(source.encode("utf-8"))
    function = find_function(tree.root_node, target)
    if function is None:
        reason = "source has syntax errors" if tree.root_node.has_error else "function not found"
        raise ParseFailure(file_path, target, reason)

    collector = _FactCollector(function)
    collector.collect()

    final = _final_statement(function)
    early_returns = [
        EarlyReturn(value=_return_value(ret), line_number=_line(ret))
        for ret in collector.returns
        if not (final is not None and ret == final)
    ]
    complexity = 1 + len(collector.guards) + len(collector.loops) + len(early_returns)

    # Arrow functions with an expression body and Rust tail expressions return implicitly
    body = function.child_by_field_name("body")
    implicit_return = body is not None and (
        function.type == "arrow_function" and body.type != "statement_block"
        or language == "rust" and final is not None and final.type.endswith("expression")
    )

    return ControlFlowFacts(
        parameters=tuple(extract_parameters(function)),
        return_type=extract_return_type(function),
        guards=tuple(collector.guards),
        loops=tuple(collector.loops),
        branches=tuple(collector.branches),
        early_returns=tuple(early_returns),
        raises=tuple(collector.raises),
        has_return=bool(collector.returns) or implicit_return,
        complexity=complexity,
        max_nesting_depth=collector.max_depth
    )
