"""
Control-flow fact extraction for Python sources using the ast module
"""

import ast
from typing import List, Optional, Tuple, Union

from ..core.errors import ParseFailure
from ..core.models import Branch, ControlFlowFacts, EarlyReturn, Guard, Loop, Parameter

FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]

RECEIVER_NAMES = ("self", "cls")


def _text(node: Optional[ast.AST]) -> str:
    return ast.unparse(node) if node is not None else ""


class ControlFlowVisitor(ast.NodeVisitor):
    """Collects guards, loops, branches, returns and raises of one function body"""

    def __init__(self):
        self.guards: List[Guard] = []
        self.loops: List[Loop] = []
        self.branches: List[Branch] = []
        self.returns: List[ast.Return] = []
        self.raises: List[str] = []
        self.depth = 0
        self.max_depth = 0

    def _nested(self, nodes: List[ast.AST]) -> None:
        self.depth += 1
        self.max_depth = max(self.max_depth, self.depth)
        for child in nodes:
            self.visit(child)
        self.depth -= 1

    def visit_If(self, node: ast.If) -> None:
        condition = _text(node.test)
        self.guards.append(Guard(condition=condition, line_number=node.lineno))
        self.branches.append(Branch(kind="if", condition=condition, line_number=node.lineno))
        self.visit(node.test)
        self._nested(node.body)
        # elif chains stay at the same depth
        if len(node.orelse) == 1 and isinstance(node.orelse[0], ast.If):
            self.visit(node.orelse[0])
        else:
            self._nested(node.orelse)

    def visit_For(self, node: Union[ast.For, ast.AsyncFor]) -> None:
        header = f"{_text(node.target)} in {_text(node.iter)}"
        self.loops.append(Loop(kind="for", condition=header, line_number=node.lineno))
        self._nested(node.body + node.orelse)

    visit_AsyncFor = visit_For

    def visit_While(self, node: ast.While) -> None:
        self.loops.append(Loop(kind="while", condition=_text(node.test), line_number=node.lineno))
        self._nested(node.body + node.orelse)

    def visit_IfExp(self, node: ast.IfExp) -> None:
        self.branches.append(Branch(kind="conditional_expression",
                                    condition=_text(node.test), line_number=node.lineno))
        self.generic_visit(node)

    def visit_Match(self, node: "ast.Match") -> None:
        self.branches.append(Branch(kind="match", condition=_text(node.subject),
                                    line_number=node.lineno))
        self._nested([stmt for case in node.cases for stmt in case.body])

    def visit_Try(self, node: ast.Try) -> None:
        handlers = [stmt for handler in node.handlers for stmt in handler.body]
        self._nested(node.body + handlers + node.orelse + node.finalbody)

    def visit_With(self, node: Union[ast.With, ast.AsyncWith]) -> None:
        self._nested(node.body)

    visit_AsyncWith = visit_With

    def visit_Return(self, node: ast.Return) -> None:
        self.returns.append(node)

    def visit_Raise(self, node: ast.Raise) -> None:
        self.raises.append(_text(node.exc) or "raise")

    # Nested definitions have their own facts
    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        return None

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        return None

    def visit_Lambda(self, node: ast.Lambda) -> None:
        return None


def find_function(tree: ast.AST, function_name: str) -> Optional[FunctionNode]:
    """First function definition with the given name (outermost first)"""
    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name == function_name:
            return node
    return None


def extract_parameters(args: ast.arguments) -> List[Parameter]:
    """Ordered parameters with annotation text and required flag"""
    positional = args.posonlyargs + args.args
    first_default = len(positional) - len(args.defaults)
    parameters = []

    for index, arg in enumerate(positional):
        if index == 0 and arg.arg in RECEIVER_NAMES and arg.annotation is None:
            continue
        parameters.append(Parameter(
            name=arg.arg,
            type=_text(arg.annotation) or "any",
            required=index < first_default
        ))

    if args.vararg is not None:
        parameters.append(Parameter(name=args.vararg.arg,
                                    type=_text(args.vararg.annotation) or "any",
                                    required=False))

    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        parameters.append(Parameter(name=arg.arg,
                                    type=_text(arg.annotation) or "any",
                                    required=default is None))

    if args.kwarg is not None:
        parameters.append(Parameter(name=args.kwarg.arg,
                                    type=_text(args.kwarg.annotation) or "any",
                                    required=False))
    return parameters


def _split_returns(function: FunctionNode, returns: List[ast.Return]) -> Tuple[List[EarlyReturn], bool]:
    final = function.body[-1] if function.body else None
    early = [
        EarlyReturn(value=_text(ret.value), line_number=ret.lineno)
        for ret in returns
        if ret is not final
    ]
    return early, bool(returns)


def extract_python_facts(source: str, function_name: str, file_path: str = "<unknown>") -> ControlFlowFacts:
    """
    Extract control-flow facts for a Python function.

    Args:
        source: Full file text
        function_name: Name of the function to locate
        file_path: Used in error messages

    Returns:
        ControlFlowFacts for the first matching definition

    Raises:
        ParseFailure: If the source does not parse or the function is absent
    """
    try:
        tree = ast.parse(source, filename=file_path)
    except (SyntaxError, ValueError) as e:
        raise ParseFailure(file_path, function_name, f"syntax error: {e}") from e

    function = find_function(tree, function_name)
    if function is None:
        raise ParseFailure(file_path, function_name, "function not found")

    visitor = ControlFlowVisitor()
    for statement in function.body:
        visitor.visit(statement)

    early_returns, has_return = _split_returns(function, visitor.returns)
    complexity = 1 + len(visitor.guards) + len(visitor.loops) + len(early_returns)

    return ControlFlowFacts(
        parameters=tuple(extract_parameters(function.args)),
        return_type=_text(function.returns) or "any",
        guards=tuple(visitor.guards),
        loops=tuple(visitor.loops),
        branches=tuple(visitor.branches),
        early_returns=tuple(early_returns),
        raises=tuple(visitor.raises),
        has_return=has_return,
        complexity=complexity,
        max_nesting_depth=visitor.max_depth
    )
