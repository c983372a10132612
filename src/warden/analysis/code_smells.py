"""AST-based refactor-target detection and step planning.

Detects:
  - Long functions
  - Deep nesting
  - Too many parameters
  - God classes (too many methods)
  - Near-duplicate functions (Jaccard similarity on body tokens)

``plan_refactor`` turns the findings into an ordered step plan: one step
per affected file, most smells first, ties by path.
"""

from __future__ import annotations

import ast
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from warden.models import CodeSmell, RefactorStep
from warden.utils.logging import get_logger

log = get_logger(__name__)

SKIP_DIRS = frozenset({"__pycache__", ".git", ".venv", "venv", "node_modules", ".tox", "build", "dist"})

_NESTING_NODES = (
    ast.If,
    ast.For,
    ast.AsyncFor,
    ast.While,
    ast.With,
    ast.AsyncWith,
    ast.Try,
    ast.ExceptHandler,
    ast.Match,
)

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef


def _span(node: ast.AST) -> int:
    start = getattr(node, "lineno", None)
    if start is None:
        return 0
    return (getattr(node, "end_lineno", None) or start) - start + 1


def _nesting_depth(node: ast.AST, depth: int = 0) -> int:
    deepest = depth
    for child in ast.iter_child_nodes(node):
        # Nested definitions start their own scope
        if isinstance(child, FunctionNode | ast.ClassDef | ast.Lambda):
            continue
        step = 1 if isinstance(child, _NESTING_NODES) else 0
        deepest = max(deepest, _nesting_depth(child, depth + step))
    return deepest


def _parameter_count(node: FunctionNode) -> int:
    args = node.args
    positional = [*args.posonlyargs, *args.args]
    count = len(positional) + len(args.kwonlyargs)
    if positional and positional[0].arg in ("self", "cls"):
        count -= 1
    return count


def _body_tokens(node: FunctionNode) -> frozenset[str]:
    tokens: set[str] = set()
    for child in ast.walk(node):
        match child:
            case ast.Name(id=name):
                tokens.add(name)
            case ast.Attribute(attr=attr):
                tokens.add(attr)
            case ast.Call(func=ast.Name(id=name)):
                tokens.add(f"call:{name}")
            case ast.Constant(value=str() as text):
                tokens.add(f"str:{text[:20]}")
    return frozenset(tokens)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    if not a and not b:
        return 1.0
    union = a | b
    return len(a & b) / len(union) if union else 0.0


class CodeSmellDetector:
    """Finds refactor targets in Python sources."""

    def __init__(
        self,
        max_function_lines: int = 50,
        max_nesting_depth: int = 4,
        max_parameters: int = 5,
        max_class_methods: int = 20,
        duplicate_threshold: float = 0.8,
        min_duplicate_tokens: int = 5,
    ) -> None:
        self.max_function_lines = max_function_lines
        self.max_nesting_depth = max_nesting_depth
        self.max_parameters = max_parameters
        self.max_class_methods = max_class_methods
        self.duplicate_threshold = duplicate_threshold
        self.min_duplicate_tokens = min_duplicate_tokens

    def analyze_source(self, source: str, file_path: str) -> list[CodeSmell]:
        try:
            tree = ast.parse(source, filename=file_path)
        except SyntaxError as exc:
            return [
                CodeSmell(
                    file_path=file_path,
                    line=exc.lineno or 0,
                    smell_type="syntax_error",
                    severity="error",
                    message=f"cannot parse: {exc.msg}",
                )
            ]

        smells: list[CodeSmell] = []
        functions: list[tuple[str, int, frozenset[str]]] = []
        for node in ast.walk(tree):
            if isinstance(node, FunctionNode):
                smells.extend(self._function_smells(node, file_path))
                tokens = _body_tokens(node)
                if len(tokens) >= self.min_duplicate_tokens:
                    functions.append((node.name, node.lineno, tokens))
            elif isinstance(node, ast.ClassDef):
                smells.extend(self._class_smells(node, file_path))
        smells.extend(self._duplicates(functions, file_path))
        return smells

    def analyze_file(self, path: Path) -> list[CodeSmell]:
        if path.suffix != ".py" or not path.is_file():
            return []
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            log.warning("smell_read_error", path=str(path), error=str(exc))
            return []
        return self.analyze_source(source, str(path))

    def analyze_paths(self, paths: Iterable[Path]) -> list[CodeSmell]:
        """Analyze files and directories (recursively, skipping tool dirs)."""
        smells: list[CodeSmell] = []
        for path in paths:
            if path.is_dir():
                for py_file in sorted(path.rglob("*.py")):
                    if SKIP_DIRS.intersection(py_file.relative_to(path).parts):
                        continue
                    smells.extend(self.analyze_file(py_file))
            else:
                smells.extend(self.analyze_file(path))
        return smells

    def _function_smells(self, node: FunctionNode, file_path: str) -> list[CodeSmell]:
        found: list[CodeSmell] = []
        lines = _span(node)
        if lines > self.max_function_lines:
            found.append(
                CodeSmell(
                    file_path=file_path,
                    line=node.lineno,
                    smell_type="long_function",
                    severity="warning",
                    message=f"function '{node.name}' spans {lines} lines (limit {self.max_function_lines})",
                    suggestion="split into smaller functions",
                )
            )
        depth = _nesting_depth(node)
        if depth > self.max_nesting_depth:
            found.append(
                CodeSmell(
                    file_path=file_path,
                    line=node.lineno,
                    smell_type="deep_nesting",
                    severity="warning",
                    message=f"function '{node.name}' nests {depth} levels (limit {self.max_nesting_depth})",
                    suggestion="use guard clauses and early returns",
                )
            )
        params = _parameter_count(node)
        if params > self.max_parameters:
            found.append(
                CodeSmell(
                    file_path=file_path,
                    line=node.lineno,
                    smell_type="too_many_params",
                    severity="warning",
                    message=f"function '{node.name}' takes {params} parameters (limit {self.max_parameters})",
                    suggestion="group related parameters into an object",
                )
            )
        return found

    def _class_smells(self, node: ast.ClassDef, file_path: str) -> list[CodeSmell]:
        methods = sum(isinstance(n, FunctionNode) for n in node.body)
        if methods <= self.max_class_methods:
            return []
        return [
            CodeSmell(
                file_path=file_path,
                line=node.lineno,
                smell_type="god_class",
                severity="warning",
                message=f"class '{node.name}' has {methods} methods (limit {self.max_class_methods})",
                suggestion="split responsibilities into smaller classes",
            )
        ]

    def _duplicates(
        self,
        functions: list[tuple[str, int, frozenset[str]]],
        file_path: str,
    ) -> list[CodeSmell]:
        found: list[CodeSmell] = []
        seen: set[tuple[str, str]] = set()
        for i, (name_a, line_a, tokens_a) in enumerate(functions):
            for name_b, line_b, tokens_b in functions[i + 1:]:
                pair = (min(name_a, name_b), max(name_a, name_b))
                if pair in seen:
                    continue
                similarity = jaccard(tokens_a, tokens_b)
                if similarity < self.duplicate_threshold:
                    continue
                seen.add(pair)
                found.append(
                    CodeSmell(
                        file_path=file_path,
                        line=line_a,
                        smell_type="duplicate",
                        severity="info",
                        message=(
                            f"functions '{name_a}' (line {line_a}) and '{name_b}' "
                            f"(line {line_b}) are {similarity:.0%} similar"
                        ),
                        suggestion="extract the shared logic into a helper",
                    )
                )
        return found


def plan_refactor(smells: Iterable[CodeSmell]) -> list[RefactorStep]:
    """One step per file, ordered by smell count (desc) then path."""
    by_file: dict[str, list[str]] = defaultdict(list)
    for smell in smells:
        if smell.smell_type == "syntax_error":
            continue
        by_file[smell.file_path].append(smell.smell_type)
    ordered = sorted(by_file.items(), key=lambda item: (-len(item[1]), item[0]))
    return [
        RefactorStep(
            order=index,
            file_path=path,
            smells=sorted(kinds),
            description=f"simplify {path} ({len(kinds)} findings)",
        )
        for index, (path, kinds) in enumerate(ordered, start=1)
    ]
