"""
Import Rewriter - ESM Specifier Resolution

Rewrites the module specifiers of import/export statements so the output can
be loaded by a browser without a bundler. Specifiers are located with a small
token scanner rather than a regular expression, so text inside comments,
strings, template literals and regex literals is never touched.

The rewrite itself is pure: only the inner text of each specifier literal is
replaced, every other byte of the input is preserved, and the resolution
policy in ImportResolver maps its own output to itself.
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Callable
from pathlib import Path
from typing import NamedTuple, Optional

from ..config.settings import PipelineLogger
from ..domain.enums import MessageLevel
from ..domain.models import DependencyImportMap
from ..types import MissingWebModule
from .extensions import remap
from .progress import ProgressChannel

WEB_MODULES_PREFIX = "/web_modules/"

URL_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")

# After these keywords a '/' starts a regex literal, not a division
REGEX_PRECEDING_KEYWORDS = {
    "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
    "throw", "case", "do", "else", "yield", "await",
}


class Token(NamedTuple):
    kind: str      # name, string, number, punct, template, regex
    value: str
    start: int
    end: int


class Specifier(NamedTuple):
    """A specifier string literal; start/end span the quotes."""
    value: str
    start: int
    end: int
    dynamic: bool = False


# =============================================================================
# Scanner
# =============================================================================

def _is_name_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$" or ord(ch) > 127


def _is_name_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$" or ord(ch) > 127


def _regex_allowed(prev: Optional[Token]) -> bool:
    if prev is None:
        return True
    if prev.kind in ("number", "string", "template", "regex"):
        return False
    if prev.kind == "name":
        return prev.value in REGEX_PRECEDING_KEYWORDS
    return prev.value not in (")", "]", "}")


def _scan_template(code: str, i: int) -> tuple[int, bool]:
    """Scan template text from i; return (end, stopped_at_substitution)."""
    n = len(code)
    while i < n:
        ch = code[i]
        if ch == "\\":
            i += 2
        elif ch == "`":
            return i + 1, False
        elif ch == "$" and i + 1 < n and code[i + 1] == "{":
            return i + 2, True
        else:
            i += 1
    return n, False


def _scan_regex(code: str, i: int) -> Optional[int]:
    """End of a regex literal starting at the '/' at i, or None if it is not one."""
    n = len(code)
    j = i + 1
    in_class = False
    while j < n:
        ch = code[j]
        if ch == "\n":
            return None
        if ch == "\\":
            j += 2
            continue
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            j += 1
            while j < n and _is_name_part(code[j]):
                j += 1
            return j
        j += 1
    return None


def tokenize(code: str) -> list[Token]:
    """
    Split JavaScript/TypeScript source into the tokens needed to find imports.

    Whitespace and comments are dropped. Template literal text is emitted as
    opaque 'template' tokens; code inside ${...} substitutions is tokenized
    normally. Punctuation is emitted one character at a time.
    """
    tokens: list[Token] = []
    template_depth: list[int] = []
    n = len(code)
    i = 0

    def add(kind: str, start: int, end: int, value: Optional[str] = None) -> None:
        tokens.append(Token(kind, code[start:end] if value is None else value, start, end))

    while i < n:
        ch = code[i]

        if ch.isspace():
            i += 1
            continue

        if ch == "/" and i + 1 < n and code[i + 1] == "/":
            end = code.find("\n", i)
            i = n if end == -1 else end
            continue

        if ch == "/" and i + 1 < n and code[i + 1] == "*":
            end = code.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue

        if ch in "'\"":
            j = i + 1
            terminated = False
            while j < n:
                c = code[j]
                if c == "\\":
                    j += 2
                    continue
                if c == ch:
                    terminated = True
                    j += 1
                    break
                if c == "\n":
                    break
                j += 1
            j = min(j, n)
            if terminated:
                add("string", i, j, code[i + 1:j - 1])
            else:
                add("punct", i, j)
            i = j
            continue

        if ch == "`":
            end, substitution = _scan_template(code, i + 1)
            add("template", i, end)
            if substitution:
                template_depth.append(0)
            i = end
            continue

        if ch == "{" and template_depth:
            template_depth[-1] += 1
        elif ch == "}" and template_depth:
            if template_depth[-1] == 0:
                template_depth.pop()
                end, substitution = _scan_template(code, i + 1)
                add("template", i, end)
                if substitution:
                    template_depth.append(0)
                i = end
                continue
            template_depth[-1] -= 1

        if ch == "/" and _regex_allowed(tokens[-1] if tokens else None):
            end = _scan_regex(code, i)
            if end is not None:
                add("regex", i, end)
                i = end
                continue

        if ch.isdigit() or (ch == "." and i + 1 < n and code[i + 1].isdigit()):
            j = i + 1
            while j < n and (code[j].isalnum() or code[j] in "._"):
                j += 1
            add("number", i, j)
            i = j
            continue

        if _is_name_start(ch):
            j = i + 1
            while j < n and _is_name_part(code[j]):
                j += 1
            add("name", i, j)
            i = j
            continue

        add("punct", i, i + 1)
        i += 1

    return tokens


# =============================================================================
# Specifier detection
# =============================================================================

def _is_punct(token: Token, value: str) -> bool:
    return token.kind == "punct" and token.value == value


def _skip_braces(tokens: list[Token], j: int) -> Optional[int]:
    """Index just past the '}' matching the '{' at j."""
    depth = 0
    while j < len(tokens):
        if _is_punct(tokens[j], "{"):
            depth += 1
        elif _is_punct(tokens[j], "}"):
            depth -= 1
            if depth == 0:
                return j + 1
        j += 1
    return None


def _from_clause(tokens: list[Token], j: int) -> Optional[Token]:
    """Find the `from "x"` that ends an import/export clause starting at j."""
    n = len(tokens)
    while j < n:
        token = tokens[j]
        if _is_punct(token, "{"):
            j = _skip_braces(tokens, j)
            if j is None:
                return None
            continue
        if token.kind == "name":
            if token.value == "from" and j + 1 < n and tokens[j + 1].kind == "string":
                return tokens[j + 1]
            if token.value in ("import", "export"):
                return None
            j += 1
            continue
        if _is_punct(token, "*") or _is_punct(token, ","):
            j += 1
            continue
        return None
    return None


def find_import_specifiers(code: str) -> list[Specifier]:
    """
    Locate every static and dynamic import/export specifier literal.

    Recognised forms:
        import "x"                  import x, {y} from "x"
        import * as x from "x"      export {x} from "x"
        export * as x from "x"      import("x")

    Returns:
        Specifiers in source order
    """
    tokens = tokenize(code)
    found: dict[int, Specifier] = {}
    n = len(tokens)

    for k, token in enumerate(tokens):
        if token.kind != "name" or token.value not in ("import", "export"):
            continue
        if k > 0 and _is_punct(tokens[k - 1], "."):
            continue
        if k + 1 >= n:
            continue
        nxt = tokens[k + 1]

        literal: Optional[Token] = None
        dynamic = False
        if token.value == "import":
            if nxt.kind == "string":
                literal = nxt
            elif _is_punct(nxt, "("):
                if k + 3 < n and tokens[k + 2].kind == "string" and (
                    _is_punct(tokens[k + 3], ")") or _is_punct(tokens[k + 3], ",")
                ):
                    literal = tokens[k + 2]
                    dynamic = True
            elif _is_punct(nxt, "."):
                continue  # import.meta
            else:
                literal = _from_clause(tokens, k + 1)
        elif _is_punct(nxt, "*") or _is_punct(nxt, "{"):
            literal = _from_clause(tokens, k + 1)

        if literal is not None and literal.start not in found:
            found[literal.start] = Specifier(literal.value, literal.start, literal.end, dynamic)

    return [found[start] for start in sorted(found)]


def rewrite_imports(code: str, resolve: Callable[[str], str]) -> str:
    """
    Replace each import/export specifier in code with resolve(specifier).

    Args:
        code: JavaScript module source
        resolve: Resolution policy for a single specifier

    Returns:
        Code with only the specifier text changed
    """
    specifiers = find_import_specifiers(code)
    if not specifiers:
        return code

    parts: list[str] = []
    pos = 0
    for spec in specifiers:
        parts.append(code[pos:spec.start + 1])
        parts.append(resolve(spec.value))
        pos = spec.end - 1
    parts.append(code[pos:])
    return "".join(parts)


# =============================================================================
# Resolution policy
# =============================================================================

class ImportResolver:
    """
    Three-rule specifier resolution backed by the dependency import map.

    1. URL scheme or root-relative: unchanged.
    2. ./ or ../: must carry an extension, which is remapped.
    3. Bare: /web_modules/<mapped>, or /web_modules/<name>.js when unmapped.

    Diagnostics for missing extensions are kept in ``diagnostics`` and
    reported once: as an error WorkerMsg when attributed to a worker,
    otherwise through the injected logger. Unmapped bare imports are emitted
    as MissingWebModule.
    """

    def __init__(
        self,
        import_map: DependencyImportMap,
        channel: Optional[ProgressChannel] = None,
        source: Optional[Path | str] = None,
        worker_id: Optional[str] = None,
        log: Optional[PipelineLogger] = None
    ):
        self.import_map = import_map
        self.channel = channel
        self.source = source
        self.worker_id = worker_id
        self.log = log or PipelineLogger(logging.getLogger(__name__))
        self.diagnostics: list[str] = []

    def __call__(self, spec: str) -> str:
        if spec.startswith("/") or URL_SCHEME.match(spec):
            return spec

        if spec.startswith("./") or spec.startswith("../"):
            return self._resolve_relative(spec)

        mapped = self.import_map.lookup(spec)
        if mapped:
            return f"{WEB_MODULES_PREFIX}{mapped}"
        if self.channel is not None:
            self.channel.emit(MissingWebModule(specifier=spec))
        return f"{WEB_MODULES_PREFIX}{spec}.js"

    def _resolve_relative(self, spec: str) -> str:
        last_segment = spec.rsplit("/", 1)[-1]
        ext = posixpath.splitext(last_segment)[1][1:]
        if not ext:
            message = f"{self.source or '<code>'}: Import {spec} is missing a required file extension."
            self.diagnostics.append(message)
            if self.channel is not None and self.worker_id:
                self.channel.message(self.worker_id, message, MessageLevel.ERROR)
            else:
                self.log.error(message)
            return spec
        return spec[:-len(ext)] + remap(ext)
