"""Exact source ranges for Ruby methods and blocks.

Most recognizers only need shallow regex matches. Per-action chunks
(controllers, mailers) need the exact text of one method, so this module
tracks ``keyword ... end`` nesting line by line. String literals, comments,
heredoc bodies and ``=begin``/``=end`` blocks are blanked before keywords are
counted, and trailing ``if``/``unless`` modifiers are not treated as openers.

The scanned source is only read, never evaluated.
"""


import re
from dataclasses import dataclass

# Standalone block opener used by line-based trackers (rake tasks, state machines)
_OPENER_RE = re.compile(r"\b(do|def|case|begin|class|module|while|until|for)\b.*(?<!\bend)\s*$")
_LEADING_COND_RE = re.compile(r"^(if|unless)\b")

_KEYWORD_RE = re.compile(
    r"(?<![\w.:@$])(def|class|module|do|begin|case|while|until|for|if|unless|end)(?![\w?!]|:(?!:))"
)
_ENDLESS_DEF_RE = re.compile(r"^\s*def\s+(?:self\.)?[\w.]+[?!]?\s*(?:\([^)]*\))?\s*=(?![=~>])")
_HEREDOC_RE = re.compile(r"<<([~-]?)(['\"`]?)([A-Z_][A-Z0-9_]*)\2")
_DEF_RE = re.compile(r"^\s*def\s+(self\.)?([\w]+[?!=]?)")
_VISIBILITY_RE = re.compile(r"^\s*(private|protected|public)\s*$")

# Keywords that only open a block when they begin a statement
_STATEMENT_OPENERS = {"if", "unless", "while", "until"}
# Loop keywords whose optional trailing ``do`` does not open a second block
_LOOP_KEYWORDS = {"while", "until", "for"}


def block_opener(stripped: str) -> bool:
    """True when a stripped line opens a ``do``/``def``/... block.

    ``if``/``unless`` only count in their standalone form at the start of the
    line, never as trailing modifiers (``return if x``).
    """
    if _OPENER_RE.search(stripped):
        return True
    return bool(_LEADING_COND_RE.match(stripped))


def _blank_literals(line: str) -> str:
    """Replace string contents and trailing comments with spaces."""
    out = []
    quote = None
    i = 0
    while i < len(line):
        ch = line[i]
        if quote:
            if ch == "\\" and i + 1 < len(line):
                out.append("  ")
                i += 2
                continue
            if ch == quote:
                quote = None
                out.append(ch)
            else:
                out.append(" ")
        elif ch in ("'", '"', "`"):
            quote = ch
            out.append(ch)
        elif ch == "#":
            break
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def _statement_start(text: str, pos: int) -> bool:
    prefix = text[:pos].rstrip()
    return prefix == "" or prefix.endswith(("=", "(", ";", "||", "&&", "["))


def depth_delta(code: str) -> int:
    """Net block depth change for one neutralized line of code."""
    if _ENDLESS_DEF_RE.match(code):
        return 0
    delta = 0
    loop_open = False
    for match in _KEYWORD_RE.finditer(code):
        word = match.group(1)
        if word == "end":
            delta -= 1
        elif word in _STATEMENT_OPENERS:
            if _statement_start(code, match.start()):
                delta += 1
                loop_open = word in _LOOP_KEYWORDS
        elif word == "for":
            if _statement_start(code, match.start()):
                delta += 1
                loop_open = True
        elif word == "do":
            if loop_open:
                loop_open = False
            else:
                delta += 1
        else:
            delta += 1
    return delta


def code_lines(source: str) -> list[str]:
    """Source lines with literals, comments and heredoc bodies blanked.

    The returned list is index-aligned with ``source.splitlines()``.
    """
    result: list[str] = []
    heredoc_terms: list[tuple[str, bool]] = []
    in_embdoc = False
    for line in source.splitlines():
        if in_embdoc:
            result.append("")
            if line.startswith("=end"):
                in_embdoc = False
            continue
        if line.startswith("=begin"):
            in_embdoc = True
            result.append("")
            continue
        if heredoc_terms:
            term, indented = heredoc_terms[0]
            candidate = line.strip() if indented else line.rstrip()
            if candidate == term:
                heredoc_terms.pop(0)
            result.append("")
            continue
        code = _blank_literals(line)
        # Openers are read from the raw line so quoted terminators survive;
        # blanking keeps columns, so code[start] tells real code from literal text
        for match in _HEREDOC_RE.finditer(line):
            if code[match.start():match.start() + 2] == "<<":
                heredoc_terms.append((match.group(3), match.group(1) in ("~", "-")))
        result.append(code)
    return result


def block_end(source_or_lines, start: int) -> int | None:
    """Index of the line that closes the block opened at line ``start``.

    Accepts raw source or the output of ``code_lines``. Returns None when the
    block is never closed (truncated or malformed input).
    """
    lines = code_lines(source_or_lines) if isinstance(source_or_lines, str) else source_or_lines
    if start < 0 or start >= len(lines):
        return None
    depth = 0
    for index in range(start, len(lines)):
        depth += depth_delta(lines[index])
        # A one-liner such as ``def ping; end`` closes on its own line
        if depth <= 0:
            return index
    return None


@dataclass
class MethodRange:
    """Location of one method definition."""

    name: str
    class_method: bool
    start_line: int  # 1-based
    end_line: int  # 1-based, inclusive
    visibility: str = "public"

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


def list_methods(source: str) -> list[MethodRange]:
    """Every ``def`` in ``source`` with its line range and visibility.

    Visibility follows bare ``private``/``protected``/``public`` lines at any
    nesting level, which is what Rails classes use in practice.
    """
    raw = source.splitlines()
    lines = code_lines(source)
    methods: list[MethodRange] = []
    visibility = "public"
    for index, code in enumerate(lines):
        vis = _VISIBILITY_RE.match(code)
        if vis:
            visibility = vis.group(1)
            continue
        match = _DEF_RE.match(code)
        if not match:
            continue
        # Names come from the raw line; blanking never touches identifiers
        raw_match = _DEF_RE.match(raw[index]) or match
        end = block_end(lines, index)
        if end is None:
            continue
        is_class_method = bool(raw_match.group(1))
        methods.append(
            MethodRange(
                name=raw_match.group(2),
                class_method=is_class_method,
                start_line=index + 1,
                end_line=end + 1,
                visibility="public" if is_class_method else visibility,
            )
        )
    return methods


def extract_method_source(source: str, name: str, class_method: bool = False) -> str | None:
    """Exact text of ``def name ... end`` (or ``def self.name``), or None."""
    if not source:
        return None
    raw = source.splitlines(keepends=True)
    for method in list_methods(source):
        if method.name == name and method.class_method == class_method:
            return "".join(raw[method.start_line - 1 : method.end_line])
    return None


def extract_blocks(source: str, opener: re.Pattern | str) -> list[tuple[int, str]]:
    """All blocks whose first line matches ``opener``.

    Returns ``(start_line, text)`` pairs, ``start_line`` 1-based. Blocks that
    never close run to the end of the source.
    """
    pattern = re.compile(opener) if isinstance(opener, str) else opener
    raw = source.splitlines(keepends=True)
    lines = code_lines(source)
    blocks: list[tuple[int, str]] = []
    for index, code in enumerate(lines):
        if not pattern.search(code):
            continue
        end = block_end(lines, index)
        stop = len(raw) - 1 if end is None else end
        blocks.append((index + 1, "".join(raw[index : stop + 1])))
    return blocks


def extract_block(source: str, opener: re.Pattern | str) -> str | None:
    """Text of the first block whose opening line matches ``opener``."""
    blocks = extract_blocks(source, opener)
    return blocks[0][1] if blocks else None
