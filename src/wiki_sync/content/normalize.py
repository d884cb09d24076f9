"""Canonical Markdown via a mistune AST round-trip.

AI output and human edits format the same content in many ways (``*`` vs
``-`` bullets, setext vs ATX headings, loose spacing). Line-based merging
treats those as edits, so every text is rendered back from its AST in
one canonical form before it is merged or stored:

- ATX headings, ``-`` bullets, ordered items numbered from their start
- adjacent lists of one kind alternate markers (``*`` and ``)``)
- fenced code blocks, ``> `` quotes, pipe tables, ``---`` rules
- soft breaks kept as newlines, one blank line between blocks
- no trailing newline

``normalize_markdown(normalize_markdown(x)) == normalize_markdown(x)``.
"""

from __future__ import annotations

import re
from typing import Any

import mistune

# Characters that would start inline markup when re-parsed.
_INLINE_SPECIAL = re.compile(r"([\\`*\[\]])")
# Underscores that can open or close emphasis (not between word chars).
_EDGE_UNDERSCORE = re.compile(r"(?<![A-Za-z0-9])_|_(?![A-Za-z0-9])")
# Line starts that a parser would read as a block marker.
_BLOCK_START = re.compile(
    r"^(?P<indent> {0,3})(?:(?P<hash>#{1,6})(?=\s|$)|(?P<quote>>)"
    r"|(?P<bullet>[-+])(?=\s|$)|(?P<num>\d{1,9})(?P<delim>[.)])(?=\s|$)"
    r"|(?P<rule>(?:=+|-{2,})\s*$))"
)


def _escape_text(text: str) -> str:
    text = _INLINE_SPECIAL.sub(r"\\\1", text)
    return _EDGE_UNDERSCORE.sub(r"\\_", text)


def _escape_line_start(line: str) -> str:
    m = _BLOCK_START.match(line)
    if not m:
        return line
    indent = m.group("indent")
    rest = line[len(indent) :]
    if m.group("num"):
        num = m.group("num")
        return f"{indent}{num}\\{rest[len(num):]}"
    return f"{indent}\\{rest}"


def _indent(text: str, first: str, rest: str, blank: str = "") -> str:
    lines = text.split("\n")
    out = [first + lines[0] if lines[0] else first.rstrip()]
    out.extend(rest + line if line else blank for line in lines[1:])
    return "\n".join(out)


def _fence_for(code: str, char: str = "`", minimum: int = 3) -> str:
    runs = re.findall(f"{re.escape(char)}+", code)
    longest = max((len(run) for run in runs), default=0)
    return char * max(minimum, longest + 1)


class NormalizingRenderer(mistune.BaseRenderer):
    """Renders a mistune AST back to canonical Markdown."""

    NAME = "markdown"

    def __call__(self, tokens, state) -> str:
        return self._join_blocks(tokens)

    def render_token(self, token: dict[str, Any], state) -> str:
        return self._block(token)

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def _join_blocks(self, tokens, separator: str = "\n\n") -> str:
        blocks = []
        # (ordered, alternate) of the previous block when it was a list
        last_list: tuple[bool, bool] | None = None
        for token in tokens:
            if token.get("type") == "list":
                ordered = bool((token.get("attrs") or {}).get("ordered"))
                alternate = (
                    last_list is not None
                    and last_list[0] == ordered
                    and not last_list[1]
                )
                block = self._list(token, alternate)
                last_list = (ordered, alternate)
            else:
                block = self._block(token)
                if block:
                    last_list = None
            if block:
                blocks.append(block)
        return separator.join(blocks)

    def _block(self, token: dict[str, Any]) -> str:
        attrs = token.get("attrs") or {}
        match token.get("type"):
            case "blank_line":
                return ""
            case "paragraph" | "block_text":
                text = self._inline_of(token)
                return "\n".join(
                    _escape_line_start(line) for line in text.split("\n")
                )
            case "heading":
                text = self._inline(
                    [
                        {"type": "text", "raw": " "}
                        if child.get("type") == "linebreak"
                        else child
                        for child in token.get("children", [])
                    ]
                )
                text = text.replace("\n", " ").strip()
                marker = "#" * int(attrs.get("level", 1))
                return f"{marker} {text}" if text else marker
            case "thematic_break":
                return "---"
            case "block_code":
                code = token.get("raw", "")
                if code.endswith("\n"):
                    code = code[:-1]
                info = (attrs.get("info") or "").strip()
                fence = _fence_for(code)
                if not code:
                    return f"{fence}{info}\n{fence}"
                return f"{fence}{info}\n{code}\n{fence}"
            case "block_quote":
                inner = self._join_blocks(token.get("children", []))
                return _indent(inner, "> ", "> ", blank=">") if inner else ">"
            case "list":
                return self._list(token)
            case "block_html":
                return token.get("raw", "").strip("\n")
            case "table":
                return self._table(token)
            case _:
                if "children" in token:
                    return self._join_blocks(token["children"])
                return (token.get("raw") or token.get("text") or "").strip("\n")

    def _list(self, token: dict[str, Any], alternate: bool = False) -> str:
        """Render a list; ``alternate`` picks the second marker style.

        Adjacent lists of the same kind only stay separate on re-parse
        when their markers differ, so they alternate between ``-`` and
        ``*`` (or ``.`` and ``)``).
        """
        attrs = token.get("attrs") or {}
        ordered = attrs.get("ordered", False)
        number = int(attrs.get("start") or 1)
        tight = token.get("tight", True)
        items = []
        for item in token.get("children", []):
            if ordered:
                marker = f"{number}{')' if alternate else '.'}"
            else:
                marker = "*" if alternate else "-"
            number += 1
            body = self._join_blocks(
                item.get("children", []), "\n" if tight else "\n\n"
            )
            items.append(_indent(body, marker + " ", " " * (len(marker) + 1)))
        return ("\n" if tight else "\n\n").join(items)

    def _table(self, token: dict[str, Any]) -> str:
        head: list[dict] = []
        rows: list[list[dict]] = []
        for part in token.get("children", []):
            match part.get("type"):
                case "table_head":
                    head = part.get("children", [])
                case "table_body":
                    rows = [
                        r.get("children", []) for r in part.get("children", [])
                    ]

        def cell(c: dict) -> str:
            text = self._inline_of(c).replace("\n", " ")
            return text.replace("|", "\\|").strip()

        def align(c: dict) -> str:
            match (c.get("attrs") or {}).get("align"):
                case "left":
                    return ":---"
                case "right":
                    return "---:"
                case "center":
                    return ":---:"
                case _:
                    return "---"

        width = len(head)
        lines = [
            "| " + " | ".join(cell(c) for c in head) + " |",
            "| " + " | ".join(align(c) for c in head) + " |",
        ]
        for row in rows:
            cells = [cell(c) for c in row[:width]]
            cells += [""] * (width - len(cells))
            lines.append("| " + " | ".join(cells) + " |")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Inline
    # ------------------------------------------------------------------

    def _inline_of(self, token: dict[str, Any]) -> str:
        if "children" in token:
            return self._inline(token["children"])
        return _escape_text(token.get("text") or token.get("raw") or "")

    def _inline(self, tokens) -> str:
        return "".join(self._inline_token(t) for t in tokens)

    def _inline_token(self, token: dict[str, Any]) -> str:
        attrs = token.get("attrs") or {}
        match token.get("type"):
            case "text":
                return _escape_text(token.get("raw", ""))
            case "emphasis":
                return f"*{self._inline_of(token)}*"
            case "strong":
                return f"**{self._inline_of(token)}**"
            case "strikethrough":
                return f"~~{self._inline_of(token)}~~"
            case "codespan":
                code = token.get("raw", "")
                fence = _fence_for(code, minimum=1)
                if code.startswith("`") or code.endswith("`"):
                    code = f" {code} "
                return f"{fence}{code}{fence}"
            case "softbreak":
                return "\n"
            case "linebreak":
                return "\\\n"
            case "link":
                return f"[{self._inline_of(token)}]({_destination(attrs)})"
            case "image":
                return f"![{self._inline_of(token)}]({_destination(attrs)})"
            case "inline_html":
                return token.get("raw", "")
            case _:
                if "children" in token:
                    return self._inline(token["children"])
                return token.get("raw", "")


def _destination(attrs: dict[str, Any]) -> str:
    url = attrs.get("url", "")
    if not url or re.search(r"[\s()<>]", url):
        url = f"<{url}>"
    title = attrs.get("title")
    if title:
        escaped = title.replace("\\", "\\\\").replace('"', '\\"')
        return f'{url} "{escaped}"'
    return url


_markdown = mistune.create_markdown(
    renderer=NormalizingRenderer(), plugins=["table", "strikethrough"]
)


def normalize_markdown(text: str) -> str:
    """Return the canonical form of ``text``; empty input stays empty."""
    if not text or not text.strip():
        return ""
    return _markdown(text).strip("\n")
