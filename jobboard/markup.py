# jobboard/markup.py
from __future__ import annotations

import html
import re
from datetime import datetime


def esc(s: str | None) -> str:
    """
    Escape text for HTML contexts (text and attribute values). Do NOT wrap or add tags.
    """
    if s is None:
        return ""
    return html.escape(str(s), quote=True)


def format_date(value: datetime) -> str:
    return value.strftime("%b %d, %Y")


# ---- Markdown (small, escape-first subset) ----------------------------------

# Only http/https links are ever produced.
_URL_RE = re.compile(r'(?<!href=")(?<!">)(?P<url>https?://[^\s<>()"]+)', re.I)
_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^\s)]+)\)", re.I)
# `_` emphasis only at word boundaries, so snake_case and utm_source stay intact.
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*|(?<!\w)__(.+?)__(?!\w)")
_ITALIC_RE = re.compile(r"\*([^*\s][^*]*?)\*|(?<!\w)_([^_\s][^_]*?)_(?!\w)")
_STRIKE_RE = re.compile(r"~~(.+?)~~")
_CODE_RE = re.compile(r"`([^`]+)`")
# Spans already rendered; later passes must not rewrite inside them.
_PROTECTED_RE = re.compile(r"(<a [^>]*>.*?</a>|<code>.*?</code>)")

_HEADER_RE = re.compile(r"^(#{1,6})\s+(.*)$")
_UL_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
_OL_RE = re.compile(r"^\s*\d+\.\s+(.*)$")
_BQ_RE = re.compile(r"^\s*>\s?(.*)$")
_HR_RE = re.compile(r"^\s*(---|\*\*\*)\s*$")
_FENCE_RE = re.compile(r"^\s*```(?:\s*([A-Za-z0-9_+-]+))?\s*$")


def _inline_md(s: str) -> str:
    """Apply inline markdown on an already-escaped string."""
    s = _CODE_RE.sub(lambda m: f"<code>{m.group(1)}</code>", s)
    s = _outside_protected(s, _links)
    return _outside_protected(s, _emphasis)


def _outside_protected(s: str, fn) -> str:
    # re.split with a capture group: odd indices are the protected spans.
    parts = _PROTECTED_RE.split(s)
    return "".join(p if i % 2 else fn(p) for i, p in enumerate(parts))


def _links(s: str) -> str:
    s = _LINK_RE.sub(lambda m: f'<a href="{m.group(2)}">{m.group(1)}</a>', s)
    return _URL_RE.sub(lambda m: f'<a href="{m.group("url")}">{m.group("url")}</a>', s)


def _emphasis(s: str) -> str:
    s = _BOLD_RE.sub(lambda m: f"<strong>{m.group(1) or m.group(2)}</strong>", s)
    s = _ITALIC_RE.sub(lambda m: f"<em>{m.group(1) or m.group(2)}</em>", s)
    return _STRIKE_RE.sub(lambda m: f"<del>{m.group(1)}</del>", s)


def md_to_html(md: str | None) -> str:
    """
    Render listing descriptions/resumes. Every line is escaped before any
    markup is applied, so raw HTML in the input never reaches the page.
    """
    if not md:
        return ""

    lines = md.replace("\r\n", "\n").split("\n")
    out: list[str] = []
    paragraph: list[str] = []
    list_tag: str | None = None
    in_blockquote = False
    in_code = False
    code_lang: str | None = None
    code_buf: list[str] = []

    def flush_paragraph() -> None:
        if paragraph:
            out.append("<p>" + "<br/>".join(_inline_md(esc(p)) for p in paragraph) + "</p>")
            paragraph.clear()

    def close_list() -> None:
        nonlocal list_tag
        if list_tag:
            out.append(f"</{list_tag}>")
            list_tag = None

    def close_blockquote() -> None:
        nonlocal in_blockquote
        if in_blockquote:
            out.append("</blockquote>")
            in_blockquote = False

    def close_blocks() -> None:
        flush_paragraph()
        close_list()
        close_blockquote()

    for raw in lines:
        m_fence = _FENCE_RE.match(raw)
        if m_fence:
            if in_code:
                lang_cls = f' class="language-{esc(code_lang)}"' if code_lang else ""
                out.append(f"<pre><code{lang_cls}>{esc(chr(10).join(code_buf))}</code></pre>")
                in_code, code_lang, code_buf = False, None, []
            else:
                close_blocks()
                in_code, code_lang = True, m_fence.group(1)
            continue

        if in_code:
            code_buf.append(raw)
            continue

        if raw.strip() == "":
            close_blocks()
            continue

        if _HR_RE.match(raw):
            close_blocks()
            out.append("<hr/>")
            continue

        m_h = _HEADER_RE.match(raw)
        if m_h:
            close_blocks()
            level = len(m_h.group(1))
            out.append(f"<h{level}>{_inline_md(esc(m_h.group(2)))}</h{level}>")
            continue

        m_bq = _BQ_RE.match(raw)
        if m_bq:
            flush_paragraph()
            close_list()
            if not in_blockquote:
                out.append("<blockquote>")
                in_blockquote = True
            out.append(f"<p>{_inline_md(esc(m_bq.group(1) or '')) or '&nbsp;'}</p>")
            continue
        close_blockquote()

        m_ul = _UL_RE.match(raw)
        m_ol = None if m_ul else _OL_RE.match(raw)
        if m_ul or m_ol:
            flush_paragraph()
            tag = "ul" if m_ul else "ol"
            if list_tag != tag:
                close_list()
                out.append(f"<{tag}>")
                list_tag = tag
            item = (m_ul or m_ol).group(1)
            out.append(f"<li>{_inline_md(esc(item))}</li>")
            continue

        close_list()
        paragraph.append(raw.strip())

    if in_code:
        out.append(f"<pre><code>{esc(chr(10).join(code_buf))}</code></pre>")
    close_blocks()
    return "\n".join(out)
