#!/usr/bin/env python3
"""
md2html.py - Markdown → 微信公众号风格 HTML

微信编辑器会剥离 <style> 和 class，所以每个元素都必须带内联 style。
解析交给 Python-Markdown，渲染由 WeChatRenderer 遍历解析好的 ElementTree 完成：
列表、引用块、表格都会被改写成粘贴进微信后仍能正常显示的结构。

Usage (library):
    from md2html import md2html, count_words
    html = md2html(text, {"stats": {"word_count": count_words(text)}})
"""

from __future__ import annotations

import copy
import html
import re
import xml.etree.ElementTree as etree
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, TypedDict

import markdown
from markdown import util
from markdown.extensions import Extension
from markdown.serializers import to_html_string
from markdown.treeprocessors import Treeprocessor


class Element(str, Enum):
    """可渲染的元素种类，每种对应 STYLES 中的一条样式。"""

    H1 = "h1"
    H2 = "h2"
    H3 = "h3"
    P = "p"
    BLOCKQUOTE = "blockquote"
    BLOCKQUOTE_P = "blockquote_p"
    CODE = "code"
    CODE_BLOCK = "code_block"
    UL = "ul"
    OL = "ol"
    LI = "li"
    STRONG = "strong"
    EM = "em"
    A = "a"
    HR = "hr"
    IMG = "img"
    TABLE = "table"
    TH = "th"
    TD = "td"


STYLES: Mapping[Element, str] = MappingProxyType({
    # ── 标题 ──
    Element.H1: "font-size: 20px; font-weight: 700; color: #1a1a2e; text-align: center; margin: 36px 0 24px; line-height: 1.5; letter-spacing: 0.5px;",
    Element.H2: "font-size: 16px; font-weight: 700; color: #1a1a2e; border-left: 3px solid #2b5cd9; padding-left: 12px; margin: 40px 0 16px; line-height: 1.5; letter-spacing: 0.3px;",
    Element.H3: "font-size: 15px; font-weight: 700; color: #333; margin: 28px 0 12px; line-height: 1.5;",
    # ── 正文：14px + 行高 2.0，移动端阅读最舒服 ──
    Element.P: "margin: 8px 0 18px; font-size: 14px; line-height: 2; color: #333; letter-spacing: 0.3px;",
    Element.BLOCKQUOTE: "border-left: 3px solid #e0e0e0; padding: 10px 16px; margin: 20px 0; background: #fafbfc; color: #666; border-radius: 0 6px 6px 0;",
    Element.BLOCKQUOTE_P: "margin: 4px 0; font-size: 13px; line-height: 1.8; color: #777;",
    Element.CODE: "background: #f4f5f7; padding: 2px 5px; border-radius: 3px; font-size: 13px; color: #c7254e; font-family: 'Courier New', Consolas, monospace;",
    Element.CODE_BLOCK: "background: #282c34; color: #abb2bf; border-radius: 6px; padding: 14px 16px; font-family: 'Courier New', Consolas, monospace; font-size: 12px; margin: 20px 0; white-space: pre-wrap; line-height: 1.7; overflow-x: auto;",
    # ── 列表：原生圆点/序号粘贴后会消失，改为手动前缀 ──
    Element.UL: "margin: 8px 0 20px; padding-left: 0; list-style: none;",
    Element.OL: "margin: 8px 0 20px; padding-left: 0; list-style: none;",
    Element.LI: "margin: 6px 0; font-size: 14px; line-height: 2; color: #333; padding-left: 0;",
    Element.STRONG: "color: #1a1a2e; font-weight: 700;",
    Element.EM: "font-style: italic; color: #666;",
    Element.A: "color: #2b5cd9; text-decoration: none; border-bottom: 1px solid rgba(43,92,217,0.3);",
    Element.HR: "border: none; border-top: 1px solid #eaeaea; margin: 40px 0;",
    Element.IMG: "max-width: 100%; border-radius: 6px; margin: 20px 0; display: block;",
    Element.TABLE: "width: 100%; border-collapse: collapse; margin: 20px 0; font-size: 13px;",
    Element.TH: "background: #f4f5f7; padding: 8px 10px; text-align: left; border: 1px solid #e5e5e5; font-weight: 600; font-size: 13px;",
    Element.TD: "padding: 8px 10px; border: 1px solid #e5e5e5; font-size: 13px;",
})

ARTICLE_CONTAINER_ID = "article"
BULLET = "· "
COVER_ALT = "封面图"

CHANGELOG_BOX_STYLE = "background: #f8f9fa; border-radius: 10px; padding: 16px 20px; margin: 20px 0; border: 1px solid #eee;"
CHANGELOG_LABEL_STYLE = "font-size: 14px; font-weight: bold; color: #999; margin: 0 0 10px;"
CHANGELOG_LINE_STYLE = "font-size: 13px; color: #888; margin: 4px 0; line-height: 1.8;"

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>文章预览</title>
<style>
  body {{
    max-width: 680px;
    margin: 40px auto;
    font-family: -apple-system, BlinkMacSystemFont, 'Helvetica Neue', 'PingFang SC', 'Microsoft YaHei', sans-serif;
    font-size: 14px;
    line-height: 2;
    color: #2c2c2c;
    padding: 0 20px;
  }}
</style>
</head>
<body>
<div id="{container_id}">
{content}
</div>
</body>
</html>"""

BLOCK_TAGS = {
    "p", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote",
    "pre", "ul", "ol", "table", "hr", "div",
}

_AMP_RE = re.compile(r"&(?!#?\w+;)")
_P_OPEN_RE = re.compile(r"<p(?:\s[^>]*)?>", re.IGNORECASE)
_P_CLOSE_RE = re.compile(r"</p>", re.IGNORECASE)
_STYLED_P_RE = re.compile(r'<p style="[^"]*">')
# superfences 暂存的代码块：<pre class="highlight"><code class="language-x">…</code></pre>，
# 开启 Pygments 时外面还会多一层 <div class="highlight">
_STASHED_CODE_RE = re.compile(
    r'^(?:<div[^>]*>)?<pre[^>]*>(?:<span></span>)?'
    r'<code(?:\s+class="(?:language-)?([^"\s]*)[^"]*")?[^>]*>(.*?)</code></pre>(?:</div>)?$',
    re.DOTALL,
)
_TAG_RE = re.compile(r"<[^>]+>")

MARKDOWN_EXTENSIONS = ["tables", "pymdownx.highlight", "pymdownx.superfences", "sane_lists"]
# 不做语法高亮，代码块按纯文本输出
MARKDOWN_EXTENSION_CONFIGS = {"pymdownx.highlight": {"use_pygments": False}}


class RenderStats(TypedDict, total=False):
    completed_at: str
    word_count: int
    duration: str
    cover_source: str
    extra: list[str]


class RenderOptions(TypedDict, total=False):
    cover_image_path: str
    stats: RenderStats


# ============================
# 文本工具
# ============================

def escape_text(text: str) -> str:
    """转义文本节点，已有的实体（&lt; 等）保持不变。"""
    text = _AMP_RE.sub("&amp;", text)
    return text.replace("<", "&lt;").replace(">", "&gt;")


def escape_attr(value: str) -> str:
    return value.replace('"', "&quot;")


def escape_code(code: str) -> str:
    """代码块只转义尖括号，防止编辑器把代码当成标签解析。"""
    return code.replace("<", "&lt;").replace(">", "&gt;")


def strip_block_wrappers(content: str) -> str:
    """去掉列表项内容里的 <p> 包裹，让前缀和正文在同一行。"""
    content = _P_OPEN_RE.sub("", content)
    content = _P_CLOSE_RE.sub("", content)
    return content.strip()


def restyle_quote_paragraphs(content: str) -> str:
    """引用块内的段落统一换成 blockquote_p 样式。"""
    return _STYLED_P_RE.sub(f'<p style="{STYLES[Element.BLOCKQUOTE_P]}">', content)


def _is_blank(text: Optional[str]) -> bool:
    return not text or not text.strip()


# ============================
# 渲染器
# ============================

class WeChatRenderer:
    """
    把 Python-Markdown 解析出的 ElementTree 渲染为内联样式 HTML。

    只读遍历：不修改树，也不在递归之间传递可变状态。
    htmlStash 里存放着被预处理器暂存的原始 HTML 和围栏代码块。
    """

    def __init__(self, stash: util.HtmlStash, styles: Mapping[Element, str] = STYLES):
        self.stash = stash
        self.styles = styles

    def render(self, root: etree.Element) -> str:
        body = self.render_blocks(root)
        body = self._restore_stash(body)
        return body.replace(util.AMP_SUBSTITUTE, "&")

    # ── 块级 ──

    def render_blocks(self, parent: etree.Element) -> str:
        parts = []
        if not _is_blank(parent.text):
            parts.append(self._loose_text(parent.text))
        for child in parent:
            parts.append(self.render_block(child))
            if not _is_blank(child.tail):
                parts.append(self._loose_text(child.tail))
        return "".join(parts)

    def render_block(self, el: etree.Element) -> str:
        tag = el.tag
        if tag in ("h1", "h2", "h3", "h4", "h5", "h6"):
            return self.heading(el)
        if tag == "p":
            return self.paragraph(el)
        if tag == "blockquote":
            return self.blockquote(el)
        if tag == "pre":
            return self.code_block("".join(el.itertext()))
        if tag in ("ul", "ol"):
            return self.render_list(el, ordered=(tag == "ol"))
        if tag == "table":
            return self.table(el)
        if tag == "hr":
            return f'<hr style="{self.styles[Element.HR]}" />\n'
        return self._literal(el) + "\n"

    def heading(self, el: etree.Element) -> str:
        kind = {"h1": Element.H1, "h2": Element.H2}.get(el.tag, Element.H3)
        return f'<{el.tag} style="{self.styles[kind]}">{self.render_inline(el)}</{el.tag}>\n'

    def paragraph(self, el: etree.Element) -> str:
        if len(el) == 0 and el.text:
            match = util.HTML_PLACEHOLDER_RE.fullmatch(el.text.strip())
            if match:
                return self._stashed_block(int(match.group(1)))

        # 图片不能套在 <p> 里，微信清理格式时会把这种嵌套丢掉
        if self._only_images(el):
            return "".join(self.image(img) + "\n" for img in el)

        return self._paragraph_html(self.render_inline(el))

    def blockquote(self, el: etree.Element) -> str:
        body = restyle_quote_paragraphs(self.render_blocks(el))
        return f'<section style="{self.styles[Element.BLOCKQUOTE]}">{body}</section>\n'

    def code_block(self, code: str, lang: Optional[str] = None) -> str:
        # lang 仅接收，不做高亮
        code = html.unescape(code)
        if code.endswith("\n"):
            code = code[:-1]
        return f'<section style="{self.styles[Element.CODE_BLOCK]}">{escape_code(code)}</section>\n'

    def render_list(self, el: etree.Element, ordered: bool) -> str:
        kind = Element.OL if ordered else Element.UL
        items = [child for child in el if child.tag == "li"]
        body = []
        for index, item in enumerate(items, start=1):
            prefix = f"{index}. " if ordered else BULLET
            content = strip_block_wrappers(self.render_mixed(item))
            body.append(f'<li style="{self.styles[Element.LI]}">{prefix}{content}</li>\n')
        return f'<{el.tag} style="{self.styles[kind]}">{"".join(body)}</{el.tag}>\n'

    def render_mixed(self, el: etree.Element) -> str:
        """渲染同时含有行内内容和块级子元素的节点（列表项）。"""
        parts = []
        inline_run: list[str] = []

        def flush() -> None:
            if inline_run:
                parts.append("".join(inline_run))
                inline_run.clear()

        if el.text:
            inline_run.append(escape_text(el.text))
        for child in el:
            if child.tag in BLOCK_TAGS:
                flush()
                parts.append(self.render_block(child))
                if not _is_blank(child.tail):
                    inline_run.append(escape_text(child.tail))
            else:
                inline_run.append(self.render_inline_element(child))
                if child.tail:
                    inline_run.append(escape_text(child.tail))
        flush()
        return "".join(parts)

    def table(self, el: etree.Element) -> str:
        head_rows = []
        body_rows = []
        for section in el:
            if section.tag == "thead":
                head_rows.extend(row for row in section if row.tag == "tr")
            elif section.tag == "tbody":
                body_rows.extend(row for row in section if row.tag == "tr")
            elif section.tag == "tr":
                body_rows.append(section)

        out = [f'<table style="{self.styles[Element.TABLE]}"><thead>']
        for row in head_rows:
            out.append("<tr>")
            for cell in row:
                out.append(f'<th style="{self.styles[Element.TH]}">{self.render_inline(cell)}</th>')
            out.append("</tr>")
        out.append("</thead><tbody>")
        for row in body_rows:
            out.append("<tr>")
            for cell in row:
                kind = Element.TH if cell.tag == "th" else Element.TD
                out.append(f'<{cell.tag} style="{self.styles[kind]}">{self.render_inline(cell)}</{cell.tag}>')
            out.append("</tr>")
        out.append("</tbody></table>\n")
        return "".join(out)

    # ── 行内 ──

    def render_inline(self, el: etree.Element) -> str:
        parts = []
        if el.text:
            parts.append(escape_text(el.text))
        for child in el:
            parts.append(self.render_inline_element(child))
            if child.tail:
                parts.append(escape_text(child.tail))
        return "".join(parts)

    def render_inline_element(self, el: etree.Element) -> str:
        tag = el.tag
        if tag == "strong":
            return f'<strong style="{self.styles[Element.STRONG]}">{self.render_inline(el)}</strong>'
        if tag == "em":
            return f'<em style="{self.styles[Element.EM]}">{self.render_inline(el)}</em>'
        if tag == "code":
            return f'<code style="{self.styles[Element.CODE]}">{escape_text(el.text or "")}</code>'
        if tag == "a":
            href = escape_attr(el.get("href", ""))
            return f'<a style="{self.styles[Element.A]}" href="{href}">{self.render_inline(el)}</a>'
        if tag == "img":
            return self.image(el)
        if tag == "br":
            return "<br />"
        return self._literal(el)

    def image(self, el: etree.Element) -> str:
        src = escape_attr(el.get("src", ""))
        alt = escape_attr(el.get("alt") or el.get("title") or "")
        return f'<img style="{self.styles[Element.IMG]}" src="{src}" alt="{alt}" />'

    # ── 辅助 ──

    def _paragraph_html(self, content: str) -> str:
        return f'<p style="{self.styles[Element.P]}">{content}</p>\n'

    @staticmethod
    def _only_images(el: etree.Element) -> bool:
        if len(el) == 0 or not _is_blank(el.text):
            return False
        return all(child.tag == "img" and _is_blank(child.tail) for child in el)

    def _stash_text(self, index: int) -> str:
        if index >= len(self.stash.rawHtmlBlocks):
            return ""
        raw = self.stash.rawHtmlBlocks[index]
        if isinstance(raw, str):
            return raw
        return to_html_string(raw)

    def _loose_text(self, text: str) -> str:
        """块级元素里直接挂着的文本：单独的占位符按暂存块输出，否则包成段落。"""
        text = text.strip()
        match = util.HTML_PLACEHOLDER_RE.fullmatch(text)
        if match:
            return self._stashed_block(int(match.group(1)))
        return self._paragraph_html(escape_text(text))

    def _stashed_html(self, index: int) -> str:
        raw = self._stash_text(index)
        match = _STASHED_CODE_RE.match(raw.strip())
        if match:
            return self.code_block(_TAG_RE.sub("", match.group(2)), lang=match.group(1))
        return raw

    def _stashed_block(self, index: int) -> str:
        block = self._stashed_html(index)
        return block if block.endswith("\n") else block + "\n"

    def _restore_stash(self, content: str) -> str:
        # 暂存的 HTML 可能再嵌套占位符，最多展开与暂存数量相同的轮数
        for _ in range(len(self.stash.rawHtmlBlocks)):
            restored = util.HTML_PLACEHOLDER_RE.sub(
                lambda m: self._stashed_html(int(m.group(1))), content
            )
            if restored == content:
                break
            content = restored
        return content

    @staticmethod
    def _literal(el: etree.Element) -> str:
        """无法识别的元素原样输出，不抛异常。"""
        clone = copy.copy(el)
        clone.tail = None
        return to_html_string(clone)


class _ArticleTreeprocessor(Treeprocessor):
    """在 inline 与 unescape 之后拿到完整的树，交给 WeChatRenderer。"""

    def run(self, root: etree.Element) -> None:
        self.md.wechat_body = WeChatRenderer(self.md.htmlStash).render(root)


class WeChatExtension(Extension):
    def extendMarkdown(self, md: markdown.Markdown) -> None:
        md.wechat_body = ""
        md.treeprocessors.register(_ArticleTreeprocessor(md), "wechat_article", -5)


def render_body(markdown_text: str) -> str:
    """只渲染正文部分（不含封面、changelog 和页面外壳）。"""
    if not isinstance(markdown_text, str):
        raise TypeError(f"markdown must be str, got {type(markdown_text).__name__}")

    md = markdown.Markdown(
        extensions=[*MARKDOWN_EXTENSIONS, WeChatExtension()],
        extension_configs=MARKDOWN_EXTENSION_CONFIGS,
    )
    md.convert(markdown_text)
    return md.wechat_body


# ============================
# 封面 & changelog
# ============================

def cover_html(cover_image_path: str) -> str:
    file_url = escape_attr(cover_image_path.replace("\\", "/"))
    return f'<img style="{STYLES[Element.IMG]} margin-bottom: 24px;" src="{file_url}" alt="{COVER_ALT}" />\n'


def changelog_lines(stats: Optional[RenderStats]) -> list[str]:
    """
    按固定顺序生成 changelog 行（HTML 片段），缺失或为空的字段直接跳过。

    固定字段的值会转义；extra 行是调用方写好的片段，原样输出（可以带链接等标签）。
    """
    if not stats:
        return []
    lines = []
    if stats.get("completed_at"):
        lines.append(f"📅 完成时间：{escape_text(str(stats['completed_at']))}")
    if stats.get("word_count"):
        lines.append(f"📝 全文字数：约 {stats['word_count']} 字")
    if stats.get("duration"):
        lines.append(f"⏱️ 撰写耗时：{escape_text(str(stats['duration']))}")
    if stats.get("cover_source"):
        lines.append(f"🖼️ 封面来源：{escape_text(str(stats['cover_source']))}")
    for line in stats.get("extra") or []:
        if line:
            lines.append(str(line))
    return lines


def changelog_html(stats: Optional[RenderStats]) -> str:
    lines = changelog_lines(stats)
    if not lines:
        return ""
    rows = "\n".join(
        f'  <p style="{CHANGELOG_LINE_STYLE}">{line}</p>' for line in lines
    )
    return (
        f'\n<hr style="{STYLES[Element.HR]}" />\n'
        f'<section style="{CHANGELOG_BOX_STYLE}">\n'
        f'  <p style="{CHANGELOG_LABEL_STYLE}">Changelog</p>\n'
        f"{rows}\n"
        f"</section>"
    )


# ============================
# 主转换函数
# ============================

def md2html(markdown_text: str, options: Optional[RenderOptions] = None) -> str:
    """
    将 Markdown 转换为可直接粘贴到微信编辑器的完整 HTML 页面

    Args:
        markdown_text: Markdown 原文
        options: cover_image_path（封面图地址，插在正文前）和 stats（文末 changelog）

    Returns:
        完整 HTML 页面，正文位于 id="article" 的容器内
    """
    options = options or {}
    body = render_body(markdown_text)

    cover = ""
    if options.get("cover_image_path"):
        cover = cover_html(options["cover_image_path"])

    footer = changelog_html(options.get("stats"))

    return PAGE_TEMPLATE.format(
        container_id=ARTICLE_CONTAINER_ID,
        content=f"{cover}{body}{footer}",
    )


# ============================
# 字数统计
# ============================

_COUNT_STRIP_RULES = (
    (re.compile(r"```[\s\S]*?```"), ""),        # 代码块
    (re.compile(r"`[^`]+`"), ""),               # 行内代码
    (re.compile(r"!\[.*?\]\(.*?\)"), ""),       # 图片
    (re.compile(r"\[([^\]]+)\]\(.*?\)"), r"\1"),  # 链接只留文字
    (re.compile(r"[#*>\-_|=~]"), ""),           # Markdown 符号
    (re.compile(r"\s+"), ""),                   # 空白
)


def strip_for_count(markdown_text: str) -> str:
    for pattern, repl in _COUNT_STRIP_RULES:
        markdown_text = pattern.sub(repl, markdown_text)
    return markdown_text


def count_words(markdown_text: str) -> int:
    """
    估算中文文章字数：去掉代码、图片、链接语法、Markdown 符号和所有空白后计长度。

    英文不按单词计，每个字母算一个字（与历史输出保持一致）。
    """
    return len(strip_for_count(markdown_text))


def extract_title(markdown_text: str) -> tuple[str, str]:
    """取第一个 `# ` 行作为标题，返回 (title, 去掉标题行的正文)。"""
    lines = markdown_text.split("\n")
    for i, line in enumerate(lines):
        if line.startswith("# "):
            title = line[2:].strip()
            body = "\n".join(lines[:i] + lines[i + 1:])
            return title, body.lstrip("\n")
    return "", markdown_text
