import re
import unittest
from html.parser import HTMLParser

from scripts.md2html import (
    ARTICLE_CONTAINER_ID,
    BULLET,
    CHANGELOG_LINE_STYLE,
    STYLES,
    Element,
    changelog_lines,
    count_words,
    extract_title,
    md2html,
    render_body,
    restyle_quote_paragraphs,
    strip_block_wrappers,
    strip_for_count,
)

LI_RE = re.compile(r'<li style="[^"]*">(.*?)</li>', re.DOTALL)


def p_tag(kind: Element) -> str:
    return f'<p style="{STYLES[kind]}">'


class StyleCollector(HTMLParser):
    """收集每个标签解析后的 style 属性值。"""

    def __init__(self) -> None:
        super().__init__()
        self.styles: list[tuple[str, str]] = []

    def handle_starttag(self, tag, attrs) -> None:
        style = dict(attrs).get("style")
        if style is not None:
            self.styles.append((tag, style))


class TestStyleTable(unittest.TestCase):
    def test_every_element_has_style(self) -> None:
        for kind in Element:
            self.assertIn(kind, STYLES)
            self.assertTrue(STYLES[kind].strip())
        self.assertEqual(len(STYLES), len(Element))

    def test_table_is_read_only(self) -> None:
        with self.assertRaises(TypeError):
            STYLES[Element.P] = "color: red;"  # type: ignore[index]


class TestBlocks(unittest.TestCase):
    def test_heading_and_bold_paragraph(self) -> None:
        html = md2html("# Hi\n\nSome **bold** text.\n")
        self.assertIn(f'<h1 style="{STYLES[Element.H1]}">Hi</h1>', html)
        self.assertIn(
            f'{p_tag(Element.P)}Some <strong style="{STYLES[Element.STRONG]}">bold</strong> text.</p>',
            html,
        )
        self.assertNotIn("Changelog", html)
        self.assertNotIn("<img", html)

    def test_deep_heading_falls_back_to_h3_style(self) -> None:
        body = render_body("#### Deep\n")
        self.assertIn(f'<h4 style="{STYLES[Element.H3]}">Deep</h4>', body)

    def test_unordered_list_prefixes(self) -> None:
        body = render_body("- a\n- b\n")
        items = LI_RE.findall(body)
        self.assertEqual(items, [f"{BULLET}a", f"{BULLET}b"])
        self.assertIn(f'<ul style="{STYLES[Element.UL]}">', body)
        self.assertIn("list-style: none", STYLES[Element.UL])

    def test_ordered_list_prefixes(self) -> None:
        body = render_body("1. one\n2. two\n3. three\n")
        self.assertEqual(LI_RE.findall(body), ["1. one", "2. two", "3. three"])

    def test_loose_list_items_have_no_paragraph_tags(self) -> None:
        body = render_body("1. first\n\n2. second\n")
        items = LI_RE.findall(body)
        self.assertEqual(items, ["1. first", "2. second"])
        for item in items:
            self.assertNotIn("<p", item)

    def test_nested_list_keeps_both_levels(self) -> None:
        body = render_body("- a\n    - b\n")
        self.assertEqual(body.count(BULLET), 2)
        self.assertEqual(body.count(f'<ul style="{STYLES[Element.UL]}">'), 2)
        self.assertNotIn("<p", body)

    def test_blockquote_paragraphs_restyled(self) -> None:
        body = render_body("> quote one\n>\n> quote two\n")
        self.assertIn(f'<section style="{STYLES[Element.BLOCKQUOTE]}">', body)
        self.assertEqual(body.count(p_tag(Element.BLOCKQUOTE_P)), 2)
        self.assertNotIn(p_tag(Element.P), body)

    def test_nested_blockquote_paragraphs_restyled(self) -> None:
        body = render_body("> outer\n>\n> > inner\n")
        self.assertEqual(body.count(p_tag(Element.BLOCKQUOTE_P)), 2)
        self.assertNotIn(p_tag(Element.P), body)

    def test_image_only_paragraph_is_not_wrapped(self) -> None:
        body = render_body("![alt text](http://x/a.png)\n")
        self.assertIn(
            f'<img style="{STYLES[Element.IMG]}" src="http://x/a.png" alt="alt text" />',
            body,
        )
        self.assertNotIn("<p", body)

    def test_image_with_text_stays_in_paragraph(self) -> None:
        body = render_body("see ![a](http://x/a.png) here\n")
        self.assertTrue(body.startswith(p_tag(Element.P)))

    def test_fenced_code_block(self) -> None:
        body = render_body("```python\nif a < b:\n    print('<x>')\n```\n")
        self.assertIn(
            f'<section style="{STYLES[Element.CODE_BLOCK]}">if a &lt; b:\n    print(\'&lt;x&gt;\')</section>',
            body,
        )
        self.assertNotIn("<pre", body)
        self.assertNotIn("<code", body)

    def test_indented_code_block(self) -> None:
        body = render_body("para\n\n    x = 1 < 2\n")
        self.assertIn(f'<section style="{STYLES[Element.CODE_BLOCK]}">x = 1 &lt; 2</section>', body)

    def test_code_block_style_attribute_is_intact(self) -> None:
        parser = StyleCollector()
        parser.feed(render_body("```\nline1\nline2\n```\n\nuse `x`\n"))
        self.assertIn(("section", STYLES[Element.CODE_BLOCK]), parser.styles)
        self.assertIn(("code", STYLES[Element.CODE]), parser.styles)

    def test_fenced_code_inside_list_item(self) -> None:
        body = render_body("1. Run:\n\n    ```\n    pip install a\n    pip install b\n    ```\n")
        self.assertIn(
            f'<section style="{STYLES[Element.CODE_BLOCK]}">pip install a\npip install b</section>',
            body,
        )
        self.assertTrue(LI_RE.findall(body)[0].startswith("1. Run:"))
        self.assertNotIn("<code", body)

    def test_fenced_code_inside_blockquote(self) -> None:
        body = render_body("> ```\n> x < y\n> ```\n")
        self.assertIn(f'<section style="{STYLES[Element.BLOCKQUOTE]}">', body)
        self.assertIn(f'<section style="{STYLES[Element.CODE_BLOCK]}">x &lt; y</section>', body)
        self.assertNotIn("<code", body)

    def test_table_cells(self) -> None:
        body = render_body("| A | B |\n| --- | --- |\n| 1 | 2 |\n")
        self.assertIn(f'<table style="{STYLES[Element.TABLE]}"><thead><tr>', body)
        self.assertIn(f'<th style="{STYLES[Element.TH]}">A</th>', body)
        self.assertIn(f'<th style="{STYLES[Element.TH]}">B</th>', body)
        self.assertIn(f'<td style="{STYLES[Element.TD]}">1</td>', body)
        self.assertIn(f'<td style="{STYLES[Element.TD]}">2</td>', body)

    def test_horizontal_rule(self) -> None:
        body = render_body("a\n\n---\n\nb\n")
        self.assertIn(f'<hr style="{STYLES[Element.HR]}" />', body)

    def test_raw_html_block_passes_through(self) -> None:
        body = render_body("<div>raw</div>\n")
        self.assertIn("<div>raw</div>", body)

    def test_malformed_markdown_degrades_to_text(self) -> None:
        body = render_body("**unclosed and [broken](link\n")
        self.assertIn("**unclosed", body)
        self.assertIn("[broken](link", body)

    def test_empty_input(self) -> None:
        self.assertEqual(render_body(""), "")
        self.assertIn(f'id="{ARTICLE_CONTAINER_ID}"', md2html(""))

    def test_non_text_input_raises(self) -> None:
        with self.assertRaises(TypeError):
            md2html(None)  # type: ignore[arg-type]


class TestInline(unittest.TestCase):
    def test_emphasis_and_code(self) -> None:
        body = render_body("An *it* and `a<b` now\n")
        self.assertIn(f'<em style="{STYLES[Element.EM]}">it</em>', body)
        self.assertIn(f'<code style="{STYLES[Element.CODE]}">a&lt;b</code>', body)

    def test_link_href_verbatim(self) -> None:
        body = render_body("[site](https://example.com/a?b=1&c=2)\n")
        self.assertIn(
            f'<a style="{STYLES[Element.A]}" href="https://example.com/a?b=1&c=2">site</a>',
            body,
        )

    def test_bold_inside_list_item(self) -> None:
        body = render_body("- **key**: value\n")
        self.assertEqual(
            LI_RE.findall(body),
            [f'{BULLET}<strong style="{STYLES[Element.STRONG]}">key</strong>: value'],
        )


class TestPostProcessing(unittest.TestCase):
    def test_strip_block_wrappers(self) -> None:
        self.assertEqual(strip_block_wrappers('<p style="x">a</p>\n<p>b</p>\n'), "a\nb")
        self.assertEqual(strip_block_wrappers("<pre>keep</pre>"), "<pre>keep</pre>")

    def test_restyle_quote_paragraphs(self) -> None:
        content = f'{p_tag(Element.P)}x</p>'
        self.assertEqual(restyle_quote_paragraphs(content), f"{p_tag(Element.BLOCKQUOTE_P)}x</p>")


class TestDocument(unittest.TestCase):
    def test_single_container(self) -> None:
        html = md2html("text\n")
        self.assertEqual(html.count(f'id="{ARTICLE_CONTAINER_ID}"'), 1)
        self.assertTrue(html.startswith("<!DOCTYPE html>"))
        self.assertIn("max-width: 680px;", html)

    def test_deterministic(self) -> None:
        text = "# T\n\n- a\n- b\n\n> q\n"
        options = {"cover_image_path": "/tmp/c.jpg", "stats": {"word_count": 3}}
        self.assertEqual(md2html(text, options), md2html(text, options))

    def test_cover_precedes_body(self) -> None:
        html = md2html("# T\n", {"cover_image_path": "C:\\img\\c.jpg"})
        self.assertIn('src="C:/img/c.jpg"', html)
        self.assertIn("margin-bottom: 24px;", html)
        self.assertLess(html.index('alt="封面图"'), html.index("<h1"))

    def test_no_footer_without_stats(self) -> None:
        self.assertNotIn("Changelog", md2html("text\n", {}))
        self.assertNotIn("Changelog", md2html("text\n", {"stats": {}}))

    def test_footer_with_single_field(self) -> None:
        html = md2html("text\n", {"stats": {"word_count": 42}})
        self.assertIn("Changelog", html)
        self.assertEqual(html.count(CHANGELOG_LINE_STYLE), 1)
        self.assertIn("📝 全文字数：约 42 字", html)
        self.assertNotIn("完成时间", html)

    def test_footer_extra_lines_are_markup(self) -> None:
        html = md2html("text\n", {"stats": {
            "duration": "<1 小时",
            "extra": ['<a href="https://example.com">原文</a>'],
        }})
        self.assertIn(f'<p style="{CHANGELOG_LINE_STYLE}"><a href="https://example.com">原文</a></p>', html)
        self.assertIn("⏱️ 撰写耗时：&lt;1 小时", html)

    def test_footer_field_order(self) -> None:
        lines = changelog_lines({
            "extra": ["note 1", "note 2"],
            "cover_source": "Unsplash · A",
            "duration": "2 小时",
            "word_count": 10,
            "completed_at": "2026-01-01 10:00",
        })
        self.assertEqual(lines, [
            "📅 完成时间：2026-01-01 10:00",
            "📝 全文字数：约 10 字",
            "⏱️ 撰写耗时：2 小时",
            "🖼️ 封面来源：Unsplash · A",
            "note 1",
            "note 2",
        ])


class TestCountWords(unittest.TestCase):
    def test_latin_letters_count_individually(self) -> None:
        self.assertEqual(count_words("hello world"), 10)

    def test_markdown_markers_removed(self) -> None:
        self.assertEqual(count_words("# 标题\n\n正文 **加粗** 内容 `code`\n"), 8)

    def test_code_fence_removed(self) -> None:
        self.assertEqual(count_words("```\ncode here\n```\n中文"), 2)

    def test_image_and_link(self) -> None:
        self.assertEqual(count_words("![图](a.png)看[链接](http://x)"), 3)

    def test_idempotent_stripping(self) -> None:
        samples = [
            "# 标题\n\n- 列表 *强调*\n> 引用",
            "Mixed 中英 `code` [link](u) ![img](p)",
            "```\nblock\n```\n~~删除~~ | 表格 |",
        ]
        for text in samples:
            once = strip_for_count(text)
            self.assertEqual(strip_for_count(once), once)


class TestExtractTitle(unittest.TestCase):
    def test_first_heading_is_title(self) -> None:
        self.assertEqual(extract_title("# 标题\n\n正文\n"), ("标题", "正文\n"))

    def test_no_heading(self) -> None:
        self.assertEqual(extract_title("## sub\n正文"), ("", "## sub\n正文"))


if __name__ == "__main__":
    unittest.main()
