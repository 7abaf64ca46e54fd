#!/usr/bin/env python3
"""
公众号文章自动发布工具

流程：
    Unsplash 获取封面图 → 上传七牛云 → Markdown 渲染为预览 HTML
    → 打开微信编辑器 → 填标题 → 粘贴正文 → 上传封面 → 保持浏览器开着等你检查

使用示例:
    python publish.py render article.md -o article_preview.html
    python publish.py count article.md
    python publish.py publish article.md --duration "2 小时" --note "🔧 修订：补充数据来源"

配置见 config.example.yaml（或对应环境变量）。
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

import mp_browser
from config import load_config, qiniu_ready, resolve_path
from cover import prepare_cover
from md2html import ARTICLE_CONTAINER_ID, RenderOptions, RenderStats, count_words, extract_title, md2html
from qiniu_upload import QiniuUploadError, upload_bytes

PREVIEW_NAME = "article_preview.html"
COVER_TEMP_NAME = "cover_temp.jpg"
TIME_FORMAT = "%Y-%m-%d %H:%M"
DEFAULT_HOLD_SECONDS = 600

BANNER = """
╔═══════════════════════════════════════════════════╗
║   🤖 公众号文章自动发布工具 wechat-publisher       ║
╚═══════════════════════════════════════════════════╝
"""


def build_stats(
    markdown_text: str,
    completed_at: Optional[str] = None,
    duration: Optional[str] = None,
    cover_source: Optional[str] = None,
    notes: Optional[list[str]] = None,
) -> RenderStats:
    """组装文末 changelog 数据，没有值的字段不写入。"""
    stats: RenderStats = {"word_count": count_words(markdown_text)}
    if completed_at:
        stats["completed_at"] = completed_at
    if duration:
        stats["duration"] = duration
    if cover_source:
        stats["cover_source"] = cover_source
    if notes:
        stats["extra"] = list(notes)
    return stats


def load_article(md_path: Path, keep_title: bool = False) -> tuple[str, str]:
    """读取 Markdown，返回 (标题, 正文)。标题行默认从正文中去掉，微信有单独的标题栏。"""
    with open(md_path, "r", encoding="utf-8") as f:
        md_text = f.read()
    title, body = extract_title(md_text)
    if keep_title:
        body = md_text
    return title, body


def write_preview(markdown_text: str, out_path: Path, options: Optional[RenderOptions] = None) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(md2html(markdown_text, options))
    return out_path


def _read_markdown_arg(path_arg: str) -> Optional[Path]:
    md_path = Path(path_arg)
    if not md_path.exists():
        print(f"错误: 文件不存在: {md_path}", file=sys.stderr)
        return None
    return md_path


# ============ render / count ============

def cmd_render(args: argparse.Namespace) -> int:
    """Markdown → 预览 HTML"""
    md_path = _read_markdown_arg(args.md_file)
    if md_path is None:
        return 1

    title, body = load_article(md_path, keep_title=args.keep_title)
    options: RenderOptions = {}
    if args.cover:
        options["cover_image_path"] = args.cover
    if not args.no_stats:
        options["stats"] = build_stats(
            body,
            completed_at=datetime.now().strftime(TIME_FORMAT),
            duration=args.duration,
            cover_source=args.cover_source,
            notes=args.note,
        )

    out_path = Path(args.output) if args.output else md_path.with_name(PREVIEW_NAME)
    write_preview(body, out_path, options)

    print(f"✅ 已保存: {out_path}")
    print(f"📝 标题: {title or '（无）'}")
    print(f"📏 字数: 约 {count_words(body)} 字")
    return 0


def cmd_count(args: argparse.Namespace) -> int:
    md_path = _read_markdown_arg(args.md_file)
    if md_path is None:
        return 1
    print(count_words(md_path.read_text(encoding="utf-8")))
    return 0


# ============ publish ============

def _prepare_cover_step(cfg: dict[str, Any], dest: Path) -> tuple[Optional[dict[str, Any]], Optional[str]]:
    """封面图 + 七牛云，失败都只降级，不中断发布。"""
    print(f"🖼️  Unsplash 配图（关键词：\"{cfg.get('unsplash_query')}\"）...")
    cover = prepare_cover(cfg, dest)
    if cover is None:
        print("   ⚠️  封面图失败（将跳过配图）\n", file=sys.stderr)
        return None, None
    print("   ✅ 图片已下载\n")

    if not qiniu_ready(cfg):
        print("   ⚠️  七牛云未配置，跳过上传\n", file=sys.stderr)
        return cover, None

    print("   ⬆️  上传七牛云...")
    try:
        cover_url = upload_bytes(cover["data"], "jpg", cfg["qiniu"])
    except QiniuUploadError as exc:
        print(f"   ⚠️  七牛云上传失败：{exc}\n", file=sys.stderr)
        return cover, None
    print(f"   ✅ {cover_url}\n")
    return cover, cover_url


def _print_summary(cover_url: Optional[str]) -> None:
    print("═══════════════════════════════════════════════════")
    print("  ✅ 全部自动步骤完成！")
    print("")
    print("  请在浏览器中：")
    print("    1. 检查标题、正文、封面图")
    print("    2. 填写摘要（选填）")
    print("    3. 点击「保存草稿」或「群发」")
    if cover_url:
        print(f"\n  封面图永久链接: {cover_url}")
    print("\n  按 Ctrl+C 关闭脚本")
    print("═══════════════════════════════════════════════════")


def drive_editor(
    browser,
    auth_state: Path,
    title: str,
    preview_path: Path,
    cover_path: Optional[Path],
    cover_url: Optional[str],
    hold_seconds: int,
) -> int:
    """登录后在编辑器里完成标题、正文、封面三步。"""
    context, page = mp_browser.login(browser, auth_state)

    token = mp_browser.extract_token(page)
    if not token:
        print("❌ 无法获取 token", file=sys.stderr)
        return 1
    print(f"🔑 Token: {token[:6]}***\n")

    print("📋 复制文章到剪贴板...")
    try:
        mp_browser.copy_article(context, preview_path, ARTICLE_CONTAINER_ID)
    except mp_browser.BrowserStepError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    print("   ✅ 已复制\n")

    print("📝 打开图文编辑器...")
    mp_browser.open_editor(page, token)

    if mp_browser.fill_title(page, title):
        print("✅ 标题已填入\n")
    else:
        print("   ⚠️  未找到标题输入框，请手动填写标题\n", file=sys.stderr)
    page.wait_for_timeout(1000)

    print("📝 粘贴正文...")
    if mp_browser.paste_body(page):
        print("   ✅ 正文已粘贴\n")
    else:
        print("   ⚠️  未找到正文编辑区，请手动粘贴（内容已在剪贴板）\n", file=sys.stderr)

    if cover_path and cover_path.exists():
        print("🖼️  上传封面图...")
        try:
            if mp_browser.upload_cover(page, cover_path):
                print("   ✅ 封面已上传\n")
            else:
                print("   ⚠️  未找到封面上传入口，请手动上传封面\n", file=sys.stderr)
        except PlaywrightError as exc:
            print(f"   ⚠️  封面上传出错：{exc}\n", file=sys.stderr)

    _print_summary(cover_url)
    mp_browser.hold_for_review(page, hold_seconds)
    return 0


def cmd_publish(args: argparse.Namespace) -> int:
    """完整发布流程"""
    print(BANNER)

    md_path = _read_markdown_arg(args.md_file)
    if md_path is None:
        return 1

    try:
        cfg = load_config(args.config)
    except (ValueError, OSError) as exc:
        print(f"错误: {exc}", file=sys.stderr)
        return 1

    extracted_title, body = load_article(md_path, keep_title=args.keep_title)
    title = args.title or extracted_title
    if not title:
        print("错误: 需要提供 --title，或在 Markdown 开头写 `# 标题`", file=sys.stderr)
        return 1

    cover_path = md_path.parent / COVER_TEMP_NAME
    cover, cover_url = (None, None)
    try:
        if not args.no_cover:
            cover, cover_url = _prepare_cover_step(cfg, cover_path)

        options: RenderOptions = {
            "stats": build_stats(
                body,
                completed_at=datetime.now().strftime(TIME_FORMAT),
                duration=args.duration,
                cover_source=cover["source"] if cover else None,
                notes=args.note,
            ),
        }
        if args.embed_cover and cover:
            options["cover_image_path"] = cover_url or cover["path"].resolve().as_uri()

        preview_path = write_preview(body, md_path.with_name(PREVIEW_NAME), options)
        print(f"📄 预览已生成: {preview_path}\n")

        try:
            with sync_playwright() as playwright:
                browser = mp_browser.launch(playwright)
                try:
                    return drive_editor(
                        browser,
                        resolve_path(cfg, "auth_state"),
                        title,
                        preview_path,
                        cover["path"] if cover else None,
                        cover_url,
                        args.hold,
                    )
                finally:
                    browser.close()
        except PlaywrightError as exc:
            print(f"❌ 浏览器操作失败: {exc}", file=sys.stderr)
            return 1
    finally:
        # 只清理本次下载的封面，同名的已有文件不动
        if cover and cover["path"].exists():
            cover["path"].unlink()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="公众号文章自动发布工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="可用命令")

    def add_stats_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--duration", help="撰写耗时，例如 \"2 小时\"")
        sub.add_argument("--note", action="append", default=[], help="changelog 额外行（可重复，按 HTML 原样插入）")
        sub.add_argument("--keep-title", action="store_true", help="正文保留 `# 标题` 行")

    parser_render = subparsers.add_parser("render", help="Markdown 转换为预览 HTML")
    parser_render.add_argument("md_file", help="Markdown 文件路径")
    parser_render.add_argument("-o", "--output", help=f"输出 HTML 路径（默认同目录 {PREVIEW_NAME}）")
    parser_render.add_argument("--cover", help="正文前插入的封面图路径/URL")
    parser_render.add_argument("--cover-source", help="封面来源说明")
    parser_render.add_argument("--no-stats", action="store_true", help="不生成文末 changelog")
    add_stats_args(parser_render)
    parser_render.set_defaults(func=cmd_render)

    parser_count = subparsers.add_parser("count", help="统计大致字数")
    parser_count.add_argument("md_file", help="Markdown 文件路径")
    parser_count.set_defaults(func=cmd_count)

    parser_publish = subparsers.add_parser("publish", help="完整发布流程（打开浏览器）")
    parser_publish.add_argument("md_file", help="Markdown 文件路径")
    parser_publish.add_argument("--title", help="文章标题（默认取 `# 标题` 行）")
    parser_publish.add_argument("--config", help="config.yaml 路径")
    parser_publish.add_argument("--no-cover", action="store_true", help="跳过 Unsplash 封面图")
    parser_publish.add_argument("--embed-cover", action="store_true", help="封面图同时插入正文开头")
    parser_publish.add_argument("--hold", type=int, default=DEFAULT_HOLD_SECONDS, help="完成后保持浏览器打开的秒数")
    add_stats_args(parser_publish)
    parser_publish.set_defaults(func=cmd_publish)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n已中断", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
