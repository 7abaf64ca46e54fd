#!/usr/bin/env python3
"""
微信公众平台浏览器操作（Playwright）

登录（复用 storage state / 扫码）→ 取 token → 复制预览页 #article 到剪贴板
→ 打开图文编辑器 → 填标题 → 粘贴正文 → 上传封面
"""

from __future__ import annotations

import json
import re
import sys
from pathlib import Path
from typing import Optional

from playwright.sync_api import Browser, BrowserContext, Page
from playwright.sync_api import Error as PlaywrightError

MP_HOME = "https://mp.weixin.qq.com/"
EDITOR_URL = (
    "https://mp.weixin.qq.com/cgi-bin/appmsg"
    "?t=media/appmsg_edit&action=edit&type=77&token={token}&lang=zh_CN"
)
LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled"]
LOGIN_TIMEOUT_MS = 120_000

TITLE_SELECTORS = ["#title", 'textarea[placeholder*="标题"]', ".title_input textarea"]
BODY_SELECTORS = [
    '#edui1_iframeholder [contenteditable="true"]',
    '[contenteditable="true"]',
    ".edui-body-container",
]
COVER_INPUT_SELECTOR = 'input[type="file"][accept*="image"]'
CROP_CONFIRM_SELECTORS = [".btn_confirm", 'button:has-text("完成")', 'button:has-text("确定")']

_TOKEN_RE = re.compile(r"token=(\d+)")

# 依次从 URL、内联脚本、链接中找 token
EXTRACT_TOKEN_JS = r"""
() => {
    const m = window.location.href.match(/token=(\d+)/);
    if (m) return m[1];
    for (const s of document.querySelectorAll('script')) {
        const mt = (s.textContent || '').match(/token\s*[:=]\s*["']?(\d{5,})["']?/);
        if (mt) return mt[1];
    }
    for (const a of document.querySelectorAll('a[href*="token="]')) {
        const mt = a.href.match(/token=(\d+)/);
        if (mt) return mt[1];
    }
    return null;
}
"""

COPY_CONTAINER_JS = """
(containerId) => {
    const article = document.getElementById(containerId);
    if (!article) return false;
    const range = document.createRange();
    range.selectNodeContents(article);
    window.getSelection().removeAllRanges();
    window.getSelection().addRange(range);
    document.execCommand('copy');
    return true;
}
"""


class BrowserStepError(RuntimeError):
    """浏览器步骤无法继续（如缺少 token 或 #article 容器）。"""


def token_from_text(text: str) -> Optional[str]:
    match = _TOKEN_RE.search(text or "")
    return match.group(1) if match else None


def editor_url(token: str) -> str:
    return EDITOR_URL.format(token=token)


def launch(playwright, headless: bool = False) -> Browser:
    return playwright.chromium.launch(headless=headless, args=LAUNCH_ARGS)


def _open_home(context: BrowserContext) -> Page:
    page = context.new_page()
    page.goto(MP_HOME, wait_until="domcontentloaded")
    return page


def _scan_login(browser: Browser, auth_state: Path, timeout_ms: int) -> tuple[BrowserContext, Page]:
    context = browser.new_context()
    page = _open_home(context)
    page.wait_for_url(re.compile(r"token="), timeout=timeout_ms)
    auth_state.parent.mkdir(parents=True, exist_ok=True)
    auth_state.write_text(json.dumps(context.storage_state(), ensure_ascii=False), encoding="utf-8")
    return context, page


def login(browser: Browser, auth_state: Path, timeout_ms: int = LOGIN_TIMEOUT_MS) -> tuple[BrowserContext, Page]:
    """
    登录公众平台，优先复用已保存的登录状态

    Raises:
        playwright TimeoutError: 扫码超时
    """
    auth_state = Path(auth_state)
    if auth_state.exists():
        print("🔐 复用已保存的登录状态...")
        context = browser.new_context(storage_state=str(auth_state))
        page = _open_home(context)
        page.wait_for_timeout(3000)
        if token_from_text(page.url):
            print("   ✅ 登录有效\n")
            return context, page
        context.close()
        print("   登录过期，请扫码...")
    else:
        print("📱 请扫码登录公众平台...\n")

    context, page = _scan_login(browser, auth_state, timeout_ms)
    print("✅ 登录成功，状态已保存\n")
    return context, page


def extract_token(page: Page) -> Optional[str]:
    token = token_from_text(page.url)
    if token:
        return token
    return page.evaluate(EXTRACT_TOKEN_JS)


def copy_article(context: BrowserContext, html_path: Path, container_id: str = "article") -> None:
    """打开本地预览页，选中内容容器并复制到剪贴板。"""
    preview = context.new_page()
    try:
        preview.goto(Path(html_path).resolve().as_uri(), wait_until="load")
        preview.wait_for_timeout(1000)
        copied = preview.evaluate(COPY_CONTAINER_JS, container_id)
    finally:
        preview.close()
    if not copied:
        raise BrowserStepError(f"{html_path} 中未找到 #{container_id} 元素")


def open_editor(page: Page, token: str) -> None:
    page.goto(editor_url(token), wait_until="domcontentloaded")
    page.wait_for_timeout(4000)


def fill_title(page: Page, title: str) -> bool:
    for selector in TITLE_SELECTORS:
        el = page.query_selector(selector)
        if el:
            el.click()
            el.fill(title)
            return True
    return False


def paste_body(page: Page) -> bool:
    """清空编辑区后粘贴剪贴板内容。"""
    for selector in BODY_SELECTORS:
        el = page.query_selector(selector)
        if el:
            el.click()
            page.keyboard.press("Control+a")
            page.wait_for_timeout(200)
            page.keyboard.press("Delete")
            page.wait_for_timeout(200)
            page.keyboard.press("Control+v")
            page.wait_for_timeout(2000)
            return True
    return False


def upload_cover(page: Page, image_path: Path) -> bool:
    file_input = page.query_selector(COVER_INPUT_SELECTOR)
    if not file_input:
        return False
    file_input.set_input_files(str(image_path))
    page.wait_for_timeout(3000)
    # 裁剪确认框（如有）
    for selector in CROP_CONFIRM_SELECTORS:
        btn = page.query_selector(selector)
        if btn:
            btn.click()
            page.wait_for_timeout(1000)
            break
    return True


def hold_for_review(page: Page, seconds: int) -> None:
    """保持浏览器打开，等待人工检查；页面被关掉就提前结束。"""
    try:
        page.wait_for_timeout(seconds * 1000)
    except PlaywrightError as exc:
        print(f"warning: 浏览器已关闭: {exc}", file=sys.stderr)

