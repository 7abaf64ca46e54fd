#!/usr/bin/env python3
"""
封面图：Unsplash 随机图 → 裁剪到公众号封面比例 → 本地文件

Usage:
    python cover.py "productivity workspace" -o cover.jpg
"""

from __future__ import annotations

import argparse
import io
import json
import sys
from pathlib import Path
from typing import Any, Optional

import requests
from PIL import Image, ImageOps

SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from config import load_config, unsplash_ready

UNSPLASH_RANDOM_URL = "https://api.unsplash.com/photos/random"
REQUEST_TIMEOUT = 15

# 公众号推荐封面尺寸 900×383（2.35:1）
COVER_W = 900
COVER_H = 383
JPEG_QUALITY = 90


def fetch_random_photo(
    query: str,
    access_key: str,
    session: Optional[requests.Session] = None,
) -> dict[str, Any] | None:
    """随机取一张横版图片，失败返回 None。"""
    http = session or requests
    try:
        resp = http.get(
            UNSPLASH_RANDOM_URL,
            params={"query": query, "orientation": "landscape", "content_filter": "high"},
            headers={"Authorization": f"Client-ID {access_key}", "Accept-Version": "v1"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as exc:
        print(f"warning: Unsplash request failed: {exc}", file=sys.stderr)
        return None

    if resp.status_code >= 400:
        print(f"warning: Unsplash HTTP {resp.status_code}", file=sys.stderr)
        return None

    try:
        data = resp.json()
    except ValueError:
        print("warning: invalid JSON response from Unsplash", file=sys.stderr)
        return None

    urls = data.get("urls") if isinstance(data, dict) else None
    if not isinstance(urls, dict) or not urls.get("regular"):
        print("warning: Unsplash response has no image url", file=sys.stderr)
        return None

    user = data.get("user") or {}
    return {
        "id": str(data.get("id") or ""),
        "url": urls["regular"],
        "photographer": user.get("name") or "Unsplash",
        "profile": (user.get("links") or {}).get("html", ""),
    }


def download_image(url: str, session: Optional[requests.Session] = None) -> bytes | None:
    http = session or requests
    try:
        resp = http.get(url, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        print(f"warning: image download failed: {exc}", file=sys.stderr)
        return None
    if resp.status_code >= 400:
        print(f"warning: image download HTTP {resp.status_code}", file=sys.stderr)
        return None
    return resp.content


def fit_cover(data: bytes, width: int = COVER_W, height: int = COVER_H) -> bytes:
    """居中裁剪并缩放到封面尺寸，输出 JPEG。"""
    with Image.open(io.BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img).convert("RGB")
        fitted = ImageOps.fit(img, (width, height), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
    out = io.BytesIO()
    fitted.save(out, "JPEG", quality=JPEG_QUALITY)
    return out.getvalue()


def prepare_cover(
    config: dict[str, Any],
    dest: Path,
    crop: bool = True,
    session: Optional[requests.Session] = None,
) -> dict[str, Any] | None:
    """
    准备封面图，任一步失败都返回 None（调用方跳过配图即可）

    Returns:
        {"path", "photographer", "source", "data"}
    """
    if not unsplash_ready(config):
        print("warning: unsplash_access_key 未配置，跳过封面图", file=sys.stderr)
        return None

    query = config.get("unsplash_query") or ""
    photo = fetch_random_photo(query, config["unsplash_access_key"], session=session)
    if photo is None:
        return None
    print(f"   摄影师：{photo['photographer']}")

    data = download_image(photo["url"], session=session)
    if data is None:
        return None

    if crop:
        try:
            data = fit_cover(data)
        except OSError as exc:
            # 裁剪失败就用原图
            print(f"warning: 封面裁剪失败，使用原图: {exc}", file=sys.stderr)

    dest = Path(dest)
    dest.write_bytes(data)

    return {
        "path": dest,
        "photographer": photo["photographer"],
        "source": f"Unsplash · {photo['photographer']}",
        "data": data,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="从 Unsplash 获取公众号封面图")
    parser.add_argument("query", nargs="?", help="搜索关键词（默认取配置）")
    parser.add_argument("-o", "--output", default="cover.jpg", help="输出路径 (默认: cover.jpg)")
    parser.add_argument("--config", help="config.yaml 路径")
    parser.add_argument("--no-crop", action="store_true", help="保留原图尺寸")
    args = parser.parse_args()

    cfg = load_config(args.config)
    if args.query:
        cfg["unsplash_query"] = args.query

    result = prepare_cover(cfg, Path(args.output), crop=not args.no_crop)
    if result is None:
        print("错误: 封面图获取失败", file=sys.stderr)
        return 1

    print(json.dumps(
        {"output": str(result["path"]), "source": result["source"]},
        ensure_ascii=False,
        indent=2,
    ))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
