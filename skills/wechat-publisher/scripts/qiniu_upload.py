#!/usr/bin/env python3
"""
七牛云表单上传（封面图永久链接）

Usage:
    python qiniu_upload.py cover.jpg
"""

import argparse
import base64
import hashlib
import hmac
import json
import sys
import time
from pathlib import Path
from typing import Any, Optional

import requests

SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from config import load_config, qiniu_ready

REQUEST_TIMEOUT = 30
DEFAULT_TTL = 3600

UPLOAD_HOSTS = {
    "z0": "https://upload.qiniup.com",
    "z1": "https://upload-z1.qiniup.com",
    "z2": "https://upload-z2.qiniup.com",
    "na0": "https://upload-na0.qiniup.com",
    "as0": "https://upload-as0.qiniup.com",
}


class QiniuUploadError(RuntimeError):
    """上传失败（网络、HTTP 状态或响应内容）。"""


def urlsafe_b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def upload_token(
    access_key: str,
    secret_key: str,
    bucket: str,
    now: Optional[float] = None,
    ttl: int = DEFAULT_TTL,
) -> str:
    """生成上传凭证：access_key:HMAC-SHA1签名:编码后的上传策略"""
    deadline = int(now if now is not None else time.time()) + ttl
    policy = json.dumps({"scope": bucket, "deadline": deadline}, separators=(",", ":"))
    encoded = urlsafe_b64(policy.encode("utf-8"))
    digest = hmac.new(secret_key.encode("utf-8"), encoded.encode("ascii"), hashlib.sha1).digest()
    return f"{access_key}:{urlsafe_b64(digest)}:{encoded}"


def upload_url(region: Optional[str]) -> str:
    return UPLOAD_HOSTS.get((region or "z0").lower(), UPLOAD_HOSTS["z0"])


def public_url(domain: str, key: str) -> str:
    domain = domain.rstrip("/")
    if not domain.startswith("http"):
        domain = "https://" + domain
    return f"{domain}/{key}"


def object_key(ext: str, now: Optional[float] = None) -> str:
    millis = int((now if now is not None else time.time()) * 1000)
    return f"wx_cover_{millis}.{ext.lstrip('.')}"


def upload_bytes(
    data: bytes,
    ext: str,
    qiniu: dict[str, Any],
    session: Optional[requests.Session] = None,
) -> str:
    """
    上传二进制内容到七牛云

    Args:
        data: 文件内容
        ext: 扩展名（jpg/png）
        qiniu: access_key / secret_key / bucket / domain / region
        session: 可注入的 requests.Session

    Returns:
        永久访问链接
    """
    http = session or requests
    token = upload_token(qiniu["access_key"], qiniu["secret_key"], qiniu["bucket"])
    key = object_key(ext)

    try:
        resp = http.post(
            upload_url(qiniu.get("region")),
            data={"token": token, "key": key},
            files={"file": (key, data, "application/octet-stream")},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise QiniuUploadError(f"请求失败: {exc}") from exc

    if resp.status_code >= 400:
        err_text = resp.text.strip().replace("\n", " ")[:300]
        raise QiniuUploadError(f"HTTP {resp.status_code} - {err_text}")

    try:
        payload = resp.json()
    except ValueError as exc:
        raise QiniuUploadError("响应不是合法 JSON") from exc

    if not isinstance(payload, dict) or not payload.get("key"):
        raise QiniuUploadError(f"响应缺少 key: {payload}")

    return public_url(qiniu["domain"], payload["key"])


def upload_file(path: Path, qiniu: dict[str, Any], session: Optional[requests.Session] = None) -> str:
    ext = path.suffix.lstrip(".") or "jpg"
    return upload_bytes(path.read_bytes(), ext, qiniu, session=session)


def main() -> int:
    parser = argparse.ArgumentParser(description="上传图片到七牛云")
    parser.add_argument("image_path", help="图片文件路径")
    parser.add_argument("--config", help="config.yaml 路径")
    args = parser.parse_args()

    image_path = Path(args.image_path)
    if not image_path.exists():
        print(f"错误: 文件不存在: {image_path}", file=sys.stderr)
        return 1

    cfg = load_config(args.config)
    if not qiniu_ready(cfg):
        print("错误: 七牛云配置不完整（access_key / secret_key / bucket / domain）", file=sys.stderr)
        return 1

    try:
        url = upload_file(image_path, cfg["qiniu"])
    except QiniuUploadError as exc:
        print(f"错误: 七牛云上传失败: {exc}", file=sys.stderr)
        return 1

    print(url)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
