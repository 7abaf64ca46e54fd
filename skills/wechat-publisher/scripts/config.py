#!/usr/bin/env python3
"""
发布工具配置：config.yaml + 环境变量覆盖

config.yaml 示例见 config.example.yaml。密钥更推荐放环境变量：
    UNSPLASH_ACCESS_KEY, UNSPLASH_QUERY
    QINIU_ACCESS_KEY, QINIU_SECRET_KEY, QINIU_BUCKET, QINIU_DOMAIN, QINIU_REGION
    WECHAT_AUTH_STATE
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml

SKILL_DIR = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = SKILL_DIR / "config.yaml"
DEFAULT_AUTH_STATE = SKILL_DIR / "auth.json"
DEFAULT_UNSPLASH_QUERY = "productivity workspace minimal"

ENV_OVERRIDES = {
    "UNSPLASH_ACCESS_KEY": ("unsplash_access_key",),
    "UNSPLASH_QUERY": ("unsplash_query",),
    "QINIU_ACCESS_KEY": ("qiniu", "access_key"),
    "QINIU_SECRET_KEY": ("qiniu", "secret_key"),
    "QINIU_BUCKET": ("qiniu", "bucket"),
    "QINIU_DOMAIN": ("qiniu", "domain"),
    "QINIU_REGION": ("qiniu", "region"),
    "WECHAT_AUTH_STATE": ("auth_state",),
}


def _defaults() -> dict[str, Any]:
    return {
        "unsplash_access_key": "",
        "unsplash_query": DEFAULT_UNSPLASH_QUERY,
        "qiniu": {
            "access_key": "",
            "secret_key": "",
            "bucket": "",
            "domain": "",
            "region": "z0",
        },
        "auth_state": str(DEFAULT_AUTH_STATE),
        "workdir": str(SKILL_DIR),
    }


def load_config(path: Optional[Path] = None, environ: Optional[dict] = None) -> dict[str, Any]:
    """
    读取配置（文件可选），再用环境变量覆盖

    Args:
        path: config.yaml 路径，默认 skill 目录下的 config.yaml
        environ: 环境变量字典，默认 os.environ

    Returns:
        合并后的配置 dict
    """
    config = _defaults()
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"配置文件格式错误（应为 YAML 映射）: {config_path}")
        qiniu = data.pop("qiniu", None) or {}
        if not isinstance(qiniu, dict):
            raise ValueError(f"配置项 qiniu 应为映射: {config_path}")
        config.update({k: v for k, v in data.items() if v is not None})
        config["qiniu"].update({k: v for k, v in qiniu.items() if v is not None})

    for env_name, keys in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        target = config
        for key in keys[:-1]:
            target = target[key]
        target[keys[-1]] = value

    return config


def unsplash_ready(config: dict[str, Any]) -> bool:
    return bool(config.get("unsplash_access_key"))


def qiniu_ready(config: dict[str, Any]) -> bool:
    qiniu = config.get("qiniu") or {}
    return all(qiniu.get(k) for k in ("access_key", "secret_key", "bucket", "domain"))


def resolve_path(config: dict[str, Any], key: str) -> Path:
    """相对路径按 skill 目录解析。"""
    path = Path(os.path.expanduser(str(config[key])))
    if not path.is_absolute():
        path = SKILL_DIR / path
    return path
