"""WL 环境变量配置管理。

环境变量:
    WL_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件，级别 DEBUG)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    WL_LOG_LEVEL: worker_link 命名空间的日志级别
        - DEBUG / INFO / WARNING / ERROR
        - 默认 INFO，无效值回退到 INFO

    WL_DRAIN_CHUNK_SIZE: 诊断流每次读取的字节数
        - 默认 4096
        - 限制在 1 ~ 1048576 范围

    WL_STDIN_ENCODING: 写入 worker stdin 时使用的编码
        - 默认为平台首选编码
        - 无法识别的编码名回退到默认值
"""

from __future__ import annotations

import codecs
import locale
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_CHUNK_SIZE = 4096
MAX_CHUNK_SIZE = 1024 * 1024

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def _default_stdin_encoding() -> str:
    """平台首选编码（对应 worker 侧的默认编码）。"""
    return locale.getpreferredencoding(False) or "utf-8"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_log_level(value: str | None) -> int:
    """解析日志级别环境变量，无效值返回 INFO。"""
    if not value:
        return logging.INFO
    return _LOG_LEVELS.get(value.strip().upper(), logging.INFO)


def _parse_chunk_size(value: str | None) -> int:
    """解析读取块大小环境变量。"""
    if not value:
        return DEFAULT_CHUNK_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_CHUNK_SIZE
    return max(1, min(size, MAX_CHUNK_SIZE))


def _parse_encoding(value: str | None) -> str:
    """解析编码名，无法识别或不是文本编码（如 base64）时回退到平台默认编码。"""
    if not value or not value.strip():
        return _default_stdin_encoding()
    try:
        name = codecs.lookup(value.strip()).name
        "".encode(name)
    except LookupError:
        return _default_stdin_encoding()
    return name


@dataclass
class Config:
    """WL 配置。

    Attributes:
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        log_level: worker_link 命名空间的日志级别
        drain_chunk_size: 诊断流单次读取字节数
        stdin_encoding: worker stdin 的文本编码
    """

    log_debug: bool = False
    log_file: str | None = None
    log_level: int = logging.INFO
    drain_chunk_size: int = DEFAULT_CHUNK_SIZE
    stdin_encoding: str = field(default_factory=_default_stdin_encoding)

    def __repr__(self) -> str:
        return (
            f"Config(log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"log_level={logging.getLevelName(self.log_level)}, "
            f"drain_chunk_size={self.drain_chunk_size}, "
            f"stdin_encoding={self.stdin_encoding})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "worker-link"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"wl_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("WL_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        log_debug=log_debug,
        log_file=log_file,
        log_level=logging.DEBUG if log_debug else _parse_log_level(os.environ.get("WL_LOG_LEVEL")),
        drain_chunk_size=_parse_chunk_size(os.environ.get("WL_DRAIN_CHUNK_SIZE")),
        stdin_encoding=_parse_encoding(os.environ.get("WL_STDIN_ENCODING")),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
