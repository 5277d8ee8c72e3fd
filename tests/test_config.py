"""Config 模块测试。

测试 WL_* 环境变量解析和配置管理。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest import mock

import pytest

from worker_link.config import (
    DEFAULT_CHUNK_SIZE,
    MAX_CHUNK_SIZE,
    Config,
    get_config,
    load_config,
    reload_config,
)

WL_VARS = ("WL_LOG_DEBUG", "WL_LOG_LEVEL", "WL_DRAIN_CHUNK_SIZE", "WL_STDIN_ENCODING")


def clean_env() -> dict[str, str]:
    """去掉所有 WL_* 变量的环境。"""
    return {k: v for k, v in os.environ.items() if k not in WL_VARS}


class TestDefaults:
    """测试默认值。"""

    def test_defaults(self):
        """未设置任何变量。"""
        with mock.patch.dict(os.environ, clean_env(), clear=True):
            config = load_config()
            assert config.log_debug is False
            assert config.log_file is None
            assert config.log_level == logging.INFO
            assert config.drain_chunk_size == DEFAULT_CHUNK_SIZE
            assert config.stdin_encoding

    def test_dataclass_defaults(self):
        """直接构造。"""
        config = Config()
        assert config.drain_chunk_size == 4096
        assert config.log_level == logging.INFO


class TestLogDebug:
    """测试 WL_LOG_DEBUG。"""

    @pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "on"])
    def test_truthy_values(self, value: str):
        """真值：启用文件日志和 DEBUG 级别。"""
        with mock.patch.dict(os.environ, {"WL_LOG_DEBUG": value}, clear=False):
            config = load_config()
            assert config.log_debug is True
            assert config.log_level == logging.DEBUG
            assert config.log_file is not None

    @pytest.mark.parametrize("value", ["false", "0", "no", "off", ""])
    def test_falsy_values(self, value: str):
        """假值。"""
        with mock.patch.dict(os.environ, {"WL_LOG_DEBUG": value}, clear=False):
            config = load_config()
            assert config.log_debug is False
            assert config.log_file is None

    def test_log_file_location(self):
        """日志文件位于临时目录下的 worker-link 子目录。"""
        with mock.patch.dict(os.environ, {"WL_LOG_DEBUG": "1"}, clear=False):
            path = Path(load_config().log_file)
            assert path.parent.name == "worker-link"
            assert path.parent.is_dir()
            assert path.name.startswith("wl_debug_")
            assert path.suffix == ".log"

    def test_debug_overrides_level(self):
        """调试模式下忽略 WL_LOG_LEVEL。"""
        with mock.patch.dict(
            os.environ, {"WL_LOG_DEBUG": "true", "WL_LOG_LEVEL": "ERROR"}, clear=False
        ):
            assert load_config().log_level == logging.DEBUG


class TestLogLevel:
    """测试 WL_LOG_LEVEL。"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("DEBUG", logging.DEBUG),
            ("info", logging.INFO),
            (" Warning ", logging.WARNING),
            ("ERROR", logging.ERROR),
        ],
    )
    def test_valid_levels(self, value: str, expected: int):
        env = {**clean_env(), "WL_LOG_LEVEL": value}
        with mock.patch.dict(os.environ, env, clear=True):
            assert load_config().log_level == expected

    @pytest.mark.parametrize("value", ["", "verbose", "10"])
    def test_invalid_falls_back_to_info(self, value: str):
        env = {**clean_env(), "WL_LOG_LEVEL": value}
        with mock.patch.dict(os.environ, env, clear=True):
            assert load_config().log_level == logging.INFO


class TestDrainChunkSize:
    """测试 WL_DRAIN_CHUNK_SIZE。"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1024", 1024),
            ("1", 1),
            ("0", 1),
            ("-5", 1),
            (str(MAX_CHUNK_SIZE * 4), MAX_CHUNK_SIZE),
            ("abc", DEFAULT_CHUNK_SIZE),
            ("", DEFAULT_CHUNK_SIZE),
        ],
    )
    def test_parse_and_clamp(self, value: str, expected: int):
        with mock.patch.dict(os.environ, {"WL_DRAIN_CHUNK_SIZE": value}, clear=False):
            assert load_config().drain_chunk_size == expected


class TestStdinEncoding:
    """测试 WL_STDIN_ENCODING。"""

    def test_normalized_name(self):
        """编码名规范化为 codecs 名称。"""
        with mock.patch.dict(os.environ, {"WL_STDIN_ENCODING": "UTF-8"}, clear=False):
            assert load_config().stdin_encoding == "utf-8"

    def test_alias(self):
        with mock.patch.dict(os.environ, {"WL_STDIN_ENCODING": "latin-1"}, clear=False):
            assert load_config().stdin_encoding == "iso8859-1"

    def test_unknown_falls_back_to_default(self):
        """无法识别的编码回退到平台默认编码。"""
        with mock.patch.dict(os.environ, clean_env(), clear=True):
            default = load_config().stdin_encoding
        with mock.patch.dict(os.environ, {"WL_STDIN_ENCODING": "x-unknown"}, clear=False):
            assert load_config().stdin_encoding == default


    @pytest.mark.parametrize("value", ["base64", "zlib", "rot13"])
    def test_non_text_codec_falls_back_to_default(self, value: str):
        """codecs 能识别但不是文本编码时回退到平台默认编码。"""
        with mock.patch.dict(os.environ, clean_env(), clear=True):
            default = load_config().stdin_encoding
        with mock.patch.dict(os.environ, {"WL_STDIN_ENCODING": value}, clear=False):
            assert load_config().stdin_encoding == default


class TestConfigMethods:
    """测试 Config 类方法。"""

    def test_repr(self):
        """字符串表示。"""
        config = Config(log_level=logging.WARNING, drain_chunk_size=512, stdin_encoding="utf-8")
        repr_str = repr(config)
        assert "log_level=WARNING" in repr_str
        assert "drain_chunk_size=512" in repr_str
        assert "stdin_encoding=utf-8" in repr_str


class TestGlobalConfig:
    """测试全局配置实例。"""

    def test_get_config_returns_same_instance(self):
        """get_config 返回相同实例。"""
        reload_config()
        config1 = get_config()
        config2 = get_config()
        assert config1 is config2

    def test_reload_config_creates_new_instance(self):
        """reload_config 创建新实例。"""
        config1 = get_config()
        config2 = reload_config()
        assert config1 is not config2

    def test_reload_picks_up_environment(self):
        """reload 后读取新的环境变量。"""
        with mock.patch.dict(os.environ, {"WL_DRAIN_CHUNK_SIZE": "64"}, clear=False):
            assert reload_config().drain_chunk_size == 64
            assert get_config().drain_chunk_size == 64
        reload_config()
