# search_engine_lib/core/config.py
"""凭据配置的加载。

配置文件是一个 key=value 的属性文件（也接受 YAML），文件缺失时所有凭据都取占位值
`UNKNOWN`。加载阶段不做任何有效性检查，检查由各引擎的 `check_config` 完成。
"""

import re
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict

from .constants import CONFIG_FILE, UNKNOWN
from .logger import logger


class _FrozenSettings(BaseModel):
    model_config = ConfigDict(frozen=True)


class GoogleSettings(_FrozenSettings):
    api_key: str = UNKNOWN
    cse_id: str = UNKNOWN


class BingSettings(_FrozenSettings):
    account_key: str = UNKNOWN


class FarooSettings(_FrozenSettings):
    api_key: str = UNKNOWN


class TwitterSettings(_FrozenSettings):
    consumer_key: str = UNKNOWN
    consumer_secret: str = UNKNOWN
    access_token: str = UNKNOWN
    access_token_secret: str = UNKNOWN
    bearer_token: str = UNKNOWN


class Settings(_FrozenSettings):
    """所有搜索引擎的凭据，进程生命周期内只加载一次。"""

    google: GoogleSettings = GoogleSettings()
    bing: BingSettings = BingSettings()
    faroo: FarooSettings = FarooSettings()
    twitter: TwitterSettings = TwitterSettings()


# 配置文件中的键 -> (引擎, 字段)
PROPERTY_KEYS: Dict[str, Tuple[str, str]] = {
    "google.apiKey": ("google", "api_key"),
    "google.cseID": ("google", "cse_id"),
    "bing.accountKey": ("bing", "account_key"),
    "faroo.apiKey": ("faroo", "api_key"),
    "twitter.oauth.consumerKey": ("twitter", "consumer_key"),
    "twitter.oauth.consumerSecret": ("twitter", "consumer_secret"),
    "twitter.oauth.accessToken": ("twitter", "access_token"),
    "twitter.oauth.accessTokenSecret": ("twitter", "access_token_secret"),
    "twitter.bearerToken": ("twitter", "bearer_token"),
}


# 键在第一个 `=`、`:` 或空白处结束；空白之后还可以再跟一个 `=` 或 `:`
_PROPERTY_LINE = re.compile(r"(?P<key>[^=:\s]+)\s*[=:]?\s*(?P<value>.*)")


def _logical_lines(text: str) -> Iterator[str]:
    """合并以反斜杠结尾的续行，跳过空行和注释（`#` 或 `!` 开头）。"""
    buffer = ""
    for raw in text.splitlines():
        line = raw.lstrip()
        if not buffer and (not line or line[0] in "#!"):
            continue
        if line.endswith("\\") and not line.endswith("\\\\"):
            buffer += line[:-1]
            continue
        yield buffer + line
        buffer = ""
    if buffer:
        yield buffer


def read_properties(path: Path) -> Dict[str, str]:
    """读取属性文件，键区分大小写。无法识别的行只记录日志并跳过。"""
    text = path.read_text(encoding="utf-8")
    properties: Dict[str, str] = {}
    for line in _logical_lines(text):
        match = _PROPERTY_LINE.fullmatch(line)
        if match is None:
            logger.debug(f"[config] 跳过无法解析的配置行: {line[:80]!r}")
            continue
        properties[match.group("key")] = match.group("value").rstrip()
    return properties


def read_yaml(path: Path) -> Dict[str, str]:
    """读取 YAML 配置，嵌套的映射展开成以点分隔的键。"""
    with open(path, "r", encoding="utf-8") as file:
        data = yaml.safe_load(file) or {}
    if not isinstance(data, dict):
        raise ValueError(f"配置文件 {path} 的顶层必须是映射")

    flat: Dict[str, str] = {}

    def _walk(prefix: str, node: Any):
        if isinstance(node, dict):
            for key, value in node.items():
                _walk(f"{prefix}.{key}" if prefix else str(key), value)
        elif node is not None:
            flat[prefix] = str(node)

    _walk("", data)
    return flat


def settings_from_properties(properties: Dict[str, str]) -> Settings:
    sections: Dict[str, Dict[str, str]] = {
        "google": {},
        "bing": {},
        "faroo": {},
        "twitter": {},
    }
    for key, value in properties.items():
        target = PROPERTY_KEYS.get(key)
        if target is None:
            logger.debug(f"[config] 忽略未知配置项: {key}")
            continue
        section, field = target
        sections[section][field] = value.strip()
    return Settings.model_validate(sections)


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """从配置文件加载凭据；文件不存在时返回全部为 UNKNOWN 的配置。"""
    config_path = Path(path) if path is not None else Path.cwd() / CONFIG_FILE
    if not config_path.exists():
        logger.info(f"[config] 未找到配置文件 {config_path}，所有凭据使用 {UNKNOWN}")
        return Settings()

    if config_path.suffix.lower() in (".yaml", ".yml"):
        properties = read_yaml(config_path)
    else:
        properties = read_properties(config_path)

    logger.debug(f"[config] 已从 {config_path} 读取 {len(properties)} 个配置项")
    return settings_from_properties(properties)
