# -*- coding: utf-8 -*-
"""
多格式分镜解码：按固定顺序依次尝试 JSON、修复后 JSON、JSON5、换行拼接数组修复、YAML，
第一个得到结构化结果（dict / list）的策略胜出，全部失败返回 None，从不抛异常。
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import json5
import yaml

from storyboard_api.core.logging import logger
from storyboard_api.services.sanitizer import normalize_json_like, strip_code_fences

# 相邻对象之间缺逗号：}\n{ -> },\n{
_OBJECT_BOUNDARY = re.compile(r"}\s*[\r\n]+\s*{")


@dataclass(frozen=True)
class DecodeStrategy:
    name: str
    parse: Callable[[str, str], Any]


@dataclass(frozen=True)
class DecodeResult:
    strategy: str
    value: Any


def join_objects(text: str) -> str:
    """把换行相邻的多个对象包裹为数组并补逗号"""
    return "[" + _OBJECT_BOUNDARY.sub("},\n{", text) + "]"


DECODE_STRATEGIES: Sequence[DecodeStrategy] = (
    DecodeStrategy("json", lambda stripped, sanitized: json.loads(stripped)),
    DecodeStrategy("json_repaired", lambda stripped, sanitized: json.loads(sanitized)),
    DecodeStrategy("json5", lambda stripped, sanitized: json5.loads(stripped)),
    DecodeStrategy("json5_repaired", lambda stripped, sanitized: json5.loads(sanitized)),
    DecodeStrategy("joined_json", lambda stripped, sanitized: json.loads(join_objects(stripped))),
    DecodeStrategy("joined_json_repaired", lambda stripped, sanitized: json.loads(join_objects(sanitized))),
    DecodeStrategy("joined_json5", lambda stripped, sanitized: json5.loads(join_objects(sanitized))),
    DecodeStrategy("yaml", lambda stripped, sanitized: yaml.safe_load(stripped)),
)


def _is_structural(value: Any) -> bool:
    return isinstance(value, (dict, list))


def decode_with_strategy(text: str, strategies: Optional[Sequence[DecodeStrategy]] = None) -> Optional[DecodeResult]:
    stripped = strip_code_fences(text)
    if not stripped:
        return None
    sanitized = normalize_json_like(stripped)

    for strategy in (strategies if strategies is not None else DECODE_STRATEGIES):
        try:
            value = strategy.parse(stripped, sanitized)
        except Exception as e:
            logger.debug(f"解码策略 {strategy.name} 失败: {e}")
            continue
        if not _is_structural(value):
            logger.debug(f"解码策略 {strategy.name} 未得到结构化结果: {type(value).__name__}")
            continue
        logger.info(f"分镜文本解码成功，策略: {strategy.name}")
        return DecodeResult(strategy=strategy.name, value=value)

    logger.warning(f"所有解码策略均失败，文本片段: {stripped[:50]}...")
    return None


def decode(text: str) -> Any:
    result = decode_with_strategy(text)
    return result.value if result else None
