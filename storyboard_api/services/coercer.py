# -*- coding: utf-8 -*-
from typing import Any, List, Optional

# 常见容器字段，按顺序探测
CONTAINER_KEYS = ("segments", "shots")
# 单个分镜对象的标志字段
SHOT_MARKER_KEYS = ("prompt", "shot_number")


def coerce(value: Any) -> Optional[List[Any]]:
    """将任意解码结果尽量规范为分镜记录数组，无法识别返回 None"""
    if isinstance(value, list):
        return value
    if not isinstance(value, dict):
        return None

    for key in CONTAINER_KEYS:
        if isinstance(value.get(key), list):
            return value[key]

    # 对象字典形式：{"shot1": {...}, "shot2": {...}}
    values = list(value.values())
    if values and all(isinstance(v, dict) for v in values):
        return values

    if any(key in value for key in SHOT_MARKER_KEYS):
        return [value]
    return None
