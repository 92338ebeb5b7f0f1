# -*- coding: utf-8 -*-
"""
分镜 CSV 解析（格式：分镜数,"分镜提示词"）。

引号块可以跨多行，块内的双引号按 CSV 约定写成 ""。块内容再按中文标签拆出结构化字段：
    角色：/ 表情：/ 动作：        主体
    [环境] [时间] [天气] [视角] [景别]   段落标题，取其后第一条非标题行
"""
import re
from typing import Dict, List, Optional

from storyboard_api.core.logging import logger
from storyboard_api.models.schemas import ShotPrompt, ShotSubject, StoryboardShot
from storyboard_api.services.normalizer import EMPTY_VALUE

# 行首 + 数字 + 逗号 + "块"；块内允许 "" 转义
_ROW = re.compile(r'(?:^|\n)\s*(\d+)\s*,\s*"((?:[^"]|"")*)"')
_NUMBERED_LINE = re.compile(r"^\s*(\d+)\s*[.、:：,]")
_CSV_ROW_START = re.compile(r'^\s*\d+\s*,\s*"')
_CSV_HEADER = re.compile(r"^\s*(?:分镜数?|shots?|shot_number)\s*,", re.IGNORECASE)

SUBJECT_LABELS: Dict[str, str] = {
    "characters_present": "角色",
    "expression": "表情",
    "action": "动作",
}

SECTION_HEADERS: Dict[str, str] = {
    "environment": "[环境]",
    "time_of_day": "[时间]",
    "weather": "[天气]",
    "camera_angle": "[视角]",
    "shot_size": "[景别]",
}


def _clean(value: Optional[str]) -> Optional[str]:
    # “无” 是渲染时的占位，读回时视为缺失
    if value is None:
        return None
    value = value.strip()
    if not value or value == EMPTY_VALUE:
        return None
    return value


def parse_prompt_block(block: str) -> Optional[ShotPrompt]:
    """解析 CSV 中的中文标签提示块为结构化提示词，没有任何字段时返回 None"""
    lines = [line.strip() for line in (block or "").replace("\r\n", "\n").split("\n")]
    lines = [line for line in lines if line]

    def take_after_label(label: str) -> Optional[str]:
        for line in lines:
            for sep in ("：", ":"):
                if line.startswith(label + sep):
                    return _clean(line[len(label) + 1:])
        return None

    def value_after_section(section: str) -> Optional[str]:
        try:
            idx = lines.index(section)
        except ValueError:
            return None
        if idx + 1 < len(lines) and not lines[idx + 1].startswith("["):
            return _clean(lines[idx + 1])
        return None

    subject_fields = {name: take_after_label(label) for name, label in SUBJECT_LABELS.items()}
    section_fields = {name: value_after_section(header) for name, header in SECTION_HEADERS.items()}

    subject = ShotSubject(**subject_fields) if any(subject_fields.values()) else None
    if subject is None and not any(section_fields.values()):
        return None
    return ShotPrompt(subject=subject, **section_fields)


def parse_storyboard_csv(csv_text: str) -> List[StoryboardShot]:
    text = (csv_text or "").strip()
    if not text:
        return []

    shots: List[StoryboardShot] = []
    for idx, match in enumerate(_ROW.finditer(text)):
        shot_number = int(match.group(1)) or idx + 1
        block = match.group(2).replace('""', '"').strip()
        shots.append(StoryboardShot(
            id=f"shot-{shot_number}-{idx}",
            shot_number=shot_number,
            prompt=parse_prompt_block(block),
            # 保留原始块文本
            prompt_text=block or f"Shot {shot_number}",
        ))

    if shots:
        logger.info(f"CSV 解析完成，共 {len(shots)} 个分镜")
    else:
        logger.warning("CSV 未匹配到任何分镜行")
    return shots


def parse_prompt_lines(text: str) -> List[StoryboardShot]:
    """解析纯文本分镜行（每行一条，形如 “1. 平视中景, ...”）"""
    shots: List[StoryboardShot] = []
    for line in (text or "").replace("\r\n", "\n").split("\n"):
        if not line.strip():
            continue
        idx = len(shots)
        match = _NUMBERED_LINE.match(line)
        shot_number = int(match.group(1)) if match and int(match.group(1)) > 0 else idx + 1
        content = line[match.end():].strip() if match else line.strip()
        content = content.strip('"') or f"Shot {shot_number}"
        shots.append(StoryboardShot(
            id=f"shot-{shot_number}-{idx}",
            shot_number=shot_number,
            prompt_text=content,
        ))
    return shots


def looks_like_csv(text: str) -> bool:
    """首条数据行形如 1,"...（允许带 “分镜数,分镜提示词” 表头）"""
    lines = [line for line in (text or "").strip().splitlines() if line.strip()]
    if lines and _CSV_HEADER.match(lines[0]):
        lines = lines[1:]
    return bool(lines) and bool(_CSV_ROW_START.match(lines[0]))
