# -*- coding: utf-8 -*-
"""
分镜字段规范化：把英文/中文等各种键名的原始分镜记录映射到统一的 StoryboardShot 结构。

同义词表以数据形式给出（规范字段 -> 按优先级排列的来源键），解析时按表顺序探测，
第一个去除首尾空白后非空的字符串胜出，与输入对象的键顺序无关。
"""
import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from storyboard_api.core.logging import logger
from storyboard_api.models.schemas import ShotPrompt, ShotSubject, StoryboardShot

# 原始记录中承载提示词的字段
PROMPT_KEYS = (
    "prompt",
    "prompt_detail",
    "promptDetail",
    "promptDetails",
    "prompt_json",
    "promptJson",
    "prompt_text",
    "promptText",
)

# 提示词对象中承载主体的字段
SUBJECT_KEYS = (
    "subject",
    "Subject",
    "subject_detail",
    "subjectDetail",
    "主体",
    "人物",
    "角色",
    "主角",
    "对象",
    "被摄体",
    "被摄主体",
)

SUBJECT_FIELD_SYNONYMS: Dict[str, Sequence[str]] = {
    "characters_present": (
        "characters_present",
        "charactersPresent",
        "characters",
        "roles",
        "cast",
        "角色",
        "人物",
        "人物角色",
        "出场角色",
        "角色出现",
        "角色名",
    ),
    "expression": (
        "expression",
        "facial_expression",
        "mood",
        "emotion",
        "表情",
        "神情",
        "情绪",
        "心情",
    ),
    "action": (
        "action",
        "pose",
        "movement",
        "动作",
        "行为",
        "姿势",
        "举止",
        "动作描述",
    ),
}

PROMPT_FIELD_SYNONYMS: Dict[str, Sequence[str]] = {
    "environment": ("environment", "Environment", "setting", "location", "环境", "场景", "背景", "地点", "位置"),
    "time_of_day": ("time_of_day", "timeOfDay", "time", "day_part", "dayTime", "时间", "时段", "一天中的时间"),
    "weather": ("weather", "Weather", "conditions", "climate", "天气", "气候"),
    "camera_angle": ("camera_angle", "cameraAngle", "angle", "shot_angle", "机位", "镜头角度", "拍摄角度", "视角"),
    "shot_size": ("shot_size", "shotSize", "framing", "frame", "景别", "镜头远近", "画面大小"),
}

EMPTY_VALUE = "无"

_LEADING_ORDER = re.compile(r"^\s*\d+[.、:：]\s*")


def sanitize_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def pick_first_string(sources: Iterable[Mapping[str, Any]], keys: Sequence[str]) -> Optional[str]:
    for source in sources:
        if not isinstance(source, Mapping):
            continue
        for key in keys:
            candidate = sanitize_string(source.get(key))
            if candidate:
                return candidate
    return None


def _first_present(source: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def normalize_subject(subject_value: Any, fallback_source: Mapping[str, Any]) -> Optional[ShotSubject]:
    sources: List[Mapping[str, Any]] = []
    if isinstance(subject_value, Mapping):
        sources.append(subject_value)
    sources.append(fallback_source)

    fields = {
        name: pick_first_string(sources, keys)
        for name, keys in SUBJECT_FIELD_SYNONYMS.items()
    }
    if not any(fields.values()):
        return None
    return ShotSubject(**fields)


def normalize_prompt_value(raw: Any) -> Optional[ShotPrompt]:
    """结构化提示词规范化；字符串会先按 JSON 解码（支持双重编码）"""
    if raw is None:
        return None

    if isinstance(raw, str):
        trimmed = raw.strip()
        if not trimmed:
            return None
        try:
            return normalize_prompt_value(json.loads(trimmed))
        except (ValueError, RecursionError):
            # 过深的嵌套同样视为无法解析
            return None

    if not isinstance(raw, Mapping):
        return None

    subject = normalize_subject(_first_present(raw, SUBJECT_KEYS), raw)
    fields = {
        name: pick_first_string([raw], keys)
        for name, keys in PROMPT_FIELD_SYNONYMS.items()
    }
    if subject is None and not any(fields.values()):
        return None
    return ShotPrompt(subject=subject, **fields)


def format_prompt_chinese(prompt: Optional[ShotPrompt]) -> str:
    """将结构化提示词格式化为中文分段文本，缺失字段一律写“无”"""
    prompt = prompt or ShotPrompt()
    subject = prompt.subject or ShotSubject()

    def _v(value: Optional[str]) -> str:
        return (value or "").strip() or EMPTY_VALUE

    return (
        f"[主体]\n"
        f"角色：{_v(subject.characters_present)}\n"
        f"表情：{_v(subject.expression)}\n"
        f"动作：{_v(subject.action)}\n"
        f"[环境]\n{_v(prompt.environment)}\n"
        f"[时间]\n{_v(prompt.time_of_day)}\n"
        f"[天气]\n{_v(prompt.weather)}\n"
        f"[视角]\n{_v(prompt.camera_angle)}\n"
        f"[景别]\n{_v(prompt.shot_size)}"
    )


def resolve_prompt_text(prompt: Optional[ShotPrompt], raw_prompt: Any, shot_number: Optional[int] = None) -> str:
    # 优先使用原始字符串
    raw_text = sanitize_string(raw_prompt)
    if raw_text:
        return raw_text
    if prompt is not None:
        return format_prompt_chinese(prompt)
    if isinstance(shot_number, int):
        return f"Shot {shot_number}"
    return "Prompt unavailable"


def _shot_number(record: Mapping[str, Any], index: int) -> int:
    value = record.get("shot_number")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return index + 1
    if isinstance(value, float) and not value.is_integer():
        return index + 1
    if value < 1:
        return index + 1
    return int(value)


def normalize_record(record: Any, index: int) -> StoryboardShot:
    if isinstance(record, str):
        # 纯字符串条目视为原始提示词
        record = {"prompt": record}
    elif not isinstance(record, Mapping):
        record = {}

    shot_number = _shot_number(record, index)
    raw_prompt = _first_present(record, PROMPT_KEYS)
    if raw_prompt is None:
        # 没有提示词字段时，把记录本身当作扁平的提示词对象
        prompt = normalize_prompt_value(record)
    else:
        prompt = normalize_prompt_value(raw_prompt)

    record_id = record.get("id")
    shot_id = str(record_id) if record_id not in (None, "") else f"shot-{shot_number}-{index}"

    return StoryboardShot(
        id=shot_id,
        shot_number=shot_number,
        prompt=prompt,
        prompt_text=resolve_prompt_text(prompt, raw_prompt, shot_number),
    )


def normalize_records(records: Sequence[Any]) -> List[StoryboardShot]:
    """批量规范化；同一次解析内 id 保持唯一"""
    shots: List[StoryboardShot] = []
    seen = set()
    for index, record in enumerate(records):
        shot = normalize_record(record, index)
        if shot.id in seen:
            new_id = f"{shot.id}-{index}"
            while new_id in seen:
                new_id += f"-{index}"
            logger.warning(f"分镜 id 重复: {shot.id}，改为 {new_id}")
            shot = shot.model_copy(update={"id": new_id})
        seen.add(shot.id)
        shots.append(shot)
    return shots


def stringify_prompt_details(prompt: Optional[ShotPrompt]) -> str:
    if prompt is None:
        return ""
    return json.dumps({"prompt": prompt.model_dump(exclude_none=True)}, ensure_ascii=False, indent=2)


def format_prompt_for_model(shot: StoryboardShot) -> str:
    """生成服务使用的提示词：纯文本优先，其次结构化 JSON，最后基础信息"""
    if shot.prompt_text and shot.prompt_text.strip():
        return shot.prompt_text.strip()
    if shot.prompt is not None:
        return stringify_prompt_details(shot.prompt)
    return f"Shot {shot.shot_number}"


def extract_action_value(action: Optional[str]) -> Optional[str]:
    """取动作描述中第一个冒号之后的内容，如 “主角: 挥手” -> “挥手”"""
    if not isinstance(action, str):
        return None
    trimmed = action.strip()
    if not trimmed:
        return None
    _, sep, tail = trimmed.partition(":")
    if sep:
        return tail.strip() or None
    return trimmed


def _read_action_from_prompt_object(obj: Any) -> Optional[str]:
    if not isinstance(obj, Mapping):
        return None
    container = obj.get("prompt") if isinstance(obj.get("prompt"), Mapping) else obj
    subject = container.get("subject")
    if not isinstance(subject, Mapping):
        return None
    return extract_action_value(subject.get("action"))


def _safe_json(text: Optional[str]) -> Any:
    if not isinstance(text, str) or not text:
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def extract_action_text(shot: StoryboardShot, image_prompt: Optional[str] = None) -> str:
    """视频提示词只取主体动作：结构化字段 -> prompt_text 中的 JSON -> 生图提示词中的 JSON"""
    if shot.prompt is not None and shot.prompt.subject is not None:
        from_structured = extract_action_value(shot.prompt.subject.action)
        if from_structured:
            return from_structured

    from_text = _read_action_from_prompt_object(_safe_json(shot.prompt_text))
    if from_text:
        return from_text

    from_image_prompt = _read_action_from_prompt_object(_safe_json(image_prompt))
    if from_image_prompt:
        return from_image_prompt
    return ""


def strip_leading_order(text: str) -> str:
    """清洗分镜文本前缀序号：移除类似 “1. ”、“2、”、“3:” 的编号"""
    return _LEADING_ORDER.sub("", str(text or ""), count=1).strip()
