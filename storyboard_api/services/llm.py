# -*- coding: utf-8 -*-
import re
import json
from typing import List, Dict, Tuple

from dashscope import Generation

from storyboard_api.core.config import DASHSCOPE_API_KEY, DASHSCOPE_LLM_MODEL
from storyboard_api.core.logging import logger
from storyboard_api.services.dashscope_common import call_with_retry, use_configured_endpoint
from storyboard_api.services.normalizer import strip_leading_order

_CSV_HEADER = re.compile(r"分镜数\s*,\s*分镜提示词")
_CSV_LINE = re.compile(r'^\s*(\d+)\s*,\s*"?(.*?)"?\s*$')
_CSV_PREFIX = re.compile(r"^\s*(\d+)\s*,\s*", re.MULTILINE)

DEMO_LINES = (
    "1. 平视中景, 一只悲伤的小猫坐在空荡的金属食盆旁, 低头凝视",
    "2. 平视中景, 角色A失落地站在厨房里, 目光向下看着画外的小猫",
)


def build_storyboard_prompt(script_text: str) -> str:
    return (
        "你是一名世界顶级的生成式视频AI提示词工程师，是拥有专业艺术直觉的“虚拟导演”。\n"
        "【任务】：将下面的原始脚本解析为“视频分镜提示词”，每条分镜仅包含精炼的运镜与动作表达。\n"
        "【输出格式】：严格文本，每行一条，格式为：<编号>. <分镜提示词>。不要CSV，不要表头，不要引号，不要额外解释。\n"
        "示例：\n"
        + "\n".join(DEMO_LINES) + "\n\n"
        f"【原始脚本】:\n{script_text}\n"
    )


def transform_to_text(raw: str) -> str:
    """模型若返回了 CSV（n,"xxx"），转换为纯文本行 n. xxx"""
    s = (raw or "").strip()
    if not s:
        return ""
    if _CSV_HEADER.search(s):
        lines = [line for line in s.splitlines() if line.strip()][1:]
        mapped = []
        for line in lines:
            m = _CSV_LINE.match(line)
            mapped.append(f"{m.group(1)}. {m.group(2)}" if m else line)
        return "\n".join(mapped)
    return _CSV_PREFIX.sub(lambda m: f"{m.group(1)}. ", s)


def fallback_text(script_text: str) -> str:
    """无可用 API Key 或调用失败时的演示输出：尽量从 JSON 数组里取分镜"""
    normalized = (script_text or "").strip()
    if normalized.startswith("["):
        try:
            items = json.loads(normalized)
            lines = []
            for idx, item in enumerate(items):
                item = item if isinstance(item, dict) else {}
                num = item.get("shot_number", idx + 1)
                text = str(item.get("prompt_text") or item.get("prompt") or "").strip()
                clean = text.replace("\n", " ") if text else "固定镜头, 主体静止瞬间描写"
                lines.append(f"{num}. {strip_leading_order(clean)}")
            return "\n".join(lines)
        except ValueError:
            pass
    return "\n".join(DEMO_LINES)


def call_dashscope_llm(messages: List[Dict[str, str]]) -> str:
    """调用阿里云DashScope API，返回生成的文本内容"""
    if not DASHSCOPE_API_KEY:
        raise ValueError("DASHSCOPE_API_KEY 未配置")
    use_configured_endpoint()
    logger.info(f"调用 DashScope Generation, 消息长度: {len(str(messages))}")

    def request():
        return Generation.call(
            api_key=DASHSCOPE_API_KEY,
            model=DASHSCOPE_LLM_MODEL,
            messages=messages,
            result_format="message",
            enable_thinking=False
        )

    return call_with_retry(
        "DashScope Generation", request,
        lambda response: response.output.choices[0].message.content.strip(),
    )


def generate_storyboard_prompts(script_text: str) -> Tuple[str, bool]:
    """由原始脚本生成分镜提示词文本（每行一条），返回 (文本, 是否为演示输出)"""
    if not DASHSCOPE_API_KEY:
        logger.warning("DASHSCOPE_API_KEY 未配置，返回演示分镜文本")
        return fallback_text(script_text), True

    messages = [{"role": "user", "content": build_storyboard_prompt(script_text)}]
    try:
        logger.info(f"发起 DashScope 分镜提示词请求, 脚本片段: {script_text[:30]}...")
        content = call_dashscope_llm(messages)
    except RuntimeError as e:
        logger.error(f"分镜提示词生成失败，返回演示文本: {e}")
        return fallback_text(script_text), True
    return transform_to_text(content), False
