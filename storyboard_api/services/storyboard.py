# -*- coding: utf-8 -*-
"""
分镜解析主流程：原始文本 -> 清洗 -> 解码 -> 形状规范 -> 字段规范 -> StoryboardShot 列表。

各阶段自身只做降级不抛异常；只有所有策略都失败时，这里才抛出可区分的错误，
供接口层给出针对格式的提示。
"""
from dataclasses import dataclass
from typing import List

from storyboard_api.core.logging import logger
from storyboard_api.models.schemas import StoryboardShot
from storyboard_api.services.coercer import coerce
from storyboard_api.services.csv_parser import looks_like_csv, parse_storyboard_csv
from storyboard_api.services.decoder import decode_with_strategy
from storyboard_api.services.normalizer import normalize_records

CSV_STRATEGY = "csv"


class StoryboardParseError(ValueError):
    code = "PARSE_FAILED"
    message = "分镜解析失败"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class StoryboardEmptyError(StoryboardParseError):
    code = "NO_SHOTS"
    message = "未解析到任何分镜。请检查 CSV 格式（分镜数,\"分镜提示词\"）或尝试 JSON。"


class StoryboardDecodeError(StoryboardParseError):
    code = "DECODE_FAILED"
    message = "无法解析文本：请检查是否存在未加引号的键名、单引号、中文标点、智能引号、注释或结构错误。"


class StoryboardCoerceError(StoryboardParseError):
    code = "COERCE_FAILED"
    message = "解析成功但不是分镜结构：根节点应为数组，或包含 segments / shots 数组的对象。"


@dataclass
class ParseResult:
    shots: List[StoryboardShot]
    strategy: str

    @property
    def count(self) -> int:
        return len(self.shots)


def parse_storyboard(text: str) -> ParseResult:
    """JSON 系列解析（JSON / JSON5 / YAML），失败时区分“解码失败”和“形状不符”"""
    if not (text or "").strip():
        raise StoryboardEmptyError("请提供分镜 JSON 数据。")

    decoded = decode_with_strategy(text)
    if decoded is None:
        raise StoryboardDecodeError()

    records = coerce(decoded.value)
    if records is None:
        logger.warning(f"解码结果无法规范为分镜数组，策略: {decoded.strategy}, 类型: {type(decoded.value).__name__}")
        raise StoryboardCoerceError()

    shots = normalize_records(records)
    logger.info(f"分镜解析完成: {len(shots)} 个分镜, 策略: {decoded.strategy}")
    return ParseResult(shots=shots, strategy=decoded.strategy)


def parse_storyboard_csv_text(text: str) -> ParseResult:
    if not (text or "").strip():
        raise StoryboardEmptyError("请提供 CSV 文本。")
    shots = parse_storyboard_csv(text)
    if not shots:
        raise StoryboardEmptyError()
    return ParseResult(shots=shots, strategy=CSV_STRATEGY)


def parse_storyboard_auto(text: str) -> ParseResult:
    """形似 CSV 的文本先走 CSV；其余先走 JSON 系列再走 CSV，两条路都失败才报 JSON 系列的错误"""
    if looks_like_csv(text):
        # 形如 1,"..." 的文本直接走 CSV，避免被宽松的 JSON5 / YAML 误读
        shots = parse_storyboard_csv(text)
        if shots:
            return ParseResult(shots=shots, strategy=CSV_STRATEGY)
    try:
        return parse_storyboard(text)
    except StoryboardEmptyError:
        raise
    except StoryboardParseError as e:
        shots = parse_storyboard_csv(text)
        if shots:
            logger.info(f"JSON 系列解析失败 ({e.code})，改用 CSV 解析成功: {len(shots)} 个分镜")
            return ParseResult(shots=shots, strategy=CSV_STRATEGY)
        raise
