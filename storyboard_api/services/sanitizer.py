# -*- coding: utf-8 -*-
"""
类 JSON 文本清洗：去掉 Markdown 代码块包裹，并把从聊天助手复制来的中文标点、
智能引号、注释、未加引号的键名等修正为严格 JSON 可接受的形式。

这是启发式处理，极端输入可能被改坏；目的在于挽救“几乎正确”的 JSON，而不是校验。
"""
import re

_FENCE_OPEN = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")
_FENCE_BLOCK = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\r?\n([\s\S]*?)```")

# 全角/中文标点 -> 半角
_PUNCT_TABLE = str.maketrans({
    "【": "[",
    "】": "]",
    "，": ",",
    "：": ":",
    "（": "(",
    "）": ")",
    "「": '"',
    "」": '"',
    "『": '"',
    "』": '"',
    "《": '"',
    "》": '"',
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
})

# 行注释前不能是冒号，避免把 http:// 之类的 URL 截断
_LINE_COMMENT = re.compile(r"(?<!:)//.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_SINGLE_QUOTED = re.compile(r"'([^'\\]*(?:\\.[^'\\]*)*)'")
_UNQUOTED_KEY = re.compile(r"([,{]\s*)([^\s\"'{}\[\],:]+)(\s*):")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def strip_code_fences(text) -> str:
    """去掉 ```lang ... ``` 包裹，非字符串返回空串"""
    if not isinstance(text, str) or not text:
        return ""
    t = text.strip()
    if not t.startswith("```"):
        # 助手回复里常见“说明文字 + 代码块”，只取第一个代码块
        embedded = _FENCE_BLOCK.search(t)
        if embedded:
            return embedded.group(1).strip()
        return t
    t = _FENCE_OPEN.sub("", t, count=1)
    t = _FENCE_CLOSE.sub("", t, count=1)
    return t


def _requote(match: re.Match) -> str:
    inner = match.group(1).replace("\\'", "'").replace('"', '\\"')
    return f'"{inner}"'


def normalize_json_like(text: str) -> str:
    """将“类 JSON”文本修正为严格 JSON"""
    t = text or ""
    if t.startswith("\ufeff"):
        t = t[1:]
    t = t.translate(_PUNCT_TABLE)
    t = _BLOCK_COMMENT.sub("", t)
    t = _LINE_COMMENT.sub("", t)
    t = _SINGLE_QUOTED.sub(_requote, t)
    t = _UNQUOTED_KEY.sub(r'\1"\2"\3:', t)
    t = _TRAILING_COMMA.sub(r"\1", t)
    return t.strip()


def sanitize(text) -> str:
    return normalize_json_like(strip_code_fences(text))
