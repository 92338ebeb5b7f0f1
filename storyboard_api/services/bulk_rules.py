# -*- coding: utf-8 -*-
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from storyboard_api.models.schemas import BulkRule, ShotPrompt, ShotSubject, StoryboardShot


def _pairs(rules: Iterable[Any]) -> List[Tuple[str, str]]:
    pairs = []
    for rule in rules:
        if isinstance(rule, dict):
            find, replace = rule.get("find") or "", rule.get("replace") or ""
        else:
            find, replace = rule.find or "", rule.replace or ""
        # 空查找串不生效
        if find:
            pairs.append((find, replace))
    return pairs


def collect_rules(find: str, replace: str, rules: Sequence[BulkRule]) -> List[BulkRule]:
    """单次输入的查找/替换排在规则列表之前"""
    combined: List[BulkRule] = []
    if find:
        combined.append(BulkRule(id="inline", find=find, replace=replace))
    combined.extend(rule for rule in rules if rule.find)
    return combined


def _apply(text: Optional[str], pairs: Sequence[Tuple[str, str]]) -> Optional[str]:
    if not isinstance(text, str) or not text:
        return text
    for find, replace in pairs:
        text = text.replace(find, replace)
    return text


def apply_rules(text: str, rules: Iterable[Any]) -> str:
    """按顺序逐条替换，前一条的结果对后一条可见"""
    return _apply(text, _pairs(rules))


def _apply_to_model(model, pairs):
    update = {}
    for name, value in model:
        if isinstance(value, str):
            update[name] = _apply(value, pairs)
    return model.model_copy(update=update)


def apply_rules_to_shots(shots: Sequence[StoryboardShot], rules: Iterable[Any]) -> List[StoryboardShot]:
    pairs = _pairs(rules)
    if not pairs:
        return list(shots)

    result = []
    for shot in shots:
        prompt: Optional[ShotPrompt] = shot.prompt
        if prompt is not None:
            subject: Optional[ShotSubject] = prompt.subject
            if subject is not None:
                subject = _apply_to_model(subject, pairs)
            prompt = _apply_to_model(prompt, pairs).model_copy(update={"subject": subject})
        result.append(shot.model_copy(update={
            "prompt": prompt,
            "prompt_text": _apply(shot.prompt_text, pairs) or f"Shot {shot.shot_number}",
        }))
    return result
