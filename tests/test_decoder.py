from __future__ import annotations

from typing import List

from storyboard_api.services.decoder import (
    DECODE_STRATEGIES,
    DecodeStrategy,
    decode,
    decode_with_strategy,
    join_objects,
)


def test_strategy_order_is_fixed() -> None:
    assert [s.name for s in DECODE_STRATEGIES] == [
        "json",
        "json_repaired",
        "json5",
        "json5_repaired",
        "joined_json",
        "joined_json_repaired",
        "joined_json5",
        "yaml",
    ]


def test_strict_json_wins_first() -> None:
    result = decode_with_strategy('[{"prompt": "a"}]')
    assert result is not None
    assert result.strategy == "json"
    assert result.value == [{"prompt": "a"}]


def test_malformed_json_recovery() -> None:
    result = decode_with_strategy("{name: 'Alice', action: 'wave'}")
    assert result is not None
    assert result.value == {"name": "Alice", "action": "wave"}
    assert result.strategy in {"json_repaired", "json5", "json5_repaired"}


def test_json5_hex_literal_beats_repair() -> None:
    result = decode_with_strategy("{a: 0x1F}")
    assert result is not None
    assert result.strategy == "json5"
    assert result.value == {"a": 31}


def test_json5_keeps_full_width_punctuation_inside_strings() -> None:
    # 修复会在字符串内部插入引号，只有 JSON5 能原样读出
    result = decode_with_strategy("{prompt: '角色：小明，动作：挥手'}")
    assert result is not None
    assert result.strategy == "json5"
    assert result.value == {"prompt": "角色：小明，动作：挥手"}


def test_newline_separated_objects_are_joined() -> None:
    text = '{"prompt": "a"}\n{"prompt": "b"}'
    result = decode_with_strategy(text)
    assert result is not None
    assert result.strategy.startswith("joined_json")
    assert result.value == [{"prompt": "a"}, {"prompt": "b"}]


def test_join_objects_inserts_commas() -> None:
    assert join_objects('{"a": 1}\n\n{"b": 2}') == '[{"a": 1},\n{"b": 2}]'


def test_yaml_is_last_resort() -> None:
    text = "- prompt: 海边的黄昏\n  shot_number: 1\n- prompt: 城市夜景\n  shot_number: 2\n"
    result = decode_with_strategy(text)
    assert result is not None
    assert result.strategy == "yaml"
    assert result.value[1] == {"prompt": "城市夜景", "shot_number": 2}


def test_scalar_results_do_not_count_as_success() -> None:
    assert decode("42") is None
    assert decode("just some words") is None


def test_empty_input_returns_none() -> None:
    assert decode("") is None
    assert decode("   ") is None
    assert decode(None) is None


def test_first_success_short_circuits() -> None:
    calls: List[str] = []

    def make(name: str, result):
        def parse(stripped: str, sanitized: str):
            calls.append(name)
            if isinstance(result, Exception):
                raise result
            return result
        return DecodeStrategy(name, parse)

    strategies = [
        make("broken", ValueError("boom")),
        make("scalar", 1),
        make("ok", {"shots": []}),
        make("never", [1]),
    ]
    result = decode_with_strategy("anything", strategies)
    assert result is not None
    assert result.strategy == "ok"
    assert calls == ["broken", "scalar", "ok"]


def test_all_strategies_failing_returns_none() -> None:
    def parse(stripped: str, sanitized: str):
        raise ValueError("unparseable")

    assert decode_with_strategy("text", [DecodeStrategy("bad", parse)]) is None
