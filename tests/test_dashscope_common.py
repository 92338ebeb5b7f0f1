from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any, List

import pytest

from storyboard_api.core import config
from storyboard_api.core import logging as log_setup
from storyboard_api.core.logging import logger
from storyboard_api.services import dashscope_common, image


@pytest.fixture()
def sleeps(monkeypatch: pytest.MonkeyPatch) -> List[float]:
    waited: List[float] = []
    monkeypatch.setattr(dashscope_common.time, "sleep", waited.append)
    monkeypatch.setattr(config, "API_RETRY_ATTEMPTS", 3)
    monkeypatch.setattr(config, "API_RETRY_BASE_DELAY", 2)
    return waited


def test_retry_backs_off_exponentially_then_raises(sleeps: List[float]) -> None:
    responses = iter([SimpleNamespace(status_code=500, code="Throttling", message="busy")] * 3)
    with pytest.raises(dashscope_common.DashScopeCallError, match="busy"):
        dashscope_common.call_with_retry("test", lambda: next(responses), lambda r: r)
    assert sleeps == [2, 4]


def test_parse_failure_counts_as_attempt(sleeps: List[float]) -> None:
    calls: List[int] = []

    def parse(response: Any) -> str:
        calls.append(1)
        if len(calls) == 1:
            raise ValueError("empty output")
        return response.output

    ok = SimpleNamespace(status_code=200, output="done")
    assert dashscope_common.call_with_retry("test", lambda: ok, parse) == "done"
    assert sleeps == [2]


def test_image_without_url_is_retried(sleeps: List[float], monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeConversation:
        @staticmethod
        def call(**kwargs: Any) -> Any:
            message = SimpleNamespace(content=[{"text": "no image"}])
            return SimpleNamespace(status_code=200, output=SimpleNamespace(choices=[SimpleNamespace(message=message)]))

    monkeypatch.setattr(image, "DASHSCOPE_API_KEY", "sk-test")
    monkeypatch.setattr(image, "MultiModalConversation", FakeConversation)
    with pytest.raises(RuntimeError, match="未找到图片URL"):
        image.generate_image("x")
    assert len(sleeps) == 2


def test_setup_logging_honours_level_and_log_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(log_setup, "LOG_DIR", tmp_path)
    log_setup.setup_logging("WARNING")
    logger.info("普通信息")
    logger.warning("需要关注")
    logger.complete()

    files = list(tmp_path.glob("*.log"))
    assert len(files) == 1
    content = files[0].read_text(encoding="utf-8")
    assert "需要关注" in content
    assert "普通信息" not in content

    monkeypatch.undo()
    log_setup.setup_logging()
