from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from storyboard_api.core import config
from storyboard_api.services import dashscope_common, image, video


def _image_response(url: str) -> Any:
    message = SimpleNamespace(content=[{"image": url}])
    return SimpleNamespace(status_code=200, output=SimpleNamespace(choices=[SimpleNamespace(message=message)]))


def test_generate_image_returns_url(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Dict[str, Any]] = []

    class FakeConversation:
        @staticmethod
        def call(**kwargs: Any) -> Any:
            calls.append(kwargs)
            return _image_response("https://img/1.png")

    monkeypatch.setattr(image, "DASHSCOPE_API_KEY", "sk-test")
    monkeypatch.setattr(image, "MultiModalConversation", FakeConversation)
    assert image.generate_image("海边黄昏") == "https://img/1.png"
    assert calls[0]["size"] == image.DEFAULT_IMAGE_SIZE
    assert calls[0]["messages"][0]["content"] == [{"text": "海边黄昏"}]


def test_generate_image_retries_and_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: List[int] = []

    class FakeConversation:
        @staticmethod
        def call(**kwargs: Any) -> Any:
            attempts.append(1)
            return SimpleNamespace(status_code=400, code="InvalidParameter", message="bad size")

    monkeypatch.setattr(image, "DASHSCOPE_API_KEY", "sk-test")
    monkeypatch.setattr(image, "MultiModalConversation", FakeConversation)
    monkeypatch.setattr(dashscope_common.time, "sleep", lambda seconds: None)
    with pytest.raises(RuntimeError, match="bad size"):
        image.generate_image("x", size="1*1")
    assert len(attempts) == config.API_RETRY_ATTEMPTS


def test_clients_require_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(image, "DASHSCOPE_API_KEY", "")
    monkeypatch.setattr(video, "DASHSCOPE_API_KEY", "")
    with pytest.raises(RuntimeError):
        image.generate_image("x")
    with pytest.raises(RuntimeError):
        video.submit_video("x", "https://img/1.png")
    with pytest.raises(RuntimeError):
        video.fetch_video_job("job-1")


def test_submit_video_returns_task_id(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: Dict[str, Any] = {}

    class FakeSynthesis:
        @staticmethod
        def async_call(**kwargs: Any) -> Any:
            captured.update(kwargs)
            return SimpleNamespace(status_code=200, output=SimpleNamespace(task_id="job-42"))

    monkeypatch.setattr(video, "DASHSCOPE_API_KEY", "sk-test")
    monkeypatch.setattr(video, "VideoSynthesis", FakeSynthesis)
    assert video.submit_video("挥手", "https://img/1.png") == "job-42"
    assert captured["img_url"] == "https://img/1.png"
    assert captured["prompt"] == "挥手"
    assert captured["duration"] == video.DEFAULT_VIDEO_DURATION


def test_submit_video_rejects_missing_image(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(video, "DASHSCOPE_API_KEY", "sk-test")
    with pytest.raises(ValueError):
        video.submit_video("挥手", "")


def test_submit_video_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeSynthesis:
        @staticmethod
        def async_call(**kwargs: Any) -> Any:
            return SimpleNamespace(status_code=403, code="AccessDenied", message="denied")

    monkeypatch.setattr(video, "DASHSCOPE_API_KEY", "sk-test")
    monkeypatch.setattr(video, "VideoSynthesis", FakeSynthesis)
    with pytest.raises(RuntimeError, match="denied"):
        video.submit_video("挥手", "https://img/1.png")


def test_fetch_video_job_status(monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeSynthesis:
        @staticmethod
        def fetch(job_id: str, api_key: str = None) -> Any:
            output = SimpleNamespace(task_status="SUCCEEDED", video_url="https://cdn/v.mp4")
            return SimpleNamespace(status_code=200, output=output, message=None)

    monkeypatch.setattr(video, "DASHSCOPE_API_KEY", "sk-test")
    monkeypatch.setattr(video, "VideoSynthesis", FakeSynthesis)
    job = video.fetch_video_job("job-1")
    assert job == {"id": "job-1", "status": "SUCCEEDED", "video_url": "https://cdn/v.mp4", "message": None}


def test_download_video_writes_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeResponse:
        content = b"mp4-bytes"

        def raise_for_status(self) -> None:
            return None

    monkeypatch.setattr(video.requests, "get", lambda url, timeout: FakeResponse())
    target = video.download_video("https://cdn/v.mp4", tmp_path / "I2V" / "shot.mp4")
    assert target.read_bytes() == b"mp4-bytes"
