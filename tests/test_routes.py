from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient

from storyboard_api import main
from storyboard_api.api import routes
from storyboard_api.services import workflow
from storyboard_api.services.task_queue import TaskQueue
from storyboard_api.storage import repository

CSV_TEXT = '1,"角色：Alice\n动作：挥手\n[环境]\n海边"\n2,"城市夜景"'


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(repository, "OUTPUT_DIR", tmp_path)
    monkeypatch.setattr(routes, "OUTPUT_DIR", tmp_path)
    monkeypatch.setattr(routes, "task_queue", TaskQueue())
    with TestClient(main.app) as c:
        yield c


def _parse(client: TestClient, text: str = CSV_TEXT, **extra) -> Dict:
    resp = client.post("/api/v1/storyboard/parse", json={"text": text, **extra})
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_parse_auto_csv(client: TestClient) -> None:
    body = _parse(client)
    assert body["strategy"] == "csv"
    assert body["count"] == 2
    assert body["shots"][0]["prompt"]["subject"]["action"] == "挥手"


def test_parse_json_format(client: TestClient) -> None:
    body = _parse(client, "{shots: [{prompt: '海边'}]}", format="json")
    assert body["count"] == 1
    assert body["shots"][0]["prompt_text"] == "海边"


def test_parse_errors_are_structured(client: TestClient) -> None:
    resp = client.post("/api/v1/storyboard/parse", json={"text": '{"title": "x"}', "format": "json"})
    assert resp.status_code == 422
    assert resp.json()["code"] == "COERCE_FAILED"

    resp = client.post("/api/v1/storyboard/parse", json={"text": "没有分镜", "format": "csv"})
    assert resp.status_code == 422
    assert resp.json()["code"] == "NO_SHOTS"


def test_request_validation_error(client: TestClient) -> None:
    resp = client.post("/api/v1/storyboard/parse", json={"format": "xml"})
    assert resp.status_code == 422
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_bulk_replace_text_and_shots(client: TestClient) -> None:
    shots = _parse(client)["shots"]
    resp = client.post("/api/v1/storyboard/bulk-replace", json={
        "text": "Alice 在海边",
        "shots": shots,
        "find": "Alice",
        "replace": "Bob",
        "rules": [{"id": "r1", "find": "海边", "replace": "湖边"}],
    })
    body = resp.json()
    assert body["rule_count"] == 2
    assert body["text"] == "Bob 在湖边"
    assert body["shots"][0]["prompt"]["subject"]["characters_present"] == "Bob"
    assert body["shots"][0]["prompt"]["environment"] == "湖边"
    assert body["shots"][1]["prompt_text"] == "城市夜景"


def test_storyboard_prompts_demo(client: TestClient) -> None:
    resp = client.post("/api/v1/storyboard/prompts", json={"script_text": "从前有一只猫"})
    body = resp.json()
    assert body["demo"] is True
    assert [s["shot_number"] for s in body["shots"]] == [1, 2]

    assert client.post("/api/v1/storyboard/prompts", json={"script_text": "  "}).status_code == 400


def test_image_then_video_batch(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _parse(client, user_id="u1", story_id="st1")

    def fake_generate(prompt: str, size: Optional[str] = None) -> str:
        return f"https://img/{len(prompt)}.png"

    submitted: Dict[str, str] = {}

    def fake_submit(prompt: str, image_url: str) -> str:
        submitted[image_url] = prompt
        return f"job-{len(submitted)}"

    monkeypatch.setattr(workflow, "_default_generate", fake_generate)
    monkeypatch.setattr(workflow, "_default_submit", fake_submit)

    resp = client.post("/api/v1/images/generate-batch", json={"user_id": "u1", "story_id": "st1"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["task"]["status"] == "success"
    assert set(body["images"]) == {"shot-1-0", "shot-2-1"}

    resp = client.post("/api/v1/videos/submit-batch", json={
        "user_id": "u1", "story_id": "st1", "prompt_overrides": {"shot-2-1": "镜头缓慢推进"},
    })
    body = resp.json()
    assert body["task"]["type"] == "video"
    assert set(body["jobs"]) == {"shot-1-0", "shot-2-1"}
    assert sorted(submitted.values()) == ["挥手", "镜头缓慢推进"]

    assets = repository.get_shot_assets("u1", "st1")
    assert assets["shot-1-0"]["video_task_id"].startswith("job-")

    tasks = client.get("/api/v1/tasks").json()
    assert [t["type"] for t in tasks["tasks"]] == ["video", "image"]
    assert tasks["active"] == 0


def test_batch_without_parsed_shots_is_404(client: TestClient) -> None:
    resp = client.post("/api/v1/images/generate-batch", json={"user_id": "u1", "story_id": "missing"})
    assert resp.status_code == 404


def test_task_endpoints(client: TestClient) -> None:
    queue = routes.task_queue
    running = queue.enqueue("image", 2)
    done = queue.enqueue("video", 1)
    queue.complete(done)

    assert client.get(f"/api/v1/tasks/{running}").json()["status"] == "running"
    assert client.get("/api/v1/tasks/nope").status_code == 404

    assert client.post(f"/api/v1/tasks/{running}/cancel").json()["status"] == "cancelled"
    assert client.post(f"/api/v1/tasks/{running}/cancel").status_code == 200
    assert client.post(f"/api/v1/tasks/{done}/cancel").status_code == 409
    assert client.post("/api/v1/tasks/nope/cancel").status_code == 404

    assert client.delete("/api/v1/tasks/finished").json() == {"removed": 2}
    assert client.get("/api/v1/tasks").json()["tasks"] == []


def test_video_job_download(client: TestClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(routes, "fetch_video_job", lambda job_id: {
        "id": job_id, "status": "SUCCEEDED", "video_url": "https://cdn/v.mp4", "message": None,
    })

    def fake_download(url: str, target: Path) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"mp4")
        return target

    monkeypatch.setattr(routes, "download_video", fake_download)
    resp = client.get("/api/v1/videos/jobs/job-1", params={"user_id": "u1", "story_id": "st1", "shot_id": "shot-1-0"})
    body = resp.json()
    assert body["status"] == "SUCCEEDED"
    assert body["local_url"] == "/static/u1/st1/I2V/shot-1-0.mp4"
    assert (tmp_path / "u1" / "st1" / "I2V" / "shot-1-0.mp4").exists()
    assert repository.get_shot_assets("u1", "st1")["shot-1-0"]["video_url"] == body["local_url"]


def test_video_job_upstream_failure_is_502(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(job_id: str):
        raise RuntimeError("DashScope API Key 未配置")

    monkeypatch.setattr(routes, "fetch_video_job", broken)
    assert client.get("/api/v1/videos/jobs/job-1").status_code == 502
