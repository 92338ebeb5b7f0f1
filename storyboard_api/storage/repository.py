import json
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from storyboard_api.core.config import OUTPUT_DIR, TASK_STORE_PATH
from storyboard_api.core.logging import logger


# 同步接口跑在线程池里，assets.json 的读-合并-写必须串行
_assets_lock = threading.Lock()


def _atomic_write(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


def _read_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception as e:
        logger.error(f"JSON 文件读取失败: {path}, err={e}")
        return None


def _story_json_dir(user_id: str, story_id: str) -> Path:
    return OUTPUT_DIR / user_id / story_id / "json"


def save_story_shots(user_id: str, story_id: str, shots: List[Dict[str, Any]], strategy: Optional[str] = None) -> None:
    # 每次解析整体替换，不做合并
    path = _story_json_dir(user_id, story_id) / "shots.json"
    payload = {"story_id": story_id, "strategy": strategy, "shots": shots}
    with _assets_lock:
        _atomic_write(path, payload)
        # 旧的生成结果对应上一次解析的分镜，一并清掉
        (path.parent / "assets.json").unlink(missing_ok=True)
    logger.info(f"Shots 保存: {user_id}/{story_id} -> {len(shots)} 个分镜")


def get_story_shots(user_id: str, story_id: str) -> List[Dict[str, Any]]:
    path = _story_json_dir(user_id, story_id) / "shots.json"
    data = _read_json(path)
    if data is None:
        logger.warning(f"Story 分镜文件不存在或损坏 {user_id}/{story_id}")
        return []
    # 兼容两种结构：旧版纯数组、新版带 shots 字段的对象
    if isinstance(data, list):
        return data
    shots = data.get("shots", []) if isinstance(data, dict) else []
    logger.info(f"Shots 加载: {user_id}/{story_id} -> {len(shots)} 个分镜")
    return shots if isinstance(shots, list) else []


def get_shot_assets(user_id: str, story_id: str) -> Dict[str, Dict[str, Any]]:
    path = _story_json_dir(user_id, story_id) / "assets.json"
    data = _read_json(path)
    return data if isinstance(data, dict) else {}


def update_shot_assets(user_id: str, story_id: str, updates: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """按分镜 id 合并生成结果（图片地址、视频任务等）"""
    with _assets_lock:
        assets = get_shot_assets(user_id, story_id)
        for shot_id, patch in updates.items():
            assets.setdefault(shot_id, {}).update(patch)
        _atomic_write(_story_json_dir(user_id, story_id) / "assets.json", assets)
    logger.info(f"Assets 更新: {user_id}/{story_id} -> {len(updates)} 个分镜")
    return assets


def load_tasks(path: Optional[Path] = None) -> Any:
    return _read_json(path or TASK_STORE_PATH)


def save_tasks(tasks: List[Dict[str, Any]], path: Optional[Path] = None) -> None:
    _atomic_write(path or TASK_STORE_PATH, tasks)
