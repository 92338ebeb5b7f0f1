from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException

from storyboard_api.core.config import OUTPUT_DIR
from storyboard_api.core.logging import logger
from storyboard_api.models.schemas import (
    ParseStoryboardRequest, ParseStoryboardResponse,
    BulkReplaceRequest, BulkReplaceResponse,
    StoryboardPromptsRequest, StoryboardPromptsResponse,
    ImageBatchRequest, ImageBatchResponse,
    VideoBatchRequest, VideoBatchResponse, VideoJobResponse,
    TaskItem, TaskListResponse, StoryboardShot
)
from storyboard_api.services.storyboard import (
    parse_storyboard, parse_storyboard_auto, parse_storyboard_csv_text
)
from storyboard_api.services.bulk_rules import collect_rules, apply_rules, apply_rules_to_shots
from storyboard_api.services.csv_parser import parse_prompt_lines
from storyboard_api.services.llm import generate_storyboard_prompts
from storyboard_api.services.task_queue import TaskQueue, TaskNotFoundError, TaskStateError
from storyboard_api.services.video import fetch_video_job, download_video
from storyboard_api.services.workflow import run_image_batch, submit_video_batch
from storyboard_api.storage.repository import (
    save_story_shots, get_story_shots, get_shot_assets, update_shot_assets,
    load_tasks, save_tasks
)


router = APIRouter(prefix="/api/v1")

task_queue = TaskQueue(load=load_tasks, save=save_tasks)

_PARSERS = {
    "auto": parse_storyboard_auto,
    "json": parse_storyboard,
    "csv": parse_storyboard_csv_text,
}


def _load_shots(user_id: str, story_id: str, shot_ids: Optional[List[str]]) -> List[StoryboardShot]:
    shots = [StoryboardShot.model_validate(s) for s in get_story_shots(user_id, story_id)]
    if not shots:
        raise HTTPException(status_code=404, detail="未找到分镜，请先解析分镜")
    if shot_ids:
        wanted = set(shot_ids)
        shots = [s for s in shots if s.id in wanted]
        if not shots:
            raise HTTPException(status_code=404, detail="指定的分镜不存在")
    return shots


def _task_or_404(task_id: str) -> TaskItem:
    task = task_queue.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"任务不存在: {task_id}")
    return task


@router.post("/storyboard/parse", response_model=ParseStoryboardResponse)
def parse_storyboard_text(req: ParseStoryboardRequest):
    logger.info(f"ParseStoryboard 开始，format={req.format}, 文本长度={len(req.text)}")
    # 解析失败抛 StoryboardParseError，由全局处理器转成 422
    result = _PARSERS[req.format](req.text)
    if req.user_id and req.story_id:
        save_story_shots(req.user_id, req.story_id, [s.model_dump() for s in result.shots], result.strategy)
    return ParseStoryboardResponse(shots=result.shots, strategy=result.strategy, count=result.count)


@router.post("/storyboard/bulk-replace", response_model=BulkReplaceResponse)
def bulk_replace(req: BulkReplaceRequest):
    rules = collect_rules(req.find, req.replace, req.rules)
    logger.info(f"BulkReplace，规则数={len(rules)}")
    return BulkReplaceResponse(
        text=apply_rules(req.text, rules) if req.text is not None else None,
        shots=apply_rules_to_shots(req.shots, rules) if req.shots is not None else None,
        rule_count=len(rules),
    )


@router.post("/storyboard/prompts", response_model=StoryboardPromptsResponse)
def storyboard_prompts(req: StoryboardPromptsRequest):
    if not req.script_text.strip():
        raise HTTPException(status_code=400, detail="脚本内容不能为空")
    text, demo = generate_storyboard_prompts(req.script_text)
    return StoryboardPromptsResponse(text=text, shots=parse_prompt_lines(text), demo=demo)


@router.post("/images/generate-batch", response_model=ImageBatchResponse)
def generate_images(req: ImageBatchRequest):
    logger.info(f"ImageBatch 开始，user={req.user_id}, story={req.story_id}")
    shots = _load_shots(req.user_id, req.story_id, req.shot_ids)
    task_id, images = run_image_batch(
        shots, task_queue, size=req.size,
        project_id=req.user_id, script_id=req.story_id, script_name=req.script_name,
    )
    if images:
        prompts = {s.id: s.prompt_text for s in shots}
        update_shot_assets(req.user_id, req.story_id, {
            shot_id: {"image_url": url, "image_prompt": prompts.get(shot_id)}
            for shot_id, url in images.items()
        })
    return ImageBatchResponse(task=_task_or_404(task_id), images=images)


@router.post("/videos/submit-batch", response_model=VideoBatchResponse)
def submit_videos(req: VideoBatchRequest):
    logger.info(f"VideoBatch 开始，user={req.user_id}, story={req.story_id}")
    shots = _load_shots(req.user_id, req.story_id, req.shot_ids)
    assets = get_shot_assets(req.user_id, req.story_id)
    image_urls: Dict[str, str] = {k: v["image_url"] for k, v in assets.items() if v.get("image_url")}
    image_prompts: Dict[str, str] = {k: v["image_prompt"] for k, v in assets.items() if v.get("image_prompt")}
    task_id, jobs = submit_video_batch(
        shots, image_urls, task_queue,
        overrides=req.prompt_overrides, image_prompts=image_prompts,
        project_id=req.user_id, script_id=req.story_id, script_name=req.script_name,
    )
    if jobs:
        update_shot_assets(req.user_id, req.story_id, {
            shot_id: {"video_task_id": job_id} for shot_id, job_id in jobs.items()
        })
    return VideoBatchResponse(task=_task_or_404(task_id), jobs=jobs)


@router.get("/videos/jobs/{job_id}", response_model=VideoJobResponse)
def get_video_job(job_id: str, user_id: Optional[str] = None, story_id: Optional[str] = None, shot_id: Optional[str] = None):
    try:
        job = fetch_video_job(job_id)
    except RuntimeError as e:
        logger.error(f"视频任务查询失败: {job_id}, err={e}")
        raise HTTPException(status_code=502, detail="视频任务查询失败，请稍后重试")

    resp = VideoJobResponse(**job)
    if resp.video_url and user_id and story_id and shot_id:
        # 成片落到 OUTPUT_DIR/user_id/story_id/I2V，通过 /static 访问
        target = OUTPUT_DIR / user_id / story_id / "I2V" / f"{shot_id}.mp4"
        if not target.exists():
            try:
                download_video(resp.video_url, target)
            except Exception as e:
                logger.error(f"视频下载失败: {resp.video_url}, err={e}")
                raise HTTPException(status_code=502, detail="视频下载失败，请稍后重试")
        resp.local_url = f"/static/{user_id}/{story_id}/I2V/{target.name}"
        update_shot_assets(user_id, story_id, {shot_id: {"video_url": resp.local_url}})
    return resp


@router.get("/tasks", response_model=TaskListResponse)
def list_tasks():
    return TaskListResponse(tasks=task_queue.list(), active=task_queue.active_count())


@router.delete("/tasks/finished")
def clear_finished_tasks():
    removed = task_queue.clear_finished()
    logger.info(f"清理已结束任务 {removed} 条")
    return {"removed": removed}


@router.get("/tasks/{task_id}", response_model=TaskItem)
def get_task(task_id: str):
    return _task_or_404(task_id)


@router.post("/tasks/{task_id}/cancel", response_model=TaskItem)
def cancel_task(task_id: str):
    try:
        return task_queue.cancel(task_id)
    except TaskNotFoundError:
        raise HTTPException(status_code=404, detail=f"任务不存在: {task_id}")
    except TaskStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
