# -*- coding: utf-8 -*-
"""
批量生成流程：分镜 -> 生图（有界并发）/ 图生视频任务提交（顺序），进度与结果写入任务队列
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from storyboard_api.core.config import IMAGE_MAX_CONCURRENCY
from storyboard_api.core.logging import logger
from storyboard_api.models.schemas import StoryboardShot
from storyboard_api.services.normalizer import extract_action_text, format_prompt_for_model
from storyboard_api.services.task_queue import TaskQueue

GenerateFn = Callable[[str, Optional[str]], str]
SubmitFn = Callable[[str, str], str]


def _default_generate(prompt: str, size: Optional[str] = None) -> str:
    from storyboard_api.services.image import generate_image
    return generate_image(prompt, size)


def _default_submit(prompt: str, image_url: str) -> str:
    from storyboard_api.services.video import submit_video
    return submit_video(prompt, image_url)


def _finish(queue: TaskQueue, task_id: str, done: int, failed: List[str], outputs: Dict) -> None:
    if queue.is_cancelled(task_id):
        logger.info(f"任务 {task_id} 已被取消，已完成 {done} 个分镜")
        return
    if done == 0 and failed:
        queue.fail(task_id, f"全部 {len(failed)} 个分镜失败")
        return
    queue.complete(task_id, outputs)


def run_image_batch(
    shots: Sequence[StoryboardShot],
    queue: TaskQueue,
    *,
    size: Optional[str] = None,
    generate: Optional[GenerateFn] = None,
    max_workers: int = IMAGE_MAX_CONCURRENCY,
    project_id: Optional[str] = None,
    script_id: Optional[str] = None,
    script_name: Optional[str] = None,
) -> Tuple[str, Dict[str, str]]:
    """按分镜并发生图，返回 (任务 id, {分镜 id: 图片 URL})；单个分镜失败不影响其他分镜"""
    generate = generate or _default_generate
    task_id = queue.enqueue(
        "image", len(shots), params={"size": size},
        project_id=project_id, script_id=script_id, script_name=script_name,
    )
    if not shots:
        queue.complete(task_id, {"count": 0, "failed": []})
        return task_id, {}

    images: Dict[str, str] = {}
    failed: List[str] = []
    finished = 0
    logger.info(f"开始批量生图，{len(shots)} 个分镜，并发数 {max_workers}")

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as ex:
        futures = {ex.submit(generate, format_prompt_for_model(shot), size): shot for shot in shots}
        for future in as_completed(futures):
            shot = futures[future]
            if future.cancelled():
                continue
            finished += 1
            try:
                images[shot.id] = future.result()
                logger.info(f"Shot {shot.shot_number}: 生图成功")
            except Exception as e:
                failed.append(shot.id)
                logger.error(f"Shot {shot.shot_number}: 生图失败: {e}")
            if queue.is_cancelled(task_id):
                # 未开始的请求不再发出
                for pending in futures:
                    pending.cancel()
                continue
            queue.update_progress(task_id, finished / len(shots))

    logger.info(f"批量生图结束: 成功 {len(images)} 个，失败 {len(failed)} 个")
    _finish(queue, task_id, len(images), failed, {"count": len(images), "failed": failed})
    return task_id, images


def _video_prompt(
    shot: StoryboardShot,
    overrides: Mapping[str, str],
    image_prompts: Mapping[str, str],
) -> str:
    # 手动填写 > 主体动作 > 生图提示词 > 分镜提示词
    override = (overrides.get(shot.id) or "").strip()
    if override:
        return override
    image_prompt = image_prompts.get(shot.id)
    action = extract_action_text(shot, image_prompt)
    if action:
        return action
    if image_prompt and image_prompt.strip():
        return image_prompt.strip()
    return format_prompt_for_model(shot)


def submit_video_batch(
    shots: Sequence[StoryboardShot],
    image_urls: Mapping[str, str],
    queue: TaskQueue,
    *,
    overrides: Optional[Mapping[str, str]] = None,
    image_prompts: Optional[Mapping[str, str]] = None,
    submit: Optional[SubmitFn] = None,
    project_id: Optional[str] = None,
    script_id: Optional[str] = None,
    script_name: Optional[str] = None,
) -> Tuple[str, Dict[str, str]]:
    """依次为每个有起始帧的分镜提交图生视频任务，返回 (任务 id, {分镜 id: 视频任务 id})"""
    submit = submit or _default_submit
    overrides = overrides or {}
    image_prompts = image_prompts or {}
    task_id = queue.enqueue(
        "video", len(shots), params={"overrides": len(overrides)},
        project_id=project_id, script_id=script_id, script_name=script_name,
    )

    jobs: Dict[str, str] = {}
    failed: List[str] = []
    total = len(shots)
    for i, shot in enumerate(shots):
        if queue.is_cancelled(task_id):
            logger.info(f"视频批次已取消，跳过剩余 {total - i} 个分镜")
            break
        image_url = image_urls.get(shot.id)
        if not image_url:
            logger.warning(f"Shot {shot.shot_number}: 缺少起始帧图片，跳过")
            failed.append(shot.id)
        else:
            try:
                jobs[shot.id] = submit(_video_prompt(shot, overrides, image_prompts), image_url)
            except Exception as e:
                failed.append(shot.id)
                logger.error(f"Shot {shot.shot_number}: 视频任务提交失败: {e}")
        queue.update_progress(task_id, (i + 1) / total)

    logger.info(f"视频任务提交结束: 成功 {len(jobs)} 个，失败 {len(failed)} 个")
    if not shots:
        queue.complete(task_id, {"count": 0, "failed": [], "jobs": {}})
        return task_id, jobs
    _finish(queue, task_id, len(jobs), failed, {"count": len(jobs), "failed": failed, "jobs": jobs})
    return task_id, jobs
