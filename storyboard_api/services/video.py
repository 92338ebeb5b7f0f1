"""
图生视频服务 - 使用 DashScope wan2.5-preview API 提交异步任务、查询状态、下载成片
"""
# -*- coding: utf-8 -*-
import random
from pathlib import Path
from typing import Dict, Optional
from http import HTTPStatus

import requests
from dashscope import VideoSynthesis

from storyboard_api.core.config import (
    DASHSCOPE_API_KEY, DASHSCOPE_VIDEO_MODEL,
    DEFAULT_VIDEO_RESOLUTION, DEFAULT_VIDEO_DURATION
)
from storyboard_api.core.logging import logger
from storyboard_api.services.dashscope_common import use_configured_endpoint


def submit_video(text_prompt: str, image_url: str) -> str:
    """
    提交图生视频任务，只负责创建，不轮询结果

    Args:
        text_prompt: 文本提示词
        image_url: 起始帧图片 URL

    Returns:
        str: DashScope task_id；创建失败抛出 RuntimeError
    """
    if not DASHSCOPE_API_KEY:
        raise RuntimeError("DashScope API Key 未配置")
    if not image_url:
        raise ValueError("缺少起始帧图片 URL")

    use_configured_endpoint()

    api_params = {
        'api_key': DASHSCOPE_API_KEY,
        'model': DASHSCOPE_VIDEO_MODEL,
        'prompt': text_prompt,
        'img_url': image_url,
        'resolution': DEFAULT_VIDEO_RESOLUTION,
        'prompt_extend': False,
        'watermark': False,
        'negative_prompt': "",
        'seed': random.randint(1, 99999),
        'duration': DEFAULT_VIDEO_DURATION
    }

    logger.info(f"I2V 提交，模型 {DASHSCOPE_VIDEO_MODEL}, prompt: {text_prompt[:50]}...")
    rsp = VideoSynthesis.async_call(**api_params)

    if rsp.status_code != HTTPStatus.OK:
        raise RuntimeError(
            f'{DASHSCOPE_VIDEO_MODEL} 任务创建失败, status_code: {rsp.status_code}, '
            f'code: {getattr(rsp, "code", None)}, message: {getattr(rsp, "message", None)}'
        )

    task_id = rsp.output.task_id
    logger.info(f"{DASHSCOPE_VIDEO_MODEL} 任务创建成功，task_id: {task_id}")
    return task_id


def fetch_video_job(job_id: str) -> Dict[str, Optional[str]]:
    """查询一次视频任务状态（不轮询），返回 {id, status, video_url, message}"""
    if not DASHSCOPE_API_KEY:
        raise RuntimeError("DashScope API Key 未配置")
    use_configured_endpoint()

    status_rsp = VideoSynthesis.fetch(job_id, api_key=DASHSCOPE_API_KEY)
    if status_rsp.status_code != HTTPStatus.OK:
        raise RuntimeError(
            f"视频任务查询失败, status_code: {status_rsp.status_code}, "
            f"code: {getattr(status_rsp, 'code', None)}, message: {getattr(status_rsp, 'message', None)}"
        )

    output = status_rsp.output
    task_status = getattr(output, 'task_status', None) or 'UNKNOWN'
    logger.info(f"视频任务 {job_id} 状态: {task_status}")
    return {
        "id": job_id,
        "status": task_status,
        "video_url": getattr(output, 'video_url', None) if task_status == 'SUCCEEDED' else None,
        "message": getattr(status_rsp, 'message', None),
    }


def download_video(video_url: str, target_path: Path) -> Path:
    """下载生成好的视频到本地，由 /static 对外提供"""
    target_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"正在下载视频 {video_url}")
    v = requests.get(video_url, timeout=300)
    v.raise_for_status()
    with open(target_path, 'wb') as f:
        f.write(v.content)
    logger.info(f"视频下载成功: {video_url} -> {target_path}")
    return target_path
