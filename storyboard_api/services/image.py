# -*- coding: utf-8 -*-
"""
文生图服务 - 使用 DashScope qwen-image-plus API，返回生成图片的 URL
"""
import json
from typing import Optional

from dashscope import MultiModalConversation

from storyboard_api.core.config import DASHSCOPE_API_KEY, DASHSCOPE_IMAGE_MODEL, DEFAULT_IMAGE_SIZE
from storyboard_api.core.logging import logger
from storyboard_api.services.dashscope_common import call_with_retry, use_configured_endpoint


def _extract_image_url(response) -> str:
    output = response.output
    if output and hasattr(output, 'choices') and output.choices:
        choice = output.choices[0]
        if hasattr(choice, 'message') and hasattr(choice.message, 'content'):
            for item in choice.message.content:
                if isinstance(item, dict) and 'image' in item:
                    logger.info(f"图像生成成功: {item['image']}")
                    return item['image']
    response_dict = response.to_dict() if hasattr(response, 'to_dict') else str(response)
    raise ValueError(f"API返回成功但未找到图片URL，响应内容: {json.dumps(response_dict, ensure_ascii=False, default=str)}")


def generate_image(prompt: str, size: Optional[str] = None) -> str:
    """调用 DashScope 生成单张图片

    Args:
        prompt: 文本描述
        size: 图片尺寸 (默认使用 DEFAULT_IMAGE_SIZE)

    Returns:
        str: 图片 URL；多次重试失败抛出 RuntimeError
    """
    if not DASHSCOPE_API_KEY:
        raise RuntimeError("DASHSCOPE_API_KEY 未配置")

    size = size or DEFAULT_IMAGE_SIZE
    use_configured_endpoint()

    messages = [
        {
            "role": "user",
            "content": [{"text": prompt}]
        }
    ]
    logger.info(f"调用 DashScope Image API, size={size}, prompt: {prompt[:50]}...")

    def request():
        return MultiModalConversation.call(
            api_key=DASHSCOPE_API_KEY,
            model=DASHSCOPE_IMAGE_MODEL,
            messages=messages,
            result_format='message',
            stream=False,
            watermark=False,
            prompt_extend=False,
            negative_prompt='',
            size=size
        )

    return call_with_retry("DashScope Image", request, _extract_image_url)
