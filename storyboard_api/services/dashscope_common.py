# -*- coding: utf-8 -*-
"""
DashScope 调用的公共部分：统一 base url，以及带指数退避的重试
"""
import time
from http import HTTPStatus
from typing import Any, Callable, TypeVar

import dashscope

from storyboard_api.core import config
from storyboard_api.core.logging import logger

T = TypeVar("T")


class DashScopeCallError(RuntimeError):
    """多次重试后仍失败"""


def use_configured_endpoint() -> None:
    dashscope.base_http_api_url = config.DASHSCOPE_BASE_URL


def describe_error(response: Any) -> str:
    return (
        f"HTTP返回码：{getattr(response, 'status_code', '未知')}, "
        f"错误码：{getattr(response, 'code', '未知')}, "
        f"错误信息：{getattr(response, 'message', '未知')}"
    )


def call_with_retry(label: str, request: Callable[[], Any], parse: Callable[[Any], T]) -> T:
    """
    发起请求并解析响应，失败按 API_RETRY_BASE_DELAY ** n 秒退避重试

    Args:
        label: 日志里的调用名称
        request: 无参函数，返回 DashScope 响应对象
        parse: 从 200 响应中取结果；取不到时抛异常，同样计入重试

    Returns:
        parse 的返回值；用尽重试次数抛出 DashScopeCallError
    """
    attempts = max(1, config.API_RETRY_ATTEMPTS)
    last_error = None

    for attempt in range(1, attempts + 1):
        try:
            response = request()
            if response.status_code != HTTPStatus.OK:
                raise ValueError(describe_error(response))
            return parse(response)
        except Exception as e:
            last_error = e
            logger.warning(f"{label} 调用失败 (尝试 {attempt}/{attempts}): {e}")
        if attempt < attempts:
            wait_time = config.API_RETRY_BASE_DELAY ** attempt
            logger.info(f"等待 {wait_time} 秒后重试...")
            time.sleep(wait_time)

    logger.error(f"{label} 多次调用失败: {last_error}")
    raise DashScopeCallError(f"{label} 调用失败: {last_error}")
