# -*- coding: utf-8 -*-
"""
批量任务队列：记录生图/视频提交等长耗时批量操作的状态与进度。

状态流转 pending -> running -> success / error / cancelled，终态之后不再变化。
列表新任务在前，超过上限时淘汰最旧的；每次变更都通过注入的 save 持久化整个列表，
load 读到缺失或损坏的数据时得到空队列。
"""
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from storyboard_api.core.config import TASK_QUEUE_LIMIT
from storyboard_api.core.logging import logger
from storyboard_api.models.schemas import TaskItem, TaskStatus

LoadFn = Callable[[], Any]
SaveFn = Callable[[List[Dict[str, Any]]], None]


class TaskQueueError(Exception):
    pass


class TaskNotFoundError(TaskQueueError, KeyError):
    pass


class TaskStateError(TaskQueueError):
    pass


def _new_task_id() -> str:
    return f"task-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class TaskQueue:
    def __init__(self, load: Optional[LoadFn] = None, save: Optional[SaveFn] = None, limit: int = TASK_QUEUE_LIMIT):
        self._save = save
        self._limit = limit
        self._lock = threading.RLock()
        self._tasks: List[TaskItem] = self._load(load)

    def _load(self, load: Optional[LoadFn]) -> List[TaskItem]:
        if load is None:
            return []
        try:
            raw = load()
        except Exception as e:
            logger.warning(f"任务队列加载失败，使用空队列: {e}")
            return []
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning(f"任务队列数据格式错误 ({type(raw).__name__})，使用空队列")
            return []

        tasks = []
        for item in raw:
            try:
                tasks.append(TaskItem.model_validate(item))
            except ValidationError as e:
                logger.warning(f"跳过无效的任务记录: {e.error_count()} 个错误")
        return tasks[: self._limit]

    def _persist(self) -> None:
        if self._save is None:
            return
        try:
            self._save([task.model_dump(mode="json") for task in self._tasks])
        except Exception as e:
            logger.error(f"任务队列持久化失败: {e}")

    def _find(self, task_id: str) -> Optional[TaskItem]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def _update(self, task_id: str, action: str, **patch) -> Optional[TaskItem]:
        with self._lock:
            task = self._find(task_id)
            if task is None:
                logger.warning(f"任务不存在，忽略 {action}: {task_id}")
                return None
            if task.is_terminal:
                logger.warning(f"任务已结束 ({task.status.value})，忽略 {action}: {task_id}")
                return None
            for key, value in patch.items():
                setattr(task, key, value)
            task.updated_at = time.time()
            self._persist()
            return task.model_copy(deep=True)

    def enqueue(
        self,
        task_type: str,
        shot_count: int,
        params: Optional[Dict[str, Any]] = None,
        status: TaskStatus = TaskStatus.RUNNING,
        project_id: Optional[str] = None,
        script_id: Optional[str] = None,
        script_name: Optional[str] = None,
    ) -> str:
        now = time.time()
        task = TaskItem(
            id=_new_task_id(),
            type=task_type,
            status=status,
            progress=0.0,
            shot_count=shot_count,
            created_at=now,
            updated_at=now,
            project_id=project_id,
            script_id=script_id,
            script_name=script_name,
            params=params or {},
        )
        with self._lock:
            self._tasks.insert(0, task)
            evicted = self._tasks[self._limit:]
            del self._tasks[self._limit:]
            self._persist()
        if evicted:
            logger.info(f"任务队列超过 {self._limit} 条，淘汰最旧的 {len(evicted)} 条")
        logger.info(f"任务入列: {task.id}, 类型={task_type}, 分镜数={shot_count}")
        return task.id

    def update_progress(self, task_id: str, ratio: float) -> Optional[TaskItem]:
        ratio = max(0.0, min(1.0, float(ratio)))
        return self._update(task_id, "update_progress", progress=ratio, status=TaskStatus.RUNNING)

    def complete(self, task_id: str, outputs: Optional[Dict[str, Any]] = None) -> Optional[TaskItem]:
        task = self._update(task_id, "complete", status=TaskStatus.SUCCESS, progress=1.0, outputs=outputs)
        if task is not None:
            logger.info(f"任务完成: {task_id}")
        return task

    def fail(self, task_id: str, error: Optional[str] = None) -> Optional[TaskItem]:
        task = self._update(task_id, "fail", status=TaskStatus.ERROR, error=error)
        if task is not None:
            logger.error(f"任务失败: {task_id}, err={error}")
        return task

    def cancel(self, task_id: str) -> TaskItem:
        """取消任务；对已取消的任务是空操作，对已成功/失败的任务报错"""
        with self._lock:
            task = self._find(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            if task.status == TaskStatus.CANCELLED:
                return task.model_copy(deep=True)
            if task.is_terminal:
                raise TaskStateError(f"任务已结束 ({task.status.value})，无法取消: {task_id}")
            task.status = TaskStatus.CANCELLED
            task.updated_at = time.time()
            self._persist()
            cancelled = task.model_copy(deep=True)
        logger.info(f"任务已取消: {task_id}")
        return cancelled

    def is_cancelled(self, task_id: str) -> bool:
        with self._lock:
            task = self._find(task_id)
            return task is not None and task.status == TaskStatus.CANCELLED

    def get(self, task_id: str) -> Optional[TaskItem]:
        with self._lock:
            task = self._find(task_id)
            return task.model_copy(deep=True) if task is not None else None

    def list(self) -> List[TaskItem]:
        with self._lock:
            return [task.model_copy(deep=True) for task in self._tasks]

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for task in self._tasks if task.status in (TaskStatus.PENDING, TaskStatus.RUNNING))

    def clear_finished(self) -> int:
        with self._lock:
            before = len(self._tasks)
            self._tasks = [task for task in self._tasks if not task.is_terminal]
            removed = before - len(self._tasks)
            if removed:
                self._persist()
        return removed

    def __len__(self) -> int:
        return len(self._tasks)
