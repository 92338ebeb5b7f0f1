from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

# 通用响应结构与错误结构

class ErrorResponse(BaseModel):
    code: str = Field(..., description="错误代码")
    message: str = Field(..., description="错误信息")


# 分镜规范结构：所有输入格式最终都映射到这里

class ShotSubject(BaseModel):
    characters_present: Optional[str] = None
    expression: Optional[str] = None
    action: Optional[str] = None


class ShotPrompt(BaseModel):
    subject: Optional[ShotSubject] = None
    environment: Optional[str] = None
    time_of_day: Optional[str] = None
    weather: Optional[str] = None
    camera_angle: Optional[str] = None
    shot_size: Optional[str] = None


class StoryboardShot(BaseModel):
    id: str
    shot_number: int = Field(..., ge=1)
    prompt: Optional[ShotPrompt] = None
    prompt_text: str = Field(..., min_length=1, description="传给生成服务的权威提示词")


class BulkRule(BaseModel):
    id: str = ""
    find: str = ""
    replace: str = ""


# 任务队列

class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TaskStatus.SUCCESS, TaskStatus.ERROR, TaskStatus.CANCELLED})


class TaskItem(BaseModel):
    id: str
    type: Literal["image", "video"]
    status: TaskStatus = TaskStatus.RUNNING
    progress: float = Field(0.0, ge=0.0, le=1.0)
    shot_count: int = 0
    created_at: float
    updated_at: float
    project_id: Optional[str] = None
    script_id: Optional[str] = None
    script_name: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    outputs: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# 接口请求/响应

class ParseStoryboardRequest(BaseModel):
    text: str
    format: Literal["auto", "json", "csv"] = "auto"
    user_id: Optional[str] = None
    story_id: Optional[str] = None


class ParseStoryboardResponse(BaseModel):
    shots: List[StoryboardShot]
    strategy: str
    count: int


class BulkReplaceRequest(BaseModel):
    text: Optional[str] = None
    shots: Optional[List[StoryboardShot]] = None
    find: str = ""
    replace: str = ""
    rules: List[BulkRule] = Field(default_factory=list)


class BulkReplaceResponse(BaseModel):
    text: Optional[str] = None
    shots: Optional[List[StoryboardShot]] = None
    rule_count: int


class StoryboardPromptsRequest(BaseModel):
    script_text: str


class StoryboardPromptsResponse(BaseModel):
    text: str
    shots: List[StoryboardShot]
    demo: bool = False


class ImageBatchRequest(BaseModel):
    user_id: str
    story_id: str
    shot_ids: Optional[List[str]] = None
    size: Optional[str] = None
    script_name: Optional[str] = None


class ImageBatchResponse(BaseModel):
    task: TaskItem
    images: Dict[str, str]


class VideoBatchRequest(BaseModel):
    user_id: str
    story_id: str
    shot_ids: Optional[List[str]] = None
    prompt_overrides: Dict[str, str] = Field(default_factory=dict)
    script_name: Optional[str] = None


class VideoBatchResponse(BaseModel):
    task: TaskItem
    jobs: Dict[str, str]


class TaskListResponse(BaseModel):
    tasks: List[TaskItem]
    active: int


class VideoJobResponse(BaseModel):
    id: str
    status: str
    video_url: Optional[str] = None
    local_url: Optional[str] = None
    message: Optional[str] = None
