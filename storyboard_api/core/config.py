import os
from pathlib import Path

# 配置中心：集中读取环境变量并设定默认值，便于生产环境注入和本地开发调试
PROJECT_ROOT = Path(os.getenv("STORYBOARD_PROJECT_ROOT", Path(__file__).resolve().parents[2]))

OUTPUT_DIR: Path = Path(os.getenv("STORYBOARD_OUTPUT_DIR", str(PROJECT_ROOT / "result")))

SERVICE_PORT: int = int(os.getenv("SERVICE_PORT", "12345"))

# 初始化必要目录
OUTPUT_DIR.mkdir(exist_ok=True, parents=True)

# 任务队列：本地持久化，仅保留最近 N 条
TASK_STORE_PATH: Path = Path(os.getenv("TASK_STORE_PATH", str(OUTPUT_DIR / "storyboard_tasks.json")))
TASK_QUEUE_LIMIT: int = int(os.getenv("TASK_QUEUE_LIMIT", "50"))

# DashScope API 配置
DASHSCOPE_API_KEY: str = os.getenv("DASHSCOPE_API_KEY", "")
DASHSCOPE_BASE_URL: str = os.getenv("DASHSCOPE_BASE_URL", "https://dashscope.aliyuncs.com/api/v1")
DASHSCOPE_LLM_MODEL: str = os.getenv("DASHSCOPE_LLM_MODEL", "qwen-plus")
DASHSCOPE_IMAGE_MODEL: str = os.getenv("DASHSCOPE_IMAGE_MODEL", "qwen-image-plus")
DASHSCOPE_VIDEO_MODEL: str = os.getenv("DASHSCOPE_VIDEO_MODEL", "wan2.5-i2v-preview")
DEFAULT_IMAGE_SIZE: str = os.getenv("DEFAULT_IMAGE_SIZE", "928*1664")
DEFAULT_VIDEO_RESOLUTION: str = os.getenv("DEFAULT_VIDEO_RESOLUTION", "480P")
DEFAULT_VIDEO_DURATION: int = int(os.getenv("DEFAULT_VIDEO_DURATION", "5"))
API_RETRY_ATTEMPTS: int = int(os.getenv("API_RETRY_ATTEMPTS", "3"))
API_RETRY_BASE_DELAY: int = int(os.getenv("API_RETRY_BASE_DELAY", "2"))

# 文生图批量并发数
IMAGE_MAX_CONCURRENCY: int = int(os.getenv("IMAGE_MAX_CONCURRENCY", "2"))

# 日志：级别与保留时长可由环境变量覆盖
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR: Path = Path(os.getenv("LOG_DIR", str(OUTPUT_DIR / "log")))
LOG_RETENTION: str = os.getenv("LOG_RETENTION", "14 days")
