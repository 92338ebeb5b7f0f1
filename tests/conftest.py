from __future__ import annotations

import os
import tempfile

# 配置在导入时读取环境变量，必须先于 storyboard_api 的任何导入
os.environ.setdefault("STORYBOARD_OUTPUT_DIR", tempfile.mkdtemp(prefix="storyboard-test-"))
os.environ["DASHSCOPE_API_KEY"] = ""
