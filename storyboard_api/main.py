# -*- coding: utf-8 -*-
import json

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.exceptions import RequestValidationError

from storyboard_api.core.config import OUTPUT_DIR, SERVICE_PORT
from storyboard_api.core.logging import logger
from storyboard_api.api.routes import router as api_router
from storyboard_api.services.storyboard import StoryboardParseError


app = FastAPI(title="Storyboard Parsing Service", version="1.0.0")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"HTTP {request.method} {request.url}")
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"请求处理中异常: {e}")
        raise


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"全局异常: {exc}")
    return JSONResponse(status_code=500, content={"code": "INTERNAL_ERROR", "message": str(exc)})


@app.exception_handler(StoryboardParseError)
async def storyboard_parse_exception_handler(request: Request, exc: StoryboardParseError):
    logger.warning(f"分镜解析失败 [{exc.code}]: {exc.message}")
    return JSONResponse(status_code=422, content={"code": exc.code, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    try:
        body = await request.body()
    except Exception:
        body = b""
    errors = json.loads(json.dumps(exc.errors(), ensure_ascii=False, default=str))
    logger.error(f"请求 422 验证错误:\n错误详情: {json.dumps(errors, indent=2, ensure_ascii=False)}\n请求体: {body.decode(errors='ignore')}")
    return JSONResponse(status_code=422, content={"code": "VALIDATION_ERROR", "errors": errors})


app.include_router(api_router)

try:
    app.mount("/static", StaticFiles(directory=str(OUTPUT_DIR), html=False), name="static")
except Exception as e:
    logger.error(f"静态目录挂载失败: {e}")


if __name__ == "__main__":
    uvicorn.run("storyboard_api.main:app", host="0.0.0.0", port=SERVICE_PORT, reload=True)
