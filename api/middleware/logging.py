"""
请求/响应日志中间件
记录HTTP请求与响应耗时；请求体按开关记录并对支付敏感字段脱敏
"""
import json
import time
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    日志记录中间件

    1. 记录请求信息（方法、路径、参数）
    2. 记录响应状态码与耗时
    3. 记录未处理异常后重新抛出
    """

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    # 敏感字段，日志中需要脱敏
    SENSITIVE_FIELDS = {
        "token", "secret", "api_key", "card_number", "cvc", "cvv",
        "payment_method_id", "source", "account_number", "routing_number",
    }

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.enable_body_log_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_log_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        request_info = await self._get_request_info(request)
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.perf_counter() - start_time,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
                **request_info,
            )
            raise

        duration = time.perf_counter() - start_time
        self._log_response(response, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _get_request_info(self, request: Request) -> dict:
        info: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
        }
        if request.method in ("POST", "PUT", "PATCH") and self._should_log_body(request):
            body = await self._extract_and_sanitize_body(request)
            if body is not None:
                info["body"] = body
        return info

    def _should_log_body(self, request: Request) -> bool:
        # X-Log-Body: true/false 可覆盖默认开关
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return bool(self.enable_body_log_default and settings.DEBUG)

    async def _extract_and_sanitize_body(self, request: Request) -> Any:
        body = await request.body()
        if not body:
            return None
        snippet = body[: self.max_body_log_bytes].decode("utf-8", errors="ignore")
        if "application/json" not in request.headers.get("content-type", "").lower():
            return snippet
        try:
            parsed = json.loads(snippet)
        except ValueError:
            return snippet
        return self._sanitize_data(parsed)

    def _sanitize_data(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: ("***" if k.lower() in self.SENSITIVE_FIELDS else self._sanitize_data(v)) for k, v in data.items()}
        if isinstance(data, list):
            return [self._sanitize_data(v) for v in data]
        return data

    @staticmethod
    def _log_response(response: Response, duration: float, request_info: dict) -> None:
        log_data = {"status_code": response.status_code, "duration": duration, **request_info}
        if response.status_code < 400:
            logger.info("request_completed", **log_data)
        elif response.status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
