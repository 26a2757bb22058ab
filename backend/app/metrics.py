import logging
import time
from collections import Counter, deque
from typing import Deque, Dict, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from shared.config import settings

logger = logging.getLogger("api_metrics")
logger.setLevel(logging.INFO)

formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
logger.addHandler(console_handler)

WINDOW_SECONDS = 3600


class RequestWindow:
    """Requests served in the last hour, grouped by route path."""

    def __init__(self, window_seconds: float = WINDOW_SECONDS):
        self.window_seconds = window_seconds
        self._requests: Deque[Tuple[float, str]] = deque()
        self._per_path: Counter = Counter()

    def add(self, path: str, now: float = None) -> None:
        now = time.perf_counter() if now is None else now
        self._requests.append((now, path))
        self._per_path[path] += 1
        self._evict(now)

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._requests and self._requests[0][0] < cutoff:
            _, path = self._requests.popleft()
            self._per_path[path] -= 1
            if not self._per_path[path]:
                del self._per_path[path]

    def total(self, now: float = None) -> int:
        self._evict(time.perf_counter() if now is None else now)
        return len(self._requests)

    def by_path(self, now: float = None) -> Dict[str, int]:
        self._evict(time.perf_counter() if now is None else now)
        return dict(self._per_path)


request_window = RequestWindow()


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        path = request.url.path

        request_window.add(path, start_time)

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        message = (
            f"{request.method} {path} | "
            f"Status: {response.status_code} | "
            f"Duration: {process_time:.4f}s | "
            f"Requests last hour: {request_window.total()} "
            f"(this path: {request_window.by_path().get(path, 0)})"
        )
        if process_time > settings.SLOW_REQUEST_SECONDS:
            logger.warning(f"Slow analytics request: {message}")
        else:
            logger.info(message)

        return response
