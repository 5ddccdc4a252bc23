"""
Clients for the external evaluation engine.

The editor never evaluates rules itself: it posts the compiled rule and a test
context and reads back the verdict. Failures surface as EvaluationError and
are never retried here; retrying is the user's call.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_TEST_PATH = "/admin/rules/test"


class EvaluationError(RuntimeError):
    """The evaluation engine could not be reached or answered with an error."""


class EvaluationEngine(Protocol):
    async def evaluate(self, request: Dict[str, Any]) -> Dict[str, Any]:
        ...


class HttpEvaluationEngine:
    def __init__(self,
                 base_url: str,
                 timeout: float = 10.0,
                 path: str = DEFAULT_TEST_PATH,
                 headers: Optional[Dict[str, str]] = None):
        if not base_url:
            raise ValueError("Evaluation engine base_url is required")
        self.url = base_url.rstrip("/") + path
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}

    async def evaluate(self, request: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("POST %s", self.url)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url,
                    json=request,
                    headers=self.headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise EvaluationError(
                            f"Evaluation engine returned HTTP {response.status}: {body[:200]}"
                        )
                    return await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise EvaluationError(f"Evaluation engine timed out after {self.timeout}s") from exc
        except aiohttp.ClientError as exc:
            raise EvaluationError(f"Evaluation engine request failed: {exc}") from exc
        except ValueError as exc:
            raise EvaluationError(f"Evaluation engine returned invalid JSON: {exc}") from exc
