import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama

from storyline.core.errors import TextGenerationError

logger = logging.getLogger(__name__)

_CONNECTION_HINTS = ("connect", "connection", "refused", "unreachable")


def _is_transient(error: Exception) -> bool:
    """Timeouts and connection failures are worth another attempt."""
    if isinstance(error, (asyncio.TimeoutError, ConnectionError, httpx.TransportError)):
        return True
    message = str(error).lower()
    return any(hint in message for hint in _CONNECTION_HINTS)


class OllamaClient:
    """
    Text generator backed by a local Ollama server through LangChain.

    `available()` reflects configuration only. The enrichment and digest
    stages check it before spending any calls; every call failure surfaces
    as TextGenerationError.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        enabled: bool = True,
        temperature: float = 0.3,
        max_tokens: int = 512,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 120.0,
    ):
        # ChatOllama talks to the native API, not the OpenAI-compatible /v1 one
        base_url = base_url.rstrip("/")
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]

        self.base_url = base_url
        self.model = model
        self.enabled = enabled
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout

        self.llm = ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            num_predict=max_tokens,
            num_ctx=4096,
        )

    def available(self) -> bool:
        return self.enabled and bool(self.base_url) and bool(self.model)

    async def _generate(self, messages: List[BaseMessage]) -> Any:
        """
        Invoke the model, retrying transient failures with linear backoff.

        Raises:
            TextGenerationError: on a non-transient failure, or once retries run out
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
            except Exception as e:
                if not _is_transient(e):
                    raise TextGenerationError(f"Ollama call failed: {e}") from e
                if attempt == self.max_retries:
                    raise TextGenerationError(
                        f"Ollama unreachable after {attempt} attempts "
                        f"(base_url={self.base_url}, model={self.model}): {e!r}"
                    ) from e
                logger.warning(f"Attempt {attempt}/{self.max_retries} failed ({e!r}), retrying")
                await asyncio.sleep(self.retry_delay * attempt)

    async def evaluate(self, prompt: str, system_prompt: Optional[str] = None) -> Dict[str, Any]:
        """
        Run a prompt and return the response with metadata.
        """
        messages: List[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))

        start = time.perf_counter()
        response = await self._generate(messages)
        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(f"LLM response received (latency: {latency_ms}ms)")

        return {
            "raw": response,
            "content": response.content,
            "latency_ms": latency_ms,
        }

    async def chat(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        result = await self.evaluate(prompt, system_prompt=system_prompt)
        return str(result["content"]).strip()

    async def health_check(self) -> bool:
        """Whether the server answers on /api/tags."""
        url = f"{self.base_url}/api/tags"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False

        if resp.status_code != 200:
            logger.error(f"Ollama health check failed: {resp.status_code} {resp.text[:200]}")
            return False
        return True
