import httpx
import logging
from typing import Dict, Any, List, Optional

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from cruise_quotes.schemas import QuoteParseResult
from cruise_quotes.services.exceptions import EmptyResponseError, TransportError
from cruise_quotes.services.llm.prompts import PROMPT_VERSION, render_quote_parse_prompt
from cruise_quotes.services.llm.response_parser import parse_quote_response
from cruise_quotes.settings import settings

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    # 네트워크 오류와 5xx 만 재시도, 4xx 는 즉시 실패
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class OllamaClient:
    """
    Ollama /api/chat 기반 견적 추출 클라이언트.

    extract_quotes() 는 QuoteParseResult 를 반환하거나
    TransportError / EmptyResponseError / SchemaViolationError 를 올립니다.
    """

    prompt_version = PROMPT_VERSION

    def __init__(
        self,
        base_url: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_count: Optional[int] = None,
        retry_wait_min: float = 2.0,
        json_format: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model_name = model_name or settings.ollama_model
        self.timeout = settings.ollama_timeout if timeout is None else timeout
        self.retry_count = retry_count or settings.ollama_retry_count
        self.retry_wait_min = retry_wait_min
        self.json_format = settings.ollama_json_format if json_format is None else json_format
        self._transport = transport
        logger.info(f"OllamaClient initialized: model={self.model_name}, base_url={self.base_url}")

    @property
    def model_version(self) -> str:
        return f"ollama:{self.model_name}"

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/api/chat"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()
            return resp.json()

    async def _chat(self, messages: List[Dict[str, str]], format: Optional[str] = None) -> Dict[str, Any]:
        """
        Internal method to call /api/chat endpoint.
        """
        payload: Dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "stream": False,
        }
        if format:
            payload["format"] = format

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_count),
            wait=wait_exponential(multiplier=1, min=self.retry_wait_min, max=30),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"[OLLAMA] 재시도 중... ({retry_state.attempt_number}회째): {retry_state.outcome.exception()}"
            ),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._post(payload)
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"ollama returned HTTP {e.response.status_code}",
                model=self.model_name,
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            # ValueError: 응답 본문이 JSON 이 아님
            raise TransportError(f"ollama request failed: {e}", model=self.model_name) from e
        raise TransportError("ollama request was not attempted", model=self.model_name)

    async def generate(self, prompt: str) -> str:
        response = await self._chat(
            [{"role": "user", "content": prompt}],
            format="json" if self.json_format else None,
        )
        return (response.get("message") or {}).get("content", "") or ""

    async def extract_quotes(self, text: str) -> QuoteParseResult:
        prompt = render_quote_parse_prompt(text)
        content = await self.generate(prompt)
        if not content.strip():
            raise EmptyResponseError("model returned an empty response", model=self.model_name)
        logger.debug(f"[OLLAMA] raw response ({len(content)} chars): {content[:500]}")
        return parse_quote_response(content)
