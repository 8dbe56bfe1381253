"""Exa service for search, answer and deep research tasks."""

import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from context_engine.core.errors import ProviderCreditsExhaustedError, ResearchSchemaValidationError
from context_engine.core.logging import get_logger

logger = get_logger(__name__)

EXA_BASE_URL = "https://api.exa.ai"
EXA_RESEARCH_MODEL = "exa-research"

_CREDITS_PATTERN = re.compile(r"credit|quota|insufficient balance|payment required", re.IGNORECASE)
_SCHEMA_PATTERN = re.compile(r"schema", re.IGNORECASE)


@dataclass
class ExaSearchResult:
    """One /search hit with its page text."""

    url: str
    text: str = ""
    title: str | None = None
    author: str | None = None
    published_date: str | None = None


@dataclass
class ExaAnswer:
    """Answer text plus citations from /answer."""

    answer: str
    citations: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ResearchTaskStatus:
    """Snapshot of a deep research task."""

    task_id: str
    status: str
    output: Any = None
    error: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_failed(self) -> bool:
        return self.status in ("failed", "canceled")


def is_credits_exhausted(status_code: int | None, message: str) -> bool:
    """Recognize Exa's out-of-credits responses."""
    return status_code == 402 or bool(_CREDITS_PATTERN.search(message or ""))


class ExaService:
    """
    Thin async client over the Exa REST API.

    Args:
        api_key: Exa API key
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("EXA_API_KEY not configured")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=EXA_BASE_URL,
            timeout=self.timeout,
            transport=self._transport,
            headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
        )

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        body = response.text
        if is_credits_exhausted(response.status_code, body):
            raise ProviderCreditsExhaustedError("exa", body[:200])
        response.raise_for_status()

    async def search(self, query: str, num_results: int = 5) -> list[ExaSearchResult]:
        """
        Run a /search call with page text contents.

        Raises:
            ProviderCreditsExhaustedError: If the account is out of credits
            httpx.HTTPStatusError: If the API request fails
        """
        async with self._client() as client:
            response = await client.post(
                "/search",
                json={"query": query, "numResults": num_results, "contents": {"text": True}},
            )
            self._raise_for_status(response)
            data = response.json()

        results = [
            ExaSearchResult(
                url=item.get("url", ""),
                text=item.get("text") or "",
                title=item.get("title"),
                author=item.get("author"),
                published_date=item.get("publishedDate"),
            )
            for item in data.get("results", [])
        ]
        logger.info(f"Exa /search returned {len(results)} results for: {query}")
        return results

    async def answer(self, query: str, system_prompt: str | None = None) -> ExaAnswer:
        """
        Ask /answer for a natural-language answer with citations.

        Raises:
            ProviderCreditsExhaustedError: If the account is out of credits
            httpx.HTTPStatusError: If the API request fails
        """
        payload: dict[str, Any] = {"query": query, "text": True}
        if system_prompt:
            payload["systemPrompt"] = system_prompt

        async with self._client() as client:
            response = await client.post("/answer", json=payload)
            self._raise_for_status(response)
            data = response.json()

        answer = data.get("answer") or ""
        if not isinstance(answer, str):
            answer = str(answer)
        return ExaAnswer(answer=answer, citations=data.get("citations") or [])

    async def create_research_task(
        self, instructions: str, output_schema: dict[str, Any]
    ) -> ResearchTaskStatus:
        """
        Submit a deep research task.

        Raises:
            ResearchSchemaValidationError: If Exa rejects the output schema
            ProviderCreditsExhaustedError: If the account is out of credits
            httpx.HTTPStatusError: If the API request fails
        """
        async with self._client() as client:
            response = await client.post(
                "/research/v1",
                json={
                    "model": EXA_RESEARCH_MODEL,
                    "instructions": instructions,
                    "outputSchema": output_schema,
                },
            )
            if response.status_code in (400, 422) and _SCHEMA_PATTERN.search(response.text):
                raise ResearchSchemaValidationError(None, response.text[:300])
            self._raise_for_status(response)
            data = response.json()

        task_id = data.get("researchId") or data.get("id")
        if not task_id:
            raise ValueError("Exa research response missing researchId")
        return ResearchTaskStatus(task_id=task_id, status=data.get("status", "pending"))

    async def get_research_task(self, task_id: str) -> ResearchTaskStatus:
        """
        Fetch the current state of a deep research task.

        Raises:
            ResearchSchemaValidationError: If the task failed schema validation
            httpx.HTTPStatusError: If the API request fails
        """
        async with self._client() as client:
            response = await client.get(f"/research/v1/{task_id}")
            self._raise_for_status(response)
            data = response.json()

        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message") or str(error)

        status = ResearchTaskStatus(
            task_id=task_id,
            status=data.get("status", "pending"),
            output=data.get("output"),
            error=error,
        )
        if status.is_failed and error and _SCHEMA_PATTERN.search(error):
            raise ResearchSchemaValidationError(task_id, error)
        return status


async def search_safe(exa: ExaService, query: str, num_results: int = 5) -> list[ExaSearchResult]:
    """
    Search with error handling - returns [] on failure.

    Credits exhaustion is not swallowed.
    """
    try:
        return await exa.search(query, num_results)
    except httpx.HTTPStatusError as e:
        logger.warning(f"Exa HTTP error for '{query}': {e.response.status_code}")
        return []
    except httpx.TimeoutException:
        logger.warning(f"Exa timeout for '{query}'")
        return []
    except httpx.HTTPError as e:
        logger.warning(f"Exa error for '{query}': {e}")
        return []
