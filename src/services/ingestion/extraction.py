"""Text-extraction collaborators for result and news collection.

An extraction client takes a natural-language instruction plus a
description of the JSON shape the caller wants, and returns free text
that is *expected* to contain one JSON object.  Nothing here parses the
text -- see :mod:`src.services.ingestion.parsing`.

Two backends are provided:

* :class:`GeminiExtractionClient` -- Vertex AI Gemini, prompted to answer
  from its own knowledge of the named outlets.
* :class:`TavilyExtractionClient` -- the Tavily web-search API, whose
  generated answer carries the JSON and whose result URLs are returned
  as citations.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Final, Protocol, runtime_checkable

import httpx
import structlog
import vertexai
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from vertexai.generative_models import (
    Content,
    GenerationConfig,
    GenerativeModel,
    Part,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

EXTRACTION_SYSTEM_PROMPT: Final[str] = """\
You are a data extraction agent for a live Bangladesh election results \
dashboard.  You read news coverage of the 13th National Parliament \
Election and report constituency results as machine-readable JSON.

RULES
- Respond with exactly one JSON object and nothing else.
- Only include data you are confident about.  Omit constituencies you \
have no figures for instead of guessing.
- Vote counts are plain integers without separators.
- Map party names to ids: BNP="bnp", Jamaat-e-Islami="jamaat", \
Jatiya Party (Ershad)="jp-ershad", National Citizen Party="ncp", \
Islami Andolan Bangladesh="islami-andolan", Gono Forum="gonoforum", \
JSD="jasod", Workers Party="workers-party", Independent="independent", \
anything else="others".\
"""

_TAVILY_SEARCH_URL: Final[str] = "https://api.tavily.com/search"
_TAVILY_MAX_RESULTS: Final[int] = 5


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ExtractionResponse:
    """Raw text returned by an extraction backend."""

    text: str
    citations: list[str] = field(default_factory=list)
    provider: str = "gemini"
    processing_time_ms: float = 0.0


@runtime_checkable
class ExtractionClient(Protocol):
    """Anything that can turn an instruction into JSON-bearing text."""

    async def extract(self, instruction: str, schema_hint: str) -> ExtractionResponse: ...


def build_prompt(instruction: str, schema_hint: str) -> str:
    """Combine a source instruction with the JSON shape it must answer in."""
    return (
        f"{instruction}\n\n"
        f"Return results in this exact JSON format:\n{schema_hint}\n\n"
        "IMPORTANT: Only include data you are confident about."
    )


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------


class GeminiExtractionClient:
    """Vertex AI Gemini extraction backend.

    Parameters
    ----------
    project_id:
        GCP project hosting Vertex AI.
    region:
        Vertex AI location.
    model_name:
        Gemini model id.
    temperature:
        Sampling temperature; kept low so repeated fetches agree.
    """

    def __init__(
        self,
        project_id: str,
        region: str = "asia-south1",
        model_name: str = "gemini-2.5-flash-lite",
        temperature: float = 0.1,
        max_output_tokens: int = 8192,
    ) -> None:
        self._project_id = project_id
        self._region = region
        self._model_name = model_name
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._model: GenerativeModel | None = None
        self._initialized = False

    def _initialize(self) -> None:
        """Lazily initialize the Vertex AI SDK and model handle."""
        if self._initialized:
            return
        vertexai.init(project=self._project_id, location=self._region)
        self._model = GenerativeModel(
            model_name=self._model_name,
            system_instruction=[Part.from_text(EXTRACTION_SYSTEM_PROMPT)],
        )
        self._initialized = True
        logger.info(
            "extraction.gemini_initialized",
            project=self._project_id,
            region=self._region,
            model=self._model_name,
        )

    def _get_model(self) -> GenerativeModel:
        self._initialize()
        assert self._model is not None  # noqa: S101
        return self._model

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def extract(self, instruction: str, schema_hint: str) -> ExtractionResponse:
        start = time.perf_counter()
        model = self._get_model()

        response = await model.generate_content_async(
            contents=[
                Content(
                    role="user",
                    parts=[Part.from_text(build_prompt(instruction, schema_hint))],
                )
            ],
            generation_config=GenerationConfig(
                temperature=self._temperature,
                max_output_tokens=self._max_output_tokens,
            ),
        )

        elapsed_ms = (time.perf_counter() - start) * 1000
        usage = response.usage_metadata
        logger.debug(
            "extraction.gemini_complete",
            input_tokens=usage.prompt_token_count if usage else 0,
            output_tokens=usage.candidates_token_count if usage else 0,
            time_ms=round(elapsed_ms, 1),
        )
        return ExtractionResponse(
            text=response.text if response.text else "",
            provider="gemini",
            processing_time_ms=elapsed_ms,
        )


# ---------------------------------------------------------------------------
# Tavily
# ---------------------------------------------------------------------------


class TavilyExtractionClient:
    """Tavily web-search extraction backend.

    The search is run with ``include_answer`` so Tavily's generated
    answer carries the JSON; the URLs of the top results are returned as
    citations.

    Parameters
    ----------
    api_key:
        Tavily API key.
    timeout:
        Per-request timeout in seconds.
    http_client:
        Optional shared client; one is created (and owned) otherwise.
    """

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def extract(self, instruction: str, schema_hint: str) -> ExtractionResponse:
        start = time.perf_counter()
        query = (
            f"{instruction} Output must be valid JSON matching the format: {schema_hint}"
        )
        response = await self._http.post(
            _TAVILY_SEARCH_URL,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={
                "query": query,
                "search_depth": "advanced",
                "topic": "general",
                "days": 1,
                "max_results": _TAVILY_MAX_RESULTS,
                "include_answer": True,
            },
        )
        response.raise_for_status()
        payload = response.json()

        answer = payload.get("answer") or ""
        if not answer:
            raise ValueError("No answer received from Tavily")

        citations = [
            item["url"]
            for item in payload.get("results") or []
            if isinstance(item, dict) and item.get("url")
        ]
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "extraction.tavily_complete",
            citations=len(citations),
            time_ms=round(elapsed_ms, 1),
        )
        return ExtractionResponse(
            text=answer,
            citations=citations,
            provider="tavily",
            processing_time_ms=elapsed_ms,
        )
