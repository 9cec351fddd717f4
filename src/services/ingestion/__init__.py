"""Result and news collection for Nirbachon Live.

Asks AI search agents about the configured outlets, parses the
loosely-structured JSON they return into typed source reports, and
drives the collection cycle on an election-day phase timer.

Sources (tier):
  - EC / BSS official results     -- 1
  - Major national press           -- 2
  - International media            -- 3

Public API::

    from src.services.ingestion import (
        SourceRegistry,
        CollectionScheduler,
        NewsCollector,
        GeminiExtractionClient,
        TavilyExtractionClient,
    )
"""

from __future__ import annotations

from src.services.ingestion.extraction import (
    ExtractionClient,
    ExtractionResponse,
    GeminiExtractionClient,
    TavilyExtractionClient,
)
from src.services.ingestion.news import NewsCollectionResult, NewsCollector
from src.services.ingestion.parsing import ParsedEnvelope, parse_results_envelope
from src.services.ingestion.scheduler import (
    CollectionScheduler,
    CycleResult,
    get_collection_phase,
    interval_for_phase,
    sources_for_phase,
)
from src.services.ingestion.sources import SOURCE_CONFIGS, SourceConfig, SourceRegistry

__all__ = [
    "CollectionScheduler",
    "CycleResult",
    "ExtractionClient",
    "ExtractionResponse",
    "GeminiExtractionClient",
    "NewsCollectionResult",
    "NewsCollector",
    "ParsedEnvelope",
    "SOURCE_CONFIGS",
    "SourceConfig",
    "SourceRegistry",
    "TavilyExtractionClient",
    "get_collection_phase",
    "interval_for_phase",
    "parse_results_envelope",
    "sources_for_phase",
]
