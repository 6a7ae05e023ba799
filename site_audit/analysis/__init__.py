"""Corpus analyzers: duplicate content clustering and noindex detection."""

from site_audit.analysis.duplicates import (
    AnalysisResult,
    DuplicateCluster,
    DuplicateContentAnalyzer,
    DuplicatePair,
)
from site_audit.analysis.noindex import NoindexAnalysisResult, NoindexCrawler, NoindexPage

__all__ = [
    "AnalysisResult",
    "DuplicateCluster",
    "DuplicateContentAnalyzer",
    "DuplicatePair",
    "NoindexAnalysisResult",
    "NoindexCrawler",
    "NoindexPage",
]
