"""site_audit.analysis.duplicates: near-duplicate detection over a crawled page set.

Every page is reduced to a set of overlapping word n-grams ("shingles"). All
page pairs are compared with Jaccard similarity; pairs at or above the
threshold are joined with union-find, and every resulting group of two or more
pages is reported as a :class:`DuplicateCluster`.

A second, optional signal catches pages that are mostly *contained* in another
page (archive pages repeating a post, for instance): if the smaller page is
large enough and at least 85% of its shingles occur in the other page, the
pair scores between 0.85 and 0.95 even when its Jaccard similarity is low.

The analysis is deterministic for a given input order.
"""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from site_audit.config import AuditConfig
from site_audit.crawler.models import CrawledPage
from site_audit.parser.html_parser import extract_text

__all__ = [
    "DuplicatePair",
    "DuplicateCluster",
    "AnalysisResult",
    "DuplicateContentAnalyzer",
    "clean_text",
    "create_shingles",
    "jaccard_similarity",
    "subset_similarity",
]

logger = logging.getLogger("SiteAudit")

_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class DuplicatePair:
    url_a: str
    url_b: str
    similarity: float
    title_a: str
    title_b: str
    method: str = "jaccard"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "urlA": self.url_a,
            "urlB": self.url_b,
            "similarity": round(self.similarity * 100),
            "titleA": self.title_a,
            "titleB": self.title_b,
            "method": self.method,
        }


@dataclass(slots=True)
class DuplicateCluster:
    member_urls: List[str]
    similarity_score: float
    representative_url: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "memberUrls": list(self.member_urls),
            "similarityScore": self.similarity_score,
            "representativeUrl": self.representative_url,
        }


@dataclass(slots=True)
class AnalysisResult:
    pages_analyzed: int = 0
    duplicates_found: int = 0
    clusters: List[DuplicateCluster] = field(default_factory=list)
    pairs: List[DuplicatePair] = field(default_factory=list)
    pages_skipped: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "pagesAnalyzed": self.pages_analyzed,
            "duplicatesFound": self.duplicates_found,
            "clusters": [c.as_dict() for c in self.clusters],
            "pairs": [p.as_dict() for p in self.pairs],
            "pagesSkipped": self.pages_skipped,
        }


def clean_text(text: str) -> str:
    """Lower-case, replace punctuation with spaces, collapse whitespace."""
    text = _NON_WORD_RE.sub(" ", text.lower())
    return _SPACE_RE.sub(" ", text).strip()


def create_shingles(words: Sequence[str], size: int = 3) -> Set[str]:
    """Overlapping ``size``-word shingles; a shorter text becomes a single shingle."""
    if not words:
        return set()
    if len(words) < size:
        return {" ".join(words)}
    return {" ".join(words[i : i + size]) for i in range(len(words) - size + 1)}


def jaccard_similarity(a: Set[str], b: Set[str]) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    intersection = len(a & b)
    return intersection / (len(a) + len(b) - intersection)


def subset_similarity(
    smaller: Set[str],
    larger: Set[str],
    threshold: float = 0.85,
    min_shingles: int = 10,
    min_size_ratio: float = 0.6,
) -> Optional[float]:
    """Score for "``smaller`` is mostly contained in ``larger``", or None.

    Small pages and pages that are only a small block of the other one are
    ignored. The score maps containment ``threshold..1`` onto ``0.85..0.95``.
    """
    if not smaller or not larger or len(smaller) < min_shingles:
        return None
    if len(smaller) / len(larger) < min_size_ratio:
        return None
    containment = len(smaller & larger) / len(smaller)
    if containment < threshold:
        return None
    return min(0.85 + (containment - threshold) * (0.1 / (1 - threshold)), 0.95)


class _UnionFind:
    """Disjoint sets over ``0..n-1``; the root is always the smallest index."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, item: int) -> int:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            self.parent[max(ra, rb)] = min(ra, rb)


@dataclass(slots=True)
class _Prepared:
    position: int
    page: CrawledPage
    shingles: Set[str]


class DuplicateContentAnalyzer:
    """Clusters pages by shingle similarity."""

    def __init__(
        self,
        threshold: float = 0.8,
        shingle_size: int = 3,
        min_words: int = 0,
        detect_subsets: bool = True,
        containment_threshold: float = 0.85,
        min_subset_shingles: int = 10,
        min_size_ratio: float = 0.6,
    ) -> None:
        if not 0 < threshold <= 1:
            raise ValueError("threshold must be in (0, 1]")
        if shingle_size < 1:
            raise ValueError("shingle_size must be >= 1")
        self.threshold = threshold
        self.shingle_size = shingle_size
        self.min_words = min_words
        self.detect_subsets = detect_subsets
        self.containment_threshold = containment_threshold
        self.min_subset_shingles = min_subset_shingles
        self.min_size_ratio = min_size_ratio

    @classmethod
    def from_config(cls, config: AuditConfig) -> DuplicateContentAnalyzer:
        return cls(
            threshold=config.similarity_threshold,
            shingle_size=config.shingle_size,
            min_words=config.min_words,
            detect_subsets=config.detect_subsets,
        )

    def words(self, content: str) -> List[str]:
        """Normalized word list of a page body (markup stripped)."""
        cleaned = clean_text(extract_text(content))
        return cleaned.split(" ") if cleaned else []

    def _prepare(self, pages: Sequence[CrawledPage]) -> Tuple[List[_Prepared], int]:
        prepared: List[_Prepared] = []
        seen: Set[str] = set()
        skipped = 0
        for page in pages:
            if page.url in seen:
                skipped += 1
                continue
            try:
                words = self.words(page.content)
            except Exception as exc:
                logger.warning("Skipping page that could not be normalized: %s (%s)", page.url, exc)
                skipped += 1
                continue
            if not words or len(words) < self.min_words:
                logger.debug("Skipping page with insufficient content: %s (%d words)", page.url, len(words))
                skipped += 1
                continue
            seen.add(page.url)
            prepared.append(_Prepared(len(prepared), page, create_shingles(words, self.shingle_size)))
        return prepared, skipped

    def _compare(self, a: Set[str], b: Set[str]) -> Tuple[float, str]:
        similarity = jaccard_similarity(a, b)
        if similarity >= self.threshold or not self.detect_subsets:
            return similarity, "jaccard"
        for smaller, larger in ((a, b), (b, a)):
            subset = subset_similarity(
                smaller,
                larger,
                threshold=self.containment_threshold,
                min_shingles=self.min_subset_shingles,
                min_size_ratio=self.min_size_ratio,
            )
            if subset is not None and subset > similarity:
                return subset, "subset"
        return similarity, "jaccard"

    def analyze(self, pages: Sequence[CrawledPage]) -> AnalysisResult:
        prepared, skipped = self._prepare(pages)
        result = AnalysisResult(pages_analyzed=len(prepared), pages_skipped=skipped)
        if len(prepared) < 2:
            logger.info("Not enough pages to compare (%d)", len(prepared))
            return result

        logger.info("Analyzing %d pages for duplicates", len(prepared))
        uf = _UnionFind(len(prepared))
        edges: List[Tuple[int, int, float]] = []
        for i in range(len(prepared)):
            for j in range(i + 1, len(prepared)):
                a, b = prepared[i], prepared[j]
                similarity, method = self._compare(a.shingles, b.shingles)
                if similarity < self.threshold:
                    continue
                uf.union(i, j)
                edges.append((i, j, similarity))
                result.pairs.append(
                    DuplicatePair(
                        url_a=a.page.url,
                        url_b=b.page.url,
                        similarity=similarity,
                        title_a=a.page.title or a.page.url,
                        title_b=b.page.title or b.page.url,
                        method=method,
                    )
                )
                logger.debug("Duplicate: %s <-> %s (%.0f%%, %s)", a.page.url, b.page.url, similarity * 100, method)

        groups: Dict[int, List[int]] = defaultdict(list)
        for item in prepared:
            groups[uf.find(item.position)].append(item.position)
        edge_scores: Dict[int, List[float]] = defaultdict(list)
        for i, _, similarity in edges:
            edge_scores[uf.find(i)].append(similarity)

        for root in sorted(groups):
            members = groups[root]
            if len(members) < 2:
                continue
            representative = min(members, key=lambda pos: (prepared[pos].page.fetched_at, pos))
            scores = edge_scores[root]
            result.clusters.append(
                DuplicateCluster(
                    member_urls=[prepared[pos].page.url for pos in members],
                    similarity_score=round(sum(scores) / len(scores), 4),
                    representative_url=prepared[representative].page.url,
                )
            )
            result.duplicates_found += len(members)

        logger.info(
            "Duplicate analysis complete: %d clusters, %d pages affected",
            len(result.clusters),
            result.duplicates_found,
        )
        return result
