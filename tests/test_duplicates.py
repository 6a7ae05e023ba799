# File: tests/test_duplicates.py
from __future__ import annotations

import pytest

from conftest import make_page
from site_audit.analysis.duplicates import (
    DuplicateContentAnalyzer,
    clean_text,
    create_shingles,
    jaccard_similarity,
    subset_similarity,
)
from site_audit.config import AuditConfig

ARTICLE = (
    "Our clinic offers family medicine pediatrics and dental care in the city centre. "
    "Appointments can be booked online or by phone and most visits are covered by insurance. "
    "The team of twelve doctors speaks three languages and works seven days a week."
)
OTHER = (
    "Quarterly revenue grew because hardware sales doubled while subscription churn fell sharply. "
    "Analysts expect margins to widen next year as logistics costs normalise across regions."
)
THIRD = (
    "Gardening tips for spring: prune roses early, water tomatoes deeply and mulch beds against weeds. "
    "Compost improves soil structure and feeds worms over winter."
)


def test_clean_text():
    assert clean_text("Hello,   World!\nIt's <b>fine</b>") == "hello world it s b fine b"


def test_shingles_short_text_is_single_shingle():
    assert create_shingles(["only", "two"], 3) == {"only two"}
    assert create_shingles([], 3) == set()
    assert create_shingles(["a", "b", "c", "d"], 3) == {"a b c", "b c d"}


def test_jaccard():
    assert jaccard_similarity({"a", "b"}, {"a", "b"}) == 1.0
    assert jaccard_similarity({"a"}, {"b"}) == 0.0
    assert jaccard_similarity({"a", "b", "c"}, {"b", "c", "d"}) == 0.5


def test_subset_similarity_bounds():
    larger = {f"s{i}" for i in range(20)}
    smaller = {f"s{i}" for i in range(15)}
    assert subset_similarity(smaller, larger) == pytest.approx(0.95)
    # too small to be considered
    assert subset_similarity({"s1", "s2"}, larger) is None
    # smaller than 60% of the larger set
    assert subset_similarity({f"s{i}" for i in range(10)}, larger) is None
    # containment below 85%
    mixed = {f"s{i}" for i in range(12)} | {f"x{i}" for i in range(4)}
    assert subset_similarity(mixed, larger) is None


def test_identical_pages_cluster_with_full_similarity():
    pages = [make_page("https://a.test/1", ARTICLE), make_page("https://a.test/2", ARTICLE)]
    result = DuplicateContentAnalyzer().analyze(pages)

    assert result.pages_analyzed == 2
    assert result.duplicates_found == 2
    assert len(result.clusters) == 1
    cluster = result.clusters[0]
    assert cluster.similarity_score == 1.0
    assert set(cluster.member_urls) == {"https://a.test/1", "https://a.test/2"}
    assert result.pairs[0].as_dict()["similarity"] == 100
    assert result.pairs[0].method == "jaccard"


def test_disjoint_pages_are_not_clustered():
    pages = [make_page("https://a.test/1", ARTICLE), make_page("https://a.test/2", OTHER)]
    result = DuplicateContentAnalyzer().analyze(pages)

    assert result.clusters == []
    assert result.pairs == []
    assert result.duplicates_found == 0


def test_markup_is_ignored():
    html = f"<html><head><style>.x{{}}</style><script>track()</script></head><body><p>{ARTICLE}</p></body></html>"
    pages = [make_page("https://a.test/html", html), make_page("https://a.test/md", f"# {ARTICLE}")]
    result = DuplicateContentAnalyzer().analyze(pages)
    assert len(result.clusters) == 1


def test_transitive_grouping_and_representative():
    pages = [
        make_page("https://a.test/late", ARTICLE, minutes=10),
        make_page("https://a.test/other", OTHER, minutes=0),
        make_page("https://a.test/early", ARTICLE, minutes=1),
        make_page("https://a.test/third", ARTICLE, minutes=5),
        make_page("https://a.test/garden", THIRD, minutes=2),
    ]
    result = DuplicateContentAnalyzer().analyze(pages)

    assert len(result.clusters) == 1
    cluster = result.clusters[0]
    assert cluster.member_urls == ["https://a.test/late", "https://a.test/early", "https://a.test/third"]
    assert cluster.representative_url == "https://a.test/early"
    assert result.duplicates_found == 3
    assert len(result.pairs) == 3


def test_representative_tie_broken_by_input_order():
    pages = [make_page("https://a.test/b", ARTICLE), make_page("https://a.test/a", ARTICLE)]
    result = DuplicateContentAnalyzer().analyze(pages)
    assert result.clusters[0].representative_url == "https://a.test/b"


def test_each_page_in_one_cluster():
    pages = [
        make_page("https://a.test/1", ARTICLE),
        make_page("https://a.test/2", OTHER),
        make_page("https://a.test/3", ARTICLE),
        make_page("https://a.test/4", OTHER),
    ]
    result = DuplicateContentAnalyzer().analyze(pages)

    assert len(result.clusters) == 2
    members = [url for cluster in result.clusters for url in cluster.member_urls]
    assert len(members) == len(set(members)) == 4
    assert result.clusters[0].member_urls == ["https://a.test/1", "https://a.test/3"]


def test_subset_page_detected():
    body = " ".join(f"word{i}" for i in range(60))
    extended = body + " " + " ".join(f"extra{i}" for i in range(20))
    pages = [make_page("https://a.test/post", body), make_page("https://a.test/archive", extended)]

    result = DuplicateContentAnalyzer().analyze(pages)

    assert len(result.clusters) == 1
    assert result.pairs[0].method == "subset"
    assert 0.85 <= result.pairs[0].similarity <= 0.95

    plain = DuplicateContentAnalyzer(detect_subsets=False).analyze(pages)
    assert plain.clusters == []


def test_empty_and_short_pages_are_skipped():
    pages = [
        make_page("https://a.test/empty", "<html><body><script>x()</script></body></html>"),
        make_page("https://a.test/1", ARTICLE),
        make_page("https://a.test/2", ARTICLE),
    ]
    result = DuplicateContentAnalyzer().analyze(pages)
    assert result.pages_analyzed == 2
    assert result.pages_skipped == 1

    strict = DuplicateContentAnalyzer(min_words=100).analyze(pages)
    assert strict.pages_analyzed == 0
    assert strict.pages_skipped == 3
    assert strict.clusters == []


def test_page_that_fails_to_normalize_is_skipped(monkeypatch):
    analyzer = DuplicateContentAnalyzer()
    original = analyzer.words

    def flaky(content):
        if content == "boom":
            raise ValueError("cannot parse")
        return original(content)

    monkeypatch.setattr(analyzer, "words", flaky)
    pages = [make_page("https://a.test/bad", "boom"), make_page("https://a.test/1", ARTICLE)]
    result = analyzer.analyze(pages)
    assert result.pages_skipped == 1
    assert result.pages_analyzed == 1


def test_deterministic_for_same_input():
    pages = [make_page(f"https://a.test/{i}", ARTICLE if i % 2 else OTHER) for i in range(6)]
    analyzer = DuplicateContentAnalyzer()
    assert analyzer.analyze(pages).as_dict() == analyzer.analyze(pages).as_dict()


def test_from_config_and_validation():
    analyzer = DuplicateContentAnalyzer.from_config(AuditConfig(similarity_threshold=0.5, shingle_size=2))
    assert analyzer.threshold == 0.5
    assert analyzer.shingle_size == 2
    with pytest.raises(ValueError):
        DuplicateContentAnalyzer(threshold=0)


def test_result_serialization_shape():
    pages = [make_page("https://a.test/1", ARTICLE, title="One"), make_page("https://a.test/2", ARTICLE)]
    data = DuplicateContentAnalyzer().analyze(pages).as_dict()

    assert set(data) == {"pagesAnalyzed", "duplicatesFound", "clusters", "pairs", "pagesSkipped"}
    assert set(data["clusters"][0]) == {"memberUrls", "similarityScore", "representativeUrl"}
    pair = data["pairs"][0]
    assert pair["titleA"] == "One"
    assert pair["titleB"] == "https://a.test/2"
