# File: tests/test_parsers.py
from datetime import date

from site_audit.parser.html_parser import extract_text, parse_html
from site_audit.parser.robots_parser import parse_robots
from site_audit.parser.sitemap_parser import parse_document, parse_sitemap

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url>
    <loc> https://example.com/ </loc>
    <lastmod>2024-01-15</lastmod>
    <changefreq>Weekly</changefreq>
    <priority>0.8</priority>
  </url>
  <url>
    <loc>https://example.com/about</loc>
    <lastmod>not a date</lastmod>
    <changefreq>sometimes</changefreq>
    <priority>1.5</priority>
  </url>
  <url><lastmod>2024-01-01</lastmod></url>
</urlset>
"""

INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/sitemap-posts.xml</loc></sitemap>
  <sitemap><loc>https://example.com/sitemap-pages.xml</loc></sitemap>
</sitemapindex>
"""


def test_parse_urlset_fields():
    doc = parse_document(URLSET)
    assert not doc.is_index
    assert [e.loc for e in doc.entries] == ["https://example.com/", "https://example.com/about"]

    first, second = doc.entries
    assert first.lastmod is not None and first.lastmod.date() == date(2024, 1, 15)
    assert first.changefreq == "weekly"
    assert first.priority == 0.8

    assert second.lastmod is None
    assert second.changefreq is None
    assert second.priority is None


def test_parse_index():
    doc = parse_document(INDEX)
    assert doc.is_index
    assert doc.entries == []
    assert doc.child_sitemaps == [
        "https://example.com/sitemap-posts.xml",
        "https://example.com/sitemap-pages.xml",
    ]


def test_index_detected_without_sitemapindex_root():
    xml = "<root><sitemap><loc>https://example.com/a.xml</loc></sitemap></root>"
    doc = parse_document(xml)
    assert doc.is_index
    assert doc.child_sitemaps == ["https://example.com/a.xml"]


def test_parse_without_namespace_and_malformed():
    assert parse_sitemap("<urlset><url><loc>https://a.test/x</loc></url>") == ["https://a.test/x"]
    assert parse_sitemap("") == []
    assert parse_sitemap("this is not xml") == []


def test_empty_urlset():
    doc = parse_document('<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"></urlset>')
    assert not doc.is_index
    assert doc.entries == []


def test_robots_sitemaps_and_rules():
    text = """
# comment
User-agent: *
Disallow: /private
Allow: /private/public
Crawl-delay: 2

User-agent: OtherBot
Disallow: /

sitemap: /sitemap-from-robots.xml
Sitemap: https://example.com/second.xml
"""
    rules = parse_robots(text, "TestAgent/1.0", "https://example.com/")
    assert rules.sitemaps == [
        "https://example.com/sitemap-from-robots.xml",
        "https://example.com/second.xml",
    ]
    assert rules.can_fetch("/")
    assert not rules.can_fetch("/private/data")
    assert rules.can_fetch("/private/public/page")
    assert rules.crawl_delay == 2.0


def test_robots_specific_agent_group():
    rules = parse_robots("User-agent: TestAgent\nDisallow: /page1\n", "TestAgent/1.0")
    assert not rules.can_fetch("/page1")
    assert rules.can_fetch("/page2")


def test_parse_html_meta_and_links():
    html = """<html><head><title> Hello </title>
    <meta name="ROBOTS" content="NoIndex, Follow">
    <meta name="googlebot" content="noarchive">
    </head><body>
    <a href="/a">A</a><a href="mailto:x@y">M</a><a href="https://other.test/b#frag">B</a>
    <script>var hidden = 1;</script><p>Visible text</p>
    </body></html>"""
    parsed = parse_html(html)
    assert parsed.title == "Hello"
    assert parsed.meta_robots == "noindex, follow"
    assert parsed.meta_googlebot == "noarchive"
    assert "https://other.test/b" in parsed.links
    assert "hidden" not in parsed.text
    assert "Visible text" in parsed.text


def test_extract_text_plain_and_markdown():
    assert extract_text("# Title\n\nSome *markdown* text").split() == ["#", "Title", "Some", "*markdown*", "text"]
    assert extract_text("<style>p{}</style><p>a</p><p>b</p>") == "a b"


def test_parse_html_skips_unparseable_links():
    parsed = parse_html('<a href="http://[broken-link/">bad</a><a href="https://example.com/ok">ok</a>')
    assert parsed.links == ["https://example.com/ok"]


def test_robots_consecutive_agents_share_group():
    text = "User-agent: OtherBot\nUser-agent: TestAgent\nDisallow: /shared\n"
    rules = parse_robots(text, "TestAgent/1.0")
    assert not rules.can_fetch("/shared/page")


def test_robots_specific_group_overrides_wildcard():
    text = """
User-agent: *
Disallow: /private
Crawl-delay: 5

User-agent: TestAgent
Disallow: /drafts
"""
    rules = parse_robots(text, "TestAgent/1.0")
    assert rules.can_fetch("/private/data")
    assert not rules.can_fetch("/drafts/1")
    assert rules.crawl_delay is None


def test_robots_wildcard_applies_without_specific_group():
    text = "User-agent: OtherBot\nDisallow: /\n\nUser-agent: *\nDisallow: /private\n"
    rules = parse_robots(text, "TestAgent/1.0")
    assert rules.can_fetch("/public")
    assert not rules.can_fetch("/private")
