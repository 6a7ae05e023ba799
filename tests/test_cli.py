# File: tests/test_cli.py
"""Tests for the CLI (`site_audit.cli`) using click.testing.CliRunner.
Cover `duplicates`, `noindex`, `sitemap`, `config`, `--version` and error exits.
"""
import json

import pytest
import site_audit.cli as cli_module
from click.testing import CliRunner
from site_audit.cli import cli
from site_audit.crawler.sitemap import SitemapResolver, SitemapResult
from site_audit.engine import AuditResponse
from site_audit.parser.sitemap_parser import SitemapEntry


class DummyService:
    def __init__(self, config, response=None):
        self.config = config
        self.response = response or AuditResponse(200, {"success": True, "data": {"pagesAnalyzed": 2}})
        self.calls = []

    async def duplicate_check(self, url, limit=None, api_key=None, use_sitemap=True):
        self.calls.append(("duplicates", url, limit, api_key, use_sitemap))
        return self.response

    async def noindex_check(self, url, max_pages=None):
        self.calls.append(("noindex", url, max_pages))
        return self.response


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run every command outside the repository so configs/default.yaml is not picked up."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FIRECRAWL_API_KEY", raising=False)


@pytest.fixture()
def services(monkeypatch):
    created = []

    def build(cfg):
        service = DummyService(cfg)
        created.append(service)
        return service

    monkeypatch.setattr(cli_module, "build_service", build)
    return created


def invoke(*args):
    return CliRunner().invoke(cli, ["--log-level", "ERROR", *args])


def test_version_option():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "SiteAudit" in result.output


def test_show_config(tmp_path):
    cfg_file = tmp_path / "custom.json"
    cfg_file.write_text(json.dumps({"timeout": 3, "scraper": "local"}), encoding="utf-8")

    result = invoke("--config", str(cfg_file), "config")

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["timeout"] == 3
    assert data["scraper"] == "local"


def test_bad_config_exits_with_error(tmp_path):
    cfg_file = tmp_path / "broken.yaml"
    cfg_file.write_text("timeout: -5", encoding="utf-8")

    result = invoke("--config", str(cfg_file), "config")

    assert result.exit_code == 1


def test_duplicates_stdout(services):
    result = invoke("duplicates", "https://example.com", "--limit", "20", "--no-sitemap", "--api-key", "k")

    assert result.exit_code == 0
    assert json.loads(result.output)["success"] is True
    assert services[0].calls == [("duplicates", "https://example.com", 20, "k", False)]


def test_duplicates_scraper_override(services):
    result = invoke("duplicates", "https://example.com", "--scraper", "local")
    assert result.exit_code == 0
    assert services[0].config.scraper == "local"


def test_duplicates_json_file(tmp_path, services):
    out = tmp_path / "reports" / "dups.json"

    result = invoke("duplicates", "https://example.com", "--json", str(out), "--pretty")

    assert result.exit_code == 0
    assert out.exists()
    assert json.loads(out.read_text(encoding="utf-8"))["data"]["pagesAnalyzed"] == 2


def test_failure_exit_code(monkeypatch):
    failure = AuditResponse(400, {"success": False, "error": "URL is required", "code": "MISSING_URL"})
    monkeypatch.setattr(cli_module, "build_service", lambda cfg: DummyService(cfg, failure))

    result = invoke("noindex", "https://example.com")

    assert result.exit_code == 1
    assert json.loads(result.output)["code"] == "MISSING_URL"


def test_noindex_max_pages(services):
    result = invoke("noindex", "https://example.com", "--max-pages", "7")
    assert result.exit_code == 0
    assert services[0].calls == [("noindex", "https://example.com", 7)]


def test_sitemap_command(monkeypatch):
    async def resolve(self, base_url, max_urls=None, max_child_sitemaps=None):
        return SitemapResult(
            success=True,
            urls=[SitemapEntry(loc=f"{base_url}/a")],
            sitemap_url=f"{base_url}/sitemap.xml",
            total_found=1,
        )

    monkeypatch.setattr(SitemapResolver, "resolve", resolve)

    result = invoke("sitemap", "https://example.com")

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["urls"][0]["loc"] == "https://example.com/a"
    assert data["totalFound"] == 1


def test_sitemap_command_failure(monkeypatch):
    async def resolve(self, base_url, max_urls=None, max_child_sitemaps=None):
        return SitemapResult(success=False, error="No sitemap found at common locations")

    monkeypatch.setattr(SitemapResolver, "resolve", resolve)

    result = invoke("sitemap", "https://example.com")

    assert result.exit_code == 1
