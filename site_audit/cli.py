# === FILE: site_audit/cli.py ===
#!/usr/bin/env python3
"""
Command line entry point of SiteAudit.

Commands:
  duplicates URL   Collect pages of a site and report duplicate content
  noindex URL      Report sitemap pages that carry a noindex directive
  sitemap URL      Discover and print the sitemap URLs of a site
  serve            Run the HTTP API
  config           Show the effective configuration

Common options:
  --config PATH       YAML/JSON config (default: configs/default.yaml if present)
  --log-level LEVEL   Logging level (DEBUG, INFO, ...)
  --log-file PATH     Log file (console only when omitted)
  --log-format FORMAT Logging format string

Report options of duplicates/noindex:
  --json PATH         Save the JSON response to a file
  --pretty            Indent JSON output

Example:
  site-audit duplicates https://example.com --limit 100 --json report.json --pretty
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from site_audit import __version__
from site_audit.config import AuditConfig, load_config
from site_audit.crawler.sitemap import SitemapResolver
from site_audit.engine import AuditService
from site_audit.logger import DEFAULT_FORMAT, init_logging
from site_audit.report.json_report import render_json

CONTEXT_SETTINGS = dict(help_option_names=["--help"])
DEFAULT_CONFIG = Path("configs/default.yaml")


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def build_service(cfg: AuditConfig) -> AuditService:
    return AuditService(cfg)


def emit(data: Dict[str, Any], json_output: Optional[Path], pretty: bool) -> None:
    """Print ``data`` as JSON or save it to ``json_output``."""
    if json_output:
        try:
            saved = render_json(data, json_output, pretty=pretty)
        except OSError as e:
            print_error(f'Failed to save JSON report: {e}')
        click.echo(f'JSON report: {saved}')
        return
    indent = 2 if pretty else None
    click.echo(json.dumps(data, ensure_ascii=False, indent=indent))


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SiteAudit, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Path to a YAML/JSON config file.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Logging level'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Log file (console only when omitted)'
)
@click.option(
    '--log-format', 'log_format',
    default=DEFAULT_FORMAT,
    show_default=True,
    help='Logging format string'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """SiteAudit command group."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        if config_path is None and not DEFAULT_CONFIG.exists():
            cfg = AuditConfig()
        else:
            cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Failed to load configuration: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('duplicates', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option('--limit', '-l', 'limit', type=int, default=None, help='Max pages to analyze (1-200)')
@click.option('--api-key', 'api_key', default=None, envvar='FIRECRAWL_API_KEY', help='Firecrawl API key')
@click.option('--no-sitemap', 'no_sitemap', is_flag=True, help='Skip sitemap discovery, crawl only')
@click.option(
    '--scraper', 'scraper',
    default=None,
    type=click.Choice(['firecrawl', 'local']),
    help='Page content provider (overrides config)'
)
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Save the JSON response to a file'
)
@click.option('--pretty', is_flag=True, help='Indent JSON output (2 spaces)')
@click.pass_context
def duplicates(ctx, url, limit, api_key, no_sitemap, scraper, json_output, pretty):
    """Find duplicate content on the site at URL."""
    cfg = ctx.obj['config']
    if scraper:
        cfg = cfg.model_copy(update={'scraper': scraper})
    service = build_service(cfg)
    response = asyncio.run(
        service.duplicate_check(url, limit, api_key=api_key, use_sitemap=not no_sitemap)
    )
    emit(response.body, json_output, pretty)
    if not response.success:
        sys.exit(1)


@cli.command('noindex', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option('--max-pages', '-m', 'max_pages', type=int, default=None, help='Max sitemap pages to check (1-200)')
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Save the JSON response to a file'
)
@click.option('--pretty', is_flag=True, help='Indent JSON output (2 spaces)')
@click.pass_context
def noindex(ctx, url, max_pages, json_output, pretty):
    """Find sitemap pages of URL marked noindex."""
    service = build_service(ctx.obj['config'])
    response = asyncio.run(service.noindex_check(url, max_pages))
    emit(response.body, json_output, pretty)
    if not response.success:
        sys.exit(1)


@cli.command('sitemap', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option('--max-urls', 'max_urls', type=click.IntRange(min=1), default=None, help='Max URLs to return')
@click.option('--pretty', is_flag=True, help='Indent JSON output (2 spaces)')
@click.pass_context
def sitemap(ctx, url, max_urls, pretty):
    """Discover the sitemap of URL and print its entries."""
    resolver = SitemapResolver(ctx.obj['config'])
    result = asyncio.run(resolver.resolve(url, max_urls=max_urls))
    emit(result.as_dict(), None, pretty)
    if not result.success:
        sys.exit(1)


@cli.command('serve', context_settings=CONTEXT_SETTINGS)
@click.option('--host', default='127.0.0.1', show_default=True, help='Interface to bind')
@click.option('--port', default=8080, show_default=True, type=int, help='Port to listen on')
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API."""
    from site_audit.server import run_server

    run_server(ctx.obj['config'], host=host, port=port)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Show the effective configuration as JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
