"""site_audit.crawler: built-in async crawler, page fetcher and sitemap resolver."""
