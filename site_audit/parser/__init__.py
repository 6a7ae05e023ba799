"""site_audit.parser: sitemap, robots.txt and HTML parsers."""
