# File: site_audit/report/__init__.py
"""site_audit.report: writers for audit responses used by the CLI."""

from site_audit.report.json_report import render_json

__all__ = ["render_json"]
