# site_audit/report/json_report.py

"""
JSON report writer for SiteAudit.

Serializes a boundary response (or any JSON-compatible dict) to a file.
"""
import json
from pathlib import Path
from typing import Any, Dict


def render_json(data: Dict[str, Any], output_path: Path | str, pretty: bool = True) -> Path:
    """
    Save ``data`` as JSON at ``output_path``, creating parent directories.

    :param data: JSON-compatible mapping, e.g. ``AuditResponse.body``
    :param output_path: target file
    :param pretty: indent with 2 spaces
    :return: Path of the written file
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2 if pretty else None)
    return path
