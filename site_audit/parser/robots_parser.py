# File: site_audit/parser/robots_parser.py
"""site_audit.parser.robots_parser: robots.txt loading and rule extraction."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

from aiohttp import ClientError, ClientSession, ClientTimeout

logger = logging.getLogger("SiteAudit")

_WILDCARD_RE = re.compile(r"(\*|\$)")


@dataclass
class RobotsRules:
    """Rules from robots.txt for one User-Agent plus the global Sitemap directives."""

    user_agent: str
    allowed: List[str] = field(default_factory=list)
    disallowed: List[str] = field(default_factory=list)
    crawl_delay: Optional[float] = None
    sitemaps: List[str] = field(default_factory=list)
    _regex_cache: Dict[str, re.Pattern[str]] = field(default_factory=dict, repr=False)

    def can_fetch(self, path: str) -> bool:
        """Longest matching rule wins; on a tie Allow beats Disallow."""
        best_len = -1
        allow: Optional[bool] = None
        candidates = [("allow", p) for p in self.allowed] + [("disallow", p) for p in self.disallowed]
        for directive, pattern in candidates:
            if not pattern or not self._match_path(path, pattern):
                continue
            length = len(_WILDCARD_RE.sub("", pattern))
            if length > best_len or (length == best_len and directive == "allow"):
                best_len = length
                allow = directive == "allow"
        return True if allow is None else allow

    def _match_path(self, path: str, pattern: str) -> bool:
        if pattern not in self._regex_cache:
            esc = re.escape(pattern).replace(r"\*", ".*")
            if pattern.endswith("$"):
                esc = esc[:-2] + "$"
            self._regex_cache[pattern] = re.compile(f"^{esc}")
        return bool(self._regex_cache[pattern].match(path))


@dataclass
class _AgentGroup:
    """One ``User-agent`` block: consecutive agent lines followed by their rules."""

    agents: List[str] = field(default_factory=list)
    allowed: List[str] = field(default_factory=list)
    disallowed: List[str] = field(default_factory=list)
    crawl_delay: Optional[float] = None
    has_rules: bool = False


def parse_robots(text: str, user_agent: str, base_url: str = "") -> RobotsRules:
    """Parse robots.txt content into RobotsRules.

    Args:
        text: robots.txt body.
        user_agent: the User-Agent whose group is applied.
        base_url: used to resolve relative Sitemap directives.

    The most specific group naming ``user_agent`` wins; the ``*`` group applies
    only when no group names it.
    """
    rules = RobotsRules(user_agent=user_agent)
    groups: List[_AgentGroup] = []
    current: Optional[_AgentGroup] = None
    for directive, value in _prepare_lines(text):
        if directive == "sitemap":
            if value:
                rules.sitemaps.append(urljoin(base_url, value) if base_url else value)
        elif directive == "user-agent":
            if current is None or current.has_rules:
                current = _AgentGroup()
                groups.append(current)
            current.agents.extend(ua.strip() for ua in value.split())
        elif current is not None:
            _apply_rule(current, directive, value)

    for group in _select_groups(groups, user_agent):
        rules.allowed.extend(group.allowed)
        rules.disallowed.extend(group.disallowed)
        if group.crawl_delay is not None:
            rules.crawl_delay = group.crawl_delay
    return rules


def _apply_rule(group: _AgentGroup, directive: str, value: str) -> None:
    if directive == "allow":
        group.allowed.append(value)
    elif directive == "disallow":
        if value:
            group.disallowed.append(value)
    elif directive == "crawl-delay":
        try:
            group.crawl_delay = float(value)
        except ValueError:
            logger.debug("Ignoring invalid Crawl-delay %r", value)
    else:
        return
    group.has_rules = True


def _select_groups(groups: List[_AgentGroup], user_agent: str) -> List[_AgentGroup]:
    """Groups with the longest agent token contained in ``user_agent``, else the ``*`` groups."""
    ua = user_agent.lower()
    best_len = 0
    best: List[_AgentGroup] = []
    for group in groups:
        length = max((len(a) for a in group.agents if a != "*" and a.lower() in ua), default=0)
        if length > best_len:
            best_len, best = length, [group]
        elif length and length == best_len:
            best.append(group)
    if best:
        return best
    return [group for group in groups if "*" in group.agents]


def _prepare_lines(text: str) -> List[Tuple[str, str]]:
    """Strip comments and split lines into (directive, value)."""
    lines: List[Tuple[str, str]] = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, val = (part.strip() for part in line.split(":", 1))
        lines.append((key.lower(), val))
    return lines


async def fetch_robots(session: ClientSession, origin: str, timeout: float) -> Optional[str]:
    """Download ``<origin>/robots.txt``; None when missing or unreachable."""
    robots_url = urljoin(origin + "/", "robots.txt")
    try:
        async with session.get(robots_url, timeout=ClientTimeout(total=timeout)) as resp:
            if resp.status != 200:
                logger.debug("robots.txt %s -> HTTP %s", robots_url, resp.status)
                return None
            return await resp.text(errors="replace")
    except (ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
        logger.warning("Error loading robots.txt %s: %s", robots_url, exc)
        return None
