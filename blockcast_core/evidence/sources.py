# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# BlockCast Engine is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with BlockCast Engine. If not, see <https://www.gnu.org/licenses/>.

"""
Source Credibility Registry
===========================
Tiered credibility for sources cited in evidence and disputes.

Tiers (score):
- government: national and regional government domains (0.95)
- official_body: international public bodies, primary statements/data (0.9)
- established_media: wire services and vetted national/regional media (0.85)
- academic: universities and research institutes (0.8)
- general_news: unvetted outlets that look like news sites (0.7)
- unknown: everything else (0.5)
- personal_blog: blogs and newsletter platforms (0.4)
- social_media: social networks and messaging apps (0.3)

Classification is done on the host only, never on the path.
"""

from __future__ import annotations

import re

from blockcast_core.schema.evidence import SourceCredibility, SourceTier
from blockcast_core.utils.url_utils import extract_host, host_matches

TIER_SCORES: dict[SourceTier, float] = {
    SourceTier.GOVERNMENT: 0.95,
    SourceTier.OFFICIAL_BODY: 0.9,
    SourceTier.ESTABLISHED_MEDIA: 0.85,
    SourceTier.ACADEMIC: 0.8,
    SourceTier.GENERAL_NEWS: 0.7,
    SourceTier.UNKNOWN: 0.5,
    SourceTier.PERSONAL_BLOG: 0.4,
    SourceTier.SOCIAL_MEDIA: 0.3,
}

SOCIAL_MEDIA_DOMAINS: tuple[str, ...] = (
    "twitter.com", "x.com", "t.co", "facebook.com", "fb.com", "fb.watch", "instagram.com",
    "tiktok.com", "youtube.com", "youtu.be", "reddit.com", "t.me", "telegram.org",
    "whatsapp.com", "linkedin.com", "threads.net", "snapchat.com",
)

TRUSTED_SOURCES: dict[str, list[str]] = {
    "global_news_agencies": [
        "reuters.com", "apnews.com", "afp.com", "bloomberg.com",
    ],
    "general_news_international": [
        "bbc.com", "bbc.co.uk", "dw.com", "france24.com", "rfi.fr", "theguardian.com",
        "aljazeera.com", "ft.com", "economist.com", "lemonde.fr", "jeuneafrique.com",
    ],
    "east_africa": [
        "nation.africa", "standardmedia.co.ke", "the-star.co.ke", "monitor.co.ug",
        "newvision.co.ug", "thecitizen.co.tz", "dailynews.co.tz", "theeastafrican.co.ke",
    ],
    "west_africa": [
        "punchng.com", "premiumtimesng.com", "vanguardngr.com", "thecable.ng",
        "myjoyonline.com", "graphic.com.gh", "citinewsroom.com",
    ],
    "north_africa": [
        "hespress.com", "lematin.ma", "le360.ma", "ahram.org.eg", "lapresse.tn",
        "tsa-algerie.com",
    ],
    "southern_africa": [
        "news24.com", "dailymaverick.co.za", "mg.co.za", "timeslive.co.za",
    ],
    "fact_checking": [
        "africacheck.org", "pesacheck.org", "dubawa.org", "fullfact.org", "snopes.com",
    ],
    "international_public_bodies": [
        "un.org", "who.int", "worldbank.org", "imf.org", "au.int", "ecowas.int",
        "afdb.org", "africacdc.org", "eac.int",
    ],
}

_MEDIA_CATEGORIES = (
    "global_news_agencies",
    "general_news_international",
    "east_africa",
    "west_africa",
    "north_africa",
    "southern_africa",
    "fact_checking",
)

_GOV_HOST_RE = re.compile(r"(^|\.)(gov|go|gouv|gob|govt|gv|mil)(\.|$)")
_GOV_KEYWORDS = ("government", "parliament", "official", "presidency", "ministry")
_ACADEMIC_HOST_RE = re.compile(r"(^|\.)(edu|ac)(\.|$)")
_ACADEMIC_KEYWORDS = ("university", "institute", "univ-")
_BLOG_DOMAINS = ("medium.com", "substack.com", "wordpress.com", "blogspot.com", "tumblr.com", "ghost.io")
_BLOG_KEYWORDS = ("blog", "personal")
_NEWS_KEYWORDS = ("news", "media", "press", "journal", "times", "herald", "tribune", "daily", "post", "gazette")


def is_social_media(source_or_host: str | None) -> bool:
    host = extract_host(source_or_host or "")
    if not host:
        return False
    return any(host_matches(host, d) for d in SOCIAL_MEDIA_DOMAINS)


def is_government_source(source_or_host: str | None) -> bool:
    host = extract_host(source_or_host or "")
    if not host:
        return False
    if _GOV_HOST_RE.search(host):
        return True
    return any(k in host for k in _GOV_KEYWORDS)


def _in_registry(host: str, categories: tuple[str, ...]) -> bool:
    for cat in categories:
        for domain in TRUSTED_SOURCES[cat]:
            if host_matches(host, domain):
                return True
    return False


def classify_host(host: str | None) -> SourceTier:
    if not host:
        return SourceTier.UNKNOWN
    if is_social_media(host):
        return SourceTier.SOCIAL_MEDIA
    if is_government_source(host):
        return SourceTier.GOVERNMENT
    if _in_registry(host, ("international_public_bodies",)):
        return SourceTier.OFFICIAL_BODY
    if _in_registry(host, _MEDIA_CATEGORIES):
        return SourceTier.ESTABLISHED_MEDIA
    if _ACADEMIC_HOST_RE.search(host) or any(k in host for k in _ACADEMIC_KEYWORDS):
        return SourceTier.ACADEMIC
    if any(host_matches(host, d) for d in _BLOG_DOMAINS) or any(k in host for k in _BLOG_KEYWORDS):
        return SourceTier.PERSONAL_BLOG
    if any(k in host for k in _NEWS_KEYWORDS):
        return SourceTier.GENERAL_NEWS
    return SourceTier.UNKNOWN


def score_source(source: str) -> SourceCredibility:
    host = extract_host(source)
    tier = classify_host(host)
    return SourceCredibility(source=source, host=host, tier=tier, score=TIER_SCORES[tier])


def score_sources(sources: list[str]) -> list[SourceCredibility]:
    """Score each distinct cited source, preserving first-seen order."""
    seen: set[str] = set()
    out: list[SourceCredibility] = []
    for raw in sources or []:
        s = (raw or "").strip()
        if not s or s in seen:
            continue
        seen.add(s)
        out.append(score_source(s))
    return out


def average_credibility(scored: list[SourceCredibility]) -> float | None:
    """Mean credibility, or None when nothing was cited."""
    if not scored:
        return None
    return sum(s.score for s in scored) / len(scored)
