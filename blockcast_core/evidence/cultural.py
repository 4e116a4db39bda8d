# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Cultural context enrichment.

Relevance starts at 0.5 and grows with regional political or currency
vocabulary, regional and government citations, religious context and
configured sensitive terms. Sensitive or religious matches mark the
evidence for careful handling; they never exclude it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import Field

from blockcast_core.evidence.language import tokenize
from blockcast_core.evidence.sources import is_government_source
from blockcast_core.schema.evidence import CulturalEnrichment
from blockcast_core.schema.serialization import SchemaModel
from blockcast_core.utils.url_utils import extract_host, host_matches

ETHNIC_SENSITIVITY_REQUIRED = "ETHNIC_SENSITIVITY_REQUIRED"
RELIGIOUS_CONTEXT = "RELIGIOUS_CONTEXT"

BASE_RELEVANCE = 0.5
POLITICAL_BONUS = 0.2
CURRENCY_BONUS = 0.1
REGIONAL_SOURCE_BONUS = 0.1
GOVERNMENT_BONUS = 0.1
RELIGIOUS_BONUS = 0.15
SENSITIVE_BONUS = 0.2

DEFAULT_SENSITIVE_TERMS: tuple[str, ...] = ("tribe", "tribal", "ethnic", "ethnicity", "clan")


@dataclass(frozen=True)
class RegionProfile:
    name: str
    aliases: tuple[str, ...]
    trusted_domains: tuple[str, ...]
    government_domains: tuple[str, ...]
    languages: tuple[str, ...]
    political_terms: frozenset[str]
    currency_terms: frozenset[str]


REGIONS: dict[str, RegionProfile] = {
    "east_africa": RegionProfile(
        name="east_africa",
        aliases=("east africa", "kenya", "uganda", "tanzania", "rwanda"),
        trusted_domains=("nation.africa", "standardmedia.co.ke", "monitor.co.ug", "thecitizen.co.tz"),
        government_domains=("go.ke", "go.ug", "go.tz", "gov.rw"),
        languages=("en", "sw"),
        political_terms=frozenset({"parliament", "bunge", "mps", "county", "governor"}),
        currency_terms=frozenset({"shilling", "shillings", "ksh", "kes", "ugx", "tzs"}),
    ),
    "west_africa": RegionProfile(
        name="west_africa",
        aliases=("west africa", "nigeria", "ghana", "senegal"),
        trusted_domains=("punchng.com", "premiumtimesng.com", "myjoyonline.com", "graphic.com.gh"),
        government_domains=("gov.ng", "gov.gh", "gouv.sn"),
        languages=("en", "fr"),
        political_terms=frozenset({"federal", "state", "lga", "inec", "senate"}),
        currency_terms=frozenset({"naira", "ngn", "cedis", "cedi", "ghs", "cfa"}),
    ),
    "north_africa": RegionProfile(
        name="north_africa",
        aliases=("north africa", "morocco", "tunisia", "egypt", "algeria"),
        trusted_domains=("hespress.com", "lematin.ma", "ahram.org.eg"),
        government_domains=("gov.ma", "gov.eg", "gov.tn"),
        languages=("ar", "fr"),
        political_terms=frozenset({"king", "royal", "makhzen", "berber"}),
        currency_terms=frozenset({"dirham", "dinar", "mad", "tnd", "egp"}),
    ),
}

RELIGIOUS_TERMS: dict[str, frozenset[str]] = {
    "islamic": frozenset({"ramadan", "eid", "hajj", "mosque", "imam", "sharia"}),
    "christian": frozenset({"church", "pastor", "bishop", "christmas", "easter"}),
}


class CulturalContext(SchemaModel):
    """Caller-supplied cultural context for a market's evidence."""

    region: str | None = None
    religious_context: list[str] = Field(default_factory=lambda: list(RELIGIOUS_TERMS))
    sensitive_terms: list[str] = Field(default_factory=lambda: list(DEFAULT_SENSITIVE_TERMS))


def resolve_region(region: str | None) -> RegionProfile | None:
    r = (region or "").strip().lower().replace("-", " ").replace("_", " ")
    if not r:
        return None
    for profile in REGIONS.values():
        if r == profile.name.replace("_", " ") or any(alias in r for alias in profile.aliases):
            return profile
    return None


@dataclass
class _Matches:
    terms: list[str] = field(default_factory=list)

    def add(self, found: set[str]) -> bool:
        if not found:
            return False
        for t in sorted(found):
            if t not in self.terms:
                self.terms.append(t)
        return True


def _match_terms(tokens: set[str], lowered: str, terms) -> set[str]:
    found = set()
    for term in terms:
        t = term.strip().lower()
        if not t:
            continue
        if " " in t:
            if t in lowered:
                found.add(t)
        elif t in tokens:
            found.add(t)
    return found


def enrich(
    content: str,
    sources: list[str],
    context: CulturalContext | None,
    *,
    language: str | None = None,
) -> CulturalEnrichment:
    ctx = context or CulturalContext()
    lowered = (content or "").lower()
    tokens = set(tokenize(content))
    matches = _Matches()
    flags: list[str] = []
    relevance = BASE_RELEVANCE
    careful = False
    local_knowledge = False
    religious: list[str] = []

    government_citation = any(is_government_source(s) for s in sources or [])
    if government_citation:
        relevance += GOVERNMENT_BONUS

    profile = resolve_region(ctx.region)
    if profile is not None:
        if matches.add(_match_terms(tokens, lowered, profile.political_terms)):
            relevance += POLITICAL_BONUS
        if matches.add(_match_terms(tokens, lowered, profile.currency_terms)):
            relevance += CURRENCY_BONUS
        hosts = [extract_host(s) for s in sources or []]
        regional = profile.trusted_domains + profile.government_domains
        if any(host_matches(h, d) for h in hosts for d in regional):
            relevance += REGIONAL_SOURCE_BONUS
        if language and language not in profile.languages:
            local_knowledge = True

    for name in ctx.religious_context:
        key = (name or "").strip().lower()
        terms = RELIGIOUS_TERMS.get(key)
        if not terms:
            continue
        if matches.add(_match_terms(tokens, lowered, terms)):
            relevance += RELIGIOUS_BONUS
            religious.append(key)
            careful = True
            if key == "islamic":
                local_knowledge = True

    if religious:
        flags.append(RELIGIOUS_CONTEXT)

    if matches.add(_match_terms(tokens, lowered, ctx.sensitive_terms)):
        relevance += SENSITIVE_BONUS
        flags.append(ETHNIC_SENSITIVITY_REQUIRED)
        careful = True
        local_knowledge = True

    return CulturalEnrichment(
        region=profile.name if profile else None,
        relevance=round(min(1.0, relevance), 6),
        government_citation=government_citation,
        requires_careful_handling=careful,
        local_knowledge_required=local_knowledge,
        religious_context=religious,
        matched_terms=matches.terms,
        flags=flags,
    )
