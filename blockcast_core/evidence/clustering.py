# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Cross-language evidence clustering.

Submissions are visited in submission_id order; each unclustered submission
leads a cluster and pulls in every later unclustered submission that shares
a cited host or enough significant words with it.
"""

from __future__ import annotations

import logging

from blockcast_core.evidence.language import tokenize
from blockcast_core.evidence.stance import detect_stance
from blockcast_core.schema.evidence import (
    AnnotatedEvidence,
    ContradictionSeverity,
    CrossLanguageContradiction,
    EvidenceCluster,
    SourceTier,
    Stance,
)

logger = logging.getLogger(__name__)


def significant_words(text: str, *, min_len: int = 4) -> set[str]:
    return {w for w in tokenize(text) if len(w) >= min_len}


def content_similarity(a: str, b: str, *, min_len: int = 4) -> float:
    wa = significant_words(a, min_len=min_len)
    wb = significant_words(b, min_len=min_len)
    if not wa or not wb:
        return 0.0
    return len(wa & wb) / max(len(wa), len(wb))


def contradiction_stance(item: AnnotatedEvidence) -> Stance:
    """Declared position wins; otherwise a single keyword hit is enough."""
    if item.submission.position is not None:
        return item.submission.position
    return detect_stance(item.normalized_content, min_hits=1)


def _cites_government(item: AnnotatedEvidence) -> bool:
    return any(s.tier == SourceTier.GOVERNMENT for s in item.sources)


def _find_contradiction(cluster_id: str, members: list[AnnotatedEvidence]) -> CrossLanguageContradiction | None:
    stances = {m.submission_id: contradiction_stance(m) for m in members}
    by_side: dict[Stance, set[str]] = {Stance.YES: set(), Stance.NO: set()}
    for m in members:
        st = stances[m.submission_id]
        if st in by_side:
            by_side[st].add(m.submission.language)

    yes_langs = by_side[Stance.YES]
    no_langs = by_side[Stance.NO]
    # Divergence only counts when the opposing sides are in different languages.
    if not any(ly != ln for ly in yes_langs for ln in no_langs):
        return None

    involved = [m for m in members if stances[m.submission_id] in (Stance.YES, Stance.NO)]
    severity = ContradictionSeverity.HIGH if any(_cites_government(m) for m in involved) else ContradictionSeverity.MEDIUM
    languages = sorted(yes_langs | no_langs)
    return CrossLanguageContradiction(
        cluster_id=cluster_id,
        languages=languages,
        submission_ids=sorted(m.submission_id for m in involved),
        severity=severity,
        description=(
            f"Evidence in {', '.join(sorted(yes_langs))} supports YES while evidence in "
            f"{', '.join(sorted(no_langs))} supports NO"
        ),
    )


def cluster_evidence(
    items: list[AnnotatedEvidence],
    *,
    similarity_threshold: float = 0.3,
    min_word_len: int = 4,
) -> tuple[list[EvidenceCluster], list[CrossLanguageContradiction]]:
    ordered = sorted(items, key=lambda a: a.submission_id)
    processed: set[str] = set()
    clusters: list[EvidenceCluster] = []
    contradictions: list[CrossLanguageContradiction] = []

    for i, lead in enumerate(ordered):
        if lead.submission_id in processed:
            continue
        processed.add(lead.submission_id)
        members = [lead]
        lead_hosts = set(lead.hosts)

        for other in ordered[i + 1:]:
            if other.submission_id in processed:
                continue
            shared_host = bool(lead_hosts & set(other.hosts))
            similarity = content_similarity(lead.normalized_content, other.normalized_content, min_len=min_word_len)
            if shared_host or similarity > similarity_threshold:
                members.append(other)
                processed.add(other.submission_id)

        cluster_id = f"cluster:{lead.submission_id}"
        languages: list[str] = []
        hosts: list[str] = []
        for m in members:
            if m.submission.language not in languages:
                languages.append(m.submission.language)
            for h in m.hosts:
                if h not in hosts:
                    hosts.append(h)

        clusters.append(
            EvidenceCluster(
                cluster_id=cluster_id,
                submission_ids=[m.submission_id for m in members],
                languages=languages,
                hosts=hosts,
                stances={m.submission_id: m.stance for m in members},
            )
        )

        if len(languages) >= 2:
            found = _find_contradiction(cluster_id, members)
            if found is not None:
                logger.info(
                    "Cross-language contradiction in %s (%s, severity=%s)",
                    cluster_id,
                    ",".join(found.languages),
                    found.severity.value,
                )
                contradictions.append(found)

    return clusters, contradictions
