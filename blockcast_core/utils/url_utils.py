# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from urllib.parse import urlparse


def extract_host(source: str) -> str | None:
    """
    Host of a cited source, lowercased, without `www.` and port.
    Accepts full URLs and bare domains ("nation.africa/news/...").
    """
    if not source or not isinstance(source, str):
        return None
    s = source.strip()
    if not s:
        return None
    if "://" not in s and not s.startswith("//"):
        s = "//" + s
    try:
        host = (urlparse(s).netloc or "").lower().strip()
    except ValueError:
        return None
    if "@" in host:
        host = host.rsplit("@", 1)[1]
    host = host.split(":")[0].strip().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    if not host or "." not in host:
        return None
    return host


def get_registrable_domain(source: str) -> str | None:
    """
    Best-effort registrable domain extraction without external deps.
    This is intentionally approximate and conservative.
    """
    host = extract_host(source)
    if not host:
        return None
    parts = [p for p in host.split(".") if p]
    if len(parts) < 2:
        return None
    # Heuristic for 2-level TLDs (e.g. co.ke, gov.ng):
    if len(parts) >= 3:
        last = parts[-1]
        second_last = parts[-2]
        if len(last) == 2 and len(second_last) <= 4:
            return ".".join(parts[-3:])
    return ".".join(parts[-2:])


def host_matches(host: str | None, domain: str) -> bool:
    """True when host equals domain or is a subdomain of it."""
    if not host or not domain:
        return False
    d = domain.lower().lstrip(".")
    return host == d or host.endswith("." + d)
