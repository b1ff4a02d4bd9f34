# domains.py
import logging
from typing import List, Optional, Set

import tldextract

from .sources import LOCATION_NEWS_SOURCES, CityNewsConfig

logger = logging.getLogger(__name__)

# Bundled public suffix snapshot only; never fetch the list over the network
_extract = tldextract.TLDExtract(suffix_list_urls=())


def _host(url: str) -> str:
    parts = _extract(url)
    host = ".".join(p for p in (parts.subdomain, parts.domain, parts.suffix) if p)
    return _strip_www(host)


def _strip_www(domain: str) -> str:
    domain = domain.strip().lower()
    return domain[4:] if domain.startswith("www.") else domain


def extract_canonical_domain(url: Optional[str]) -> Optional[str]:
    """Registrable domain of ``url``, e.g. "https://news.bbc.co.uk/x" -> "bbc.co.uk"."""
    if not url or not isinstance(url, str):
        return None
    try:
        parts = _extract(url)
    except ValueError as e:
        logger.warning("Failed to parse URL %r: %s", url, e)
        return None
    if not parts.domain or not parts.suffix:
        return None
    return f"{parts.domain}.{parts.suffix}".lower()


def normalize_city(city_name: str) -> str:
    """Title-case each word: "new york" -> "New York"."""
    return " ".join(w[:1].upper() + w[1:] for w in city_name.lower().split(" "))


def get_city_config(city_name: str) -> Optional[CityNewsConfig]:
    return LOCATION_NEWS_SOURCES.get(normalize_city(city_name))


def get_mainstream_domains_for_city(city_name: str) -> Set[str]:
    config = get_city_config(city_name)
    if config is None:
        return set()
    return {s.domain.lower() for s in config.sources}


def get_all_mainstream_domains() -> Set[str]:
    return {s.domain.lower() for config in LOCATION_NEWS_SOURCES.values() for s in config.sources}


def get_supported_cities() -> List[str]:
    return list(LOCATION_NEWS_SOURCES)


def is_mainstream_source(domain: str, city_name: str) -> bool:
    return _strip_www(domain) in get_mainstream_domains_for_city(city_name)


def get_authority_rank(domain: str, city_name: str) -> Optional[int]:
    """1-based whitelist position of ``domain`` for the city, or None."""
    config = get_city_config(city_name)
    if config is None:
        return None
    wanted = _strip_www(domain)
    for rank, source in enumerate(config.sources, start=1):
        if source.domain.lower() == wanted:
            return rank
    return None


def mainstream_rank_for_url(url: str, city_name: str) -> Optional[int]:
    """Whitelist rank of an article URL.

    Matches the registrable domain first, then the full host, since a few
    outlets (news.sky.com) are listed under a subdomain.
    """
    domain = extract_canonical_domain(url)
    if domain is None:
        return None
    rank = get_authority_rank(domain, city_name)
    if rank is None:
        rank = get_authority_rank(_host(url), city_name)
    return rank
