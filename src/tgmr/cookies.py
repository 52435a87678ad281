from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from .logging import get_logger
from .urls import hostname_of, is_domain_match

logger = get_logger(__name__)

# site alias -> domains it covers
SITE_ALIASES: dict[str, tuple[str, ...]] = {
    "youtube": ("youtube.com", "youtu.be"),
    "twitter": ("twitter.com", "x.com"),
}


def _alias_domains(site: str) -> tuple[str, ...]:
    if site in SITE_ALIASES:
        return SITE_ALIASES[site]
    if "." in site:
        return ()
    return (f"{site}.com",)


def select_cookies_file(
    url: str,
    files: Mapping[str, Path],
    default: Path | None = None,
) -> Path | None:
    """Pick the cookies file for `url`.

    Keys of `files` are either domains (`instagram.com`) or site aliases
    (`youtube`, `twitter`, or a bare site name meaning `<site>.com`). Exact
    domain keys win over subdomain matches, which win over aliases; the
    default file is used when nothing matches.
    """
    host = hostname_of(url)
    if host is None or not files:
        return default

    domain_keys = {key: path for key, path in files.items() if "." in key}
    exact = domain_keys.get(host)
    if exact is not None:
        return exact

    suffix_matches = [
        (key, path) for key, path in domain_keys.items() if is_domain_match(host, key)
    ]
    if suffix_matches:
        # most specific domain first
        suffix_matches.sort(key=lambda item: len(item[0]), reverse=True)
        return suffix_matches[0][1]

    for site, path in files.items():
        if any(is_domain_match(host, domain) for domain in _alias_domains(site)):
            return path

    return default


def usable_cookies_file(path: Path | None) -> Path | None:
    if path is None:
        return None
    if not path.is_file():
        logger.warning("cookies.missing", path=str(path))
        return None
    return path
