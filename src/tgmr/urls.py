from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit

_PLATFORM_NAMES = {
    "youtube.com": "YouTube",
    "vimeo.com": "Vimeo",
    "soundcloud.com": "SoundCloud",
    "mixcloud.com": "Mixcloud",
    "instagram.com": "Instagram",
    "twitter.com": "Twitter/X",
    "x.com": "Twitter/X",
    "bandcamp.com": "Bandcamp",
}
_HIDDEN_DOMAINS = {"youtu.be"}


def hostname_of(url: str) -> str | None:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return None
    try:
        host = parts.hostname
    except ValueError:
        return None
    return host.lower() if host else None


def is_valid_url(url: str) -> bool:
    return hostname_of(url) is not None


def is_domain_match(hostname: str, domain: str) -> bool:
    hostname = hostname.lower().rstrip(".")
    domain = domain.lower().strip().rstrip(".")
    if not domain:
        return False
    return hostname == domain or hostname.endswith(f".{domain}")


def is_supported_platform(url: str, domains: Iterable[str]) -> bool:
    host = hostname_of(url)
    if host is None:
        return False
    return any(is_domain_match(host, domain) for domain in domains)


def extract_urls(text: str, domains: Iterable[str]) -> list[str]:
    domain_list = tuple(domains)
    return [
        word
        for word in text.split()
        if is_valid_url(word) and is_supported_platform(word, domain_list)
    ]


def supported_platforms(domains: Iterable[str]) -> str:
    names: list[str] = []
    for domain in domains:
        if domain in _HIDDEN_DOMAINS:
            continue
        name = _PLATFORM_NAMES.get(domain)
        if name is None:
            label = domain.split(".")[0]
            name = label[:1].upper() + label[1:]
        if name not in names:
            names.append(name)
    return ", ".join(names)
