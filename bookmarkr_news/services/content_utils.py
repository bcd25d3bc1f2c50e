"""
Helpers shared by the fetch adapters: ids, fallback images, URL fixing,
image heuristics, Open-Graph metadata and keyword categorisation.
"""

import hashlib
import re
from typing import Dict, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

FALLBACK_IMAGES: Dict[str, List[str]] = {
    "technology": [
        "https://images.unsplash.com/photo-1518770660439-4636190af475",
        "https://images.unsplash.com/photo-1488590528505-98d2b5aba04b",
        "https://images.unsplash.com/photo-1526374965328-7f61d4dc18c5",
    ],
    "business": [
        "https://images.unsplash.com/photo-1507679799987-c73779587ccf",
        "https://images.unsplash.com/photo-1520607162513-77705c0f0d4a",
        "https://images.unsplash.com/photo-1556761175-b413da4baf72",
    ],
    "design": [
        "https://images.unsplash.com/photo-1561069934-eee225952461",
        "https://images.unsplash.com/photo-1523726491678-bf852e717f6a",
        "https://images.unsplash.com/photo-1618004912476-29818d81ae2e",
    ],
    "science": [
        "https://images.unsplash.com/photo-1564325724739-bae0bd08762c",
        "https://images.unsplash.com/photo-1532094349884-543bc11b234d",
        "https://images.unsplash.com/photo-1582719471384-894fbb16e074",
    ],
    "ai": [
        "https://images.unsplash.com/photo-1677442135073-d853d01457a9",
        "https://images.unsplash.com/photo-1620712943543-bcc4688e7485",
        "https://images.unsplash.com/photo-1620330009516-5fcf8c2000c9",
    ],
    "news": [
        "https://images.unsplash.com/photo-1504711434969-e33886168f5c",
        "https://images.unsplash.com/photo-1495020689067-958852a7765e",
        "https://images.unsplash.com/photo-1528747045269-390fe33c19f2",
    ],
}

# Checked in order; the first category with a keyword hit wins.
CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "technology": ["tech", "software", "app", "digital", "internet", "computer", "ai", "artificial intelligence"],
    "business": ["business", "finance", "market", "economy", "stock", "investment"],
    "science": ["science", "research", "study", "discovery", "space", "physics", "biology"],
    "design": ["design", "ui", "ux", "graphic", "creative", "art", "visual"],
    "ai": ["ai", "artificial intelligence", "machine learning", "neural network", "deep learning", "algorithm"],
}

TAG_TOPICS = [
    "technology", "programming", "science", "business", "health", "politics",
    "environment", "ai", "ml", "design", "software", "mobile",
    "innovation", "startup", "security", "privacy", "finance",
]

ICON_LIKE_PATTERN = re.compile(
    r'icon|logo|badge|avatar|pixel|tracking|\.gif$|1x1|\.svg', re.IGNORECASE
)
_IMG_TAG = re.compile(r'<img\b[^>]*>', re.IGNORECASE)
_IMG_SRC = re.compile(r'\bsrc\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE)
_TINY_DIMENSION = re.compile(r'\b(?:width|height)\s*=\s*["\']?\d{1,2}(?:px)?["\'\s>/]', re.IGNORECASE)
_WHITESPACE = re.compile(r'\s+')

_keyword_patterns: Dict[str, "re.Pattern[str]"] = {}


def make_item_id(source_id: str, url: str) -> str:
    """Deterministic item id: the same article from the same source always collapses."""
    return f"{source_id}-{hashlib.md5(url.encode('utf-8')).hexdigest()[:12]}"


def fallback_image(category: str, title: str) -> str:
    pool = FALLBACK_IMAGES.get(category) or FALLBACK_IMAGES["news"]
    return pool[sum(ord(ch) for ch in (title or "")) % len(pool)]


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def domain_of(url: str) -> str:
    netloc = urlparse(url).netloc.lower()
    return netloc[4:] if netloc.startswith("www.") else netloc


def resolve_url(url: Optional[str], base_url: str) -> Optional[str]:
    """Resolve protocol-relative, root-relative and relative URLs against ``base_url``."""
    if not url:
        return None
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith(("data:", "javascript:", "mailto:")):
        return None
    if not base_url:
        return url
    return urljoin(base_url, url)


def is_icon_like(url: str) -> bool:
    return bool(ICON_LIKE_PATTERN.search(url or ""))


def first_image_in_html(html: Optional[str]) -> Optional[str]:
    """
    Scan embedded HTML for an article image.

    Skips icon-like URLs and tags declaring a 1-2 digit width or height;
    falls back to the very first ``<img>`` when nothing passes.
    """
    if not html:
        return None

    first_src: Optional[str] = None
    for tag in _IMG_TAG.findall(html):
        src_match = _IMG_SRC.search(tag)
        if not src_match:
            continue
        src = src_match.group(1)
        if first_src is None:
            first_src = src
        if is_icon_like(src) or _TINY_DIMENSION.search(tag):
            continue
        return src
    return first_src


def strip_html(text: Optional[str]) -> str:
    if not text:
        return ""
    if "<" not in text:
        return collapse_whitespace(text)
    return collapse_whitespace(BeautifulSoup(text, "html.parser").get_text(" "))


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def extract_page_metadata(html: str) -> Dict[str, Optional[str]]:
    """
    Pull Open-Graph / Twitter-card metadata from an article page.

    Returns a dict with ``title``, ``description``, ``image`` and
    ``published_time`` (any of which may be None).
    """
    soup = BeautifulSoup(html or "", "html.parser")

    def meta(*keys: str) -> Optional[str]:
        for key in keys:
            tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
            if tag and tag.get("content"):
                return tag["content"].strip()
        return None

    published = meta("article:published_time", "og:published_time", "date")
    if not published:
        time_tag = soup.find("time", attrs={"datetime": True})
        if time_tag:
            published = time_tag["datetime"]

    return {
        "title": meta("og:title", "twitter:title"),
        "description": meta("og:description", "twitter:description", "description"),
        "image": meta("og:image", "og:image:url", "twitter:image", "twitter:image:src"),
        "published_time": published,
    }


def first_large_image(html: str, min_size: int = 200) -> Optional[str]:
    """First ``<img>`` declaring a width or height above ``min_size``."""
    soup = BeautifulSoup(html or "", "html.parser")
    for img in soup.find_all("img"):
        src = img.get("src")
        if not src:
            continue
        if _dimension(img.get("width")) > min_size or _dimension(img.get("height")) > min_size:
            return src
    return None


def _dimension(value) -> int:
    if value is None:
        return 0
    match = re.match(r'\s*(\d+)', str(value))
    return int(match.group(1)) if match else 0


def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    pattern = _keyword_patterns.get(keyword)
    if pattern is None:
        pattern = re.compile(r'\b' + re.escape(keyword.lower()) + r'\b')
        _keyword_patterns[keyword] = pattern
    return pattern


def categorize_text(text: str, default: str = "news") -> str:
    """Keyword-match free text to a category; ``default`` when nothing matches."""
    lowered = (text or "").lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(_keyword_pattern(kw).search(lowered) for kw in keywords):
            return category
    return default


def generate_tags(text: str, limit: int, topics: Iterable[str] = TAG_TOPICS) -> List[str]:
    lowered = (text or "").lower()
    return [topic for topic in topics if _keyword_pattern(topic).search(lowered)][:limit]
