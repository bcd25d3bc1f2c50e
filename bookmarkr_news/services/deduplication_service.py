import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from bookmarkr_news.models.content import ContentItem
from bookmarkr_news.services.text_analysis import jaccard_similarity, normalize_title


class DeduplicationService:
    """
    Two-stage single-pass deduplication: exact URL, then fuzzy title match
    within the same category.
    """

    def __init__(
        self,
        jaccard_threshold: float = 0.75,
        min_containment_chars: int = 20,
        min_containment_tokens: int = 4,
    ) -> None:
        self.jaccard_threshold = jaccard_threshold
        self.min_containment_chars = min_containment_chars
        self.min_containment_tokens = min_containment_tokens

        self.stats: Dict[str, int] = {
            "total_processed": 0,
            "url_filtered": 0,
            "title_filtered": 0,
            "kept": 0,
        }

        self.logger = logging.getLogger(__name__)

    def deduplicate(
        self,
        items: Iterable[ContentItem],
        priority: Optional[Callable[[ContentItem], Any]] = None,
    ) -> Dict[str, ContentItem]:
        """
        Collapse duplicates, keeping the first-seen copy of each story.

        Args:
            items: Merged items from all fetch families
            priority: Optional sort key applied (stably) before the pass, so
                lower keys win ties between duplicate copies

        Returns:
            Accepted items keyed by id, in acceptance order
        """
        self.reset_statistics()
        ordered: List[ContentItem] = list(items)
        if priority is not None:
            ordered.sort(key=priority)

        accepted: Dict[str, ContentItem] = {}
        seen_urls: Set[str] = set()
        titles_by_category: Dict[str, List[Tuple[str, Set[str]]]] = defaultdict(list)

        for item in ordered:
            self.stats["total_processed"] += 1

            if item.url in seen_urls or item.id in accepted:
                self.stats["url_filtered"] += 1
                continue

            normalized = normalize_title(item.title)
            tokens = set(normalized.split())
            category_titles = titles_by_category[item.category]
            if normalized and self._matches_any(normalized, tokens, category_titles):
                self.stats["title_filtered"] += 1
                self.logger.debug(f"Fuzzy duplicate in {item.category}: {item.title[:80]}")
                continue

            accepted[item.id] = item
            seen_urls.add(item.url)
            if normalized:
                category_titles.append((normalized, tokens))

        self.stats["kept"] = len(accepted)
        self.logger.info(
            f"🧹 Dedup: {self.stats['total_processed']} → {self.stats['kept']} "
            f"(url: {self.stats['url_filtered']}, title: {self.stats['title_filtered']})"
        )
        return accepted

    def _matches_any(
        self,
        normalized: str,
        tokens: Set[str],
        accepted_titles: List[Tuple[str, Set[str]]],
    ) -> bool:
        for other_title, other_tokens in accepted_titles:
            if self.is_duplicate_title(normalized, tokens, other_title, other_tokens):
                return True
        return False

    def is_duplicate_title(
        self,
        first: str,
        first_tokens: Set[str],
        second: str,
        second_tokens: Set[str],
    ) -> bool:
        """Titles must already be normalized."""
        if first == second:
            return True

        shorter, longer = (first, second) if len(first) <= len(second) else (second, first)
        shorter_tokens = first_tokens if shorter is first else second_tokens
        if (
            len(shorter) >= self.min_containment_chars
            and len(shorter_tokens) >= self.min_containment_tokens
            and f" {shorter} " in f" {longer} "
        ):
            return True

        return jaccard_similarity(first_tokens, second_tokens) > self.jaccard_threshold

    def get_statistics(self) -> Dict[str, int]:
        return dict(self.stats)

    def reset_statistics(self) -> None:
        for key in self.stats:
            self.stats[key] = 0
