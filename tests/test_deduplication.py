from bookmarkr_news.services.deduplication_service import DeduplicationService

from conftest import make_item


class TestDeduplicationService:
    def test_exact_url_duplicates_collapse(self):
        items = [
            make_item("Story one", "https://a.com/1", source_id="a"),
            make_item("Completely different headline", "https://a.com/1", source_id="b"),
        ]

        result = DeduplicationService().deduplicate(items)

        assert len(result) == 1
        assert next(iter(result.values())).source.id == "a"

    def test_identical_titles_with_different_urls_keep_one(self):
        items = [
            make_item("Apple unveils new chip", "https://a.com/chip"),
            make_item("Apple Unveils New Chip!", "https://b.com/chip"),
        ]

        assert len(DeduplicationService().deduplicate(items)) == 1

    def test_tracking_parameter_copy_removed(self):
        items = [
            make_item("Markets close higher on Friday", "https://news.com/markets"),
            make_item("Markets close higher on Friday", "https://news.com/markets?utm_source=rss"),
            make_item("Robot vacuums reviewed", "https://news.com/robots"),
            make_item("Mars rover finds ancient lake", "https://news.com/mars"),
            make_item("Designers embrace brutalism", "https://news.com/design"),
        ]

        result = DeduplicationService().deduplicate(items)

        assert len(result) == 4
        assert len({item.url for item in result.values()}) == 4

    def test_same_title_in_different_categories_both_kept(self):
        items = [
            make_item("Weekly roundup", "https://a.com/roundup", category="design"),
            make_item("Weekly roundup", "https://b.com/roundup", category="science"),
        ]

        assert len(DeduplicationService().deduplicate(items)) == 2

    def test_similar_titles_above_threshold_collapse(self):
        # 4 shared tokens of 5 total: 0.8 > 0.75
        items = [
            make_item("OpenAI launches GPT model today", "https://a.com/x"),
            make_item("OpenAI launches GPT model", "https://b.com/y"),
        ]
        assert len(DeduplicationService(min_containment_chars=1000).deduplicate(items)) == 1

    def test_titles_at_threshold_are_distinct(self):
        # 3 shared tokens of 4 total: exactly 0.75
        items = [
            make_item("rust compiler release notes", "https://a.com/x"),
            make_item("rust compiler release", "https://b.com/y"),
        ]
        service = DeduplicationService(min_containment_chars=1000)
        assert len(service.deduplicate(items)) == 2

    def test_containment_of_long_title(self):
        items = [
            make_item("Senate passes sweeping climate bill", "https://a.com/x"),
            make_item("Breaking: Senate passes sweeping climate bill after marathon session", "https://b.com/y"),
        ]
        assert len(DeduplicationService().deduplicate(items)) == 1

    def test_priority_decides_which_copy_survives(self):
        flaky = make_item("Same story", "https://flaky.com/s", source_id="flaky")
        steady = make_item("Same story", "https://steady.com/s", source_id="steady")
        failures = {"flaky": 2, "steady": 0}

        result = DeduplicationService().deduplicate(
            [flaky, steady], priority=lambda item: failures[item.source.id]
        )

        assert [item.source.id for item in result.values()] == ["steady"]

    def test_statistics(self):
        service = DeduplicationService()
        service.deduplicate([
            make_item("A story here", "https://a.com/1"),
            make_item("A story here", "https://a.com/1"),
            make_item("A story here", "https://b.com/1"),
            make_item("Another", "https://c.com/1"),
        ])

        assert service.get_statistics() == {
            "total_processed": 4, "url_filtered": 1, "title_filtered": 1, "kept": 2,
        }
