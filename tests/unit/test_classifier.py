from datetime import timedelta

import pytest

from priority_inbox.features.triage.classification import (
    ClassificationBatchError,
    ClassificationCache,
    Classifier,
    fingerprint,
    format_classification,
)
from priority_inbox.features.triage.rules import (
    ClassificationRule,
    Condition,
    ConditionField,
    ConditionOperator,
    PriorityConfig,
)


class TestIgnoreLists:
    def test_ignored_sender_short_circuits_to_spam(self, classifier, make_message):
        result = classifier.classify(make_message(sender="promo@marketing.com", subject="Hi"))

        assert result.category == "spam"
        assert result.confidence == 0.99
        assert result.method == "rules"
        assert result.tags == ["ignored", "auto"]
        assert result.reasoning == "Sender is in ignore list"

    def test_ignored_sender_wins_over_matching_rule(self, classifier, make_message):
        # spam@* is ignored even though company.com matches the work rule.
        result = classifier.classify(make_message(sender="spam@company.com"))

        assert result.category == "spam"

    def test_ignored_subject_maps_to_newsletters(self, classifier, make_message):
        result = classifier.classify(make_message(subject="Webinar Invitation: Cloud 101"))

        assert result.category == "newsletters"
        assert result.confidence == 0.95
        assert result.reasoning == "Subject matches ignore pattern"

    def test_ignore_results_are_not_cached(self, classifier, make_message):
        classifier.classify(make_message(sender="promo@marketing.com"))

        assert len(classifier.cache) == 0


class TestRules:
    def test_matching_rule_supplies_category_and_tags(self, classifier, make_message):
        result = classifier.classify(make_message(sender="alice@company.com", subject="Lunch"))

        assert result.category == "work"
        assert result.confidence == 0.9
        assert result.tags == ["work"]
        assert result.reasoning == "Matched rule: Work email from company domain"

    def test_highest_confidence_rule_wins(self, classifier, make_message):
        message = make_message(sender="billing@bigclient.com", subject="Invoice for May")

        assert classifier.classify(message).category == "work"

    def test_equal_confidence_prefers_smallest_category_name(self, make_message):
        condition = Condition(field=ConditionField.SUBJECT, operator=ConditionOperator.CONTAINS, value="report")
        config = PriorityConfig(
            classification_rules={
                "beta": ClassificationRule(description="b", conditions=[condition], confidence=0.8),
                "alpha": ClassificationRule(description="a", conditions=[condition], confidence=0.8),
            }
        )

        result = Classifier(config).classify(make_message(subject="Weekly report"))

        assert result.category == "alpha"
        assert result.reasoning == "Matched rule: a"

    def test_malformed_regex_falls_through_to_heuristics(self, make_message):
        bad = Condition.model_construct(
            field=ConditionField.SUBJECT, operator=ConditionOperator.REGEX, value="(oops", values=[]
        )
        config = PriorityConfig(
            classification_rules={
                "broken": ClassificationRule(description="bad", conditions=[bad], confidence=0.99)
            }
        )

        result = Classifier(config).classify(make_message(subject="(oops"))

        assert result.category == "personal"
        assert result.tags == ["default", "heuristic"]


class TestHeuristics:
    @pytest.mark.parametrize(
        "sender, subject, category, confidence, reasoning",
        [
            ("noreply@github.com", "Build passed", "newsletters", 0.70, "Automated sender detected"),
            ("notifications@app.io", "Urgent: review", "newsletters", 0.70, "Automated sender detected"),
            ("newsletter@techcrunch.com", "Daily Tech News Digest", "newsletters", 0.75, "Newsletter keywords in subject"),
            ("shop@store.io", "Weekend deal for you", "promotions", 0.80, "Promotional keywords detected"),
            ("friend@example.org", "Your bill is ready", "invoice", 0.85, "Financial keywords detected"),
            ("friend@example.org", "Important: read this", "urgent", 0.90, "Urgent keywords detected"),
            ("friend@example.org", "Dinner on Friday?", "personal", 0.50, "Default classification - no specific rules matched"),
        ],
    )
    def test_heuristic_fallback(self, classifier, make_message, sender, subject, category, confidence, reasoning):
        result = classifier.classify(make_message(sender=sender, subject=subject))

        assert result.category == category
        assert result.confidence == confidence
        assert result.reasoning == reasoning
        assert result.tags == ["default", "heuristic"]
        assert result.method == "rules"


class TestCache:
    def test_repeat_classification_is_served_from_cache(self, classifier, make_message):
        message = make_message(sender="alice@company.com")

        first = classifier.classify(message)
        second = classifier.classify(message)

        assert second == first
        assert len(classifier.cache) == 1

    def test_cache_hit_carries_the_requesting_message_id(self, classifier, make_message):
        classifier.classify(make_message(id="", sender="alice@company.com"))

        result = classifier.classify(make_message(id="m-2", sender="alice@company.com"))

        assert result.message_id == "m-2"
        assert result.category == "work"

    def test_cached_results_do_not_share_tags(self, classifier, make_message):
        message = make_message(sender="alice@company.com")

        first = classifier.classify(message)
        first.tags.append("starred")
        second = classifier.classify(message)
        second.tags.clear()

        assert classifier.classify(message).tags == ["work"]
        assert first.tags == ["work", "starred"]

    def test_fingerprint_ignores_body_and_id(self, make_message):
        a = make_message(id="one", body_snippet="first")
        b = make_message(id="two", body_snippet="second")

        assert fingerprint(a) == fingerprint(b)
        assert fingerprint(a) != fingerprint(make_message(subject="Different"))

    def test_stale_entries_are_misses(self, classifier, make_message):
        cache = ClassificationCache(ttl=timedelta(hours=24))
        result = classifier.classify(make_message())
        cache.set("key", result)

        assert cache.get("key", now=result.timestamp + timedelta(hours=23)) == result
        assert cache.get("key", now=result.timestamp + timedelta(hours=24)) is None

    def test_clear_cache(self, classifier, make_message):
        classifier.classify(make_message())
        classifier.clear_cache()

        assert len(classifier.cache) == 0


class TestBatch:
    def test_batch_preserves_order(self, classifier, make_message):
        messages = [
            make_message(id="a", sender="alice@company.com"),
            make_message(id="b", sender="promo@marketing.com"),
        ]

        results = classifier.classify_batch(messages)

        assert [r.message_id for r in results] == ["a", "b"]
        assert [r.category for r in results] == ["work", "spam"]

    def test_batch_fails_fast_with_message_id(self, classifier, make_message, monkeypatch):
        seen = []
        original = classifier.classify

        def flaky(message):
            seen.append(message.id)
            if message.id == "b":
                raise RuntimeError("boom")
            return original(message)

        monkeypatch.setattr(classifier, "classify", flaky)
        messages = [make_message(id=i, subject=f"Subject {i}") for i in ("a", "b", "c")]

        with pytest.raises(ClassificationBatchError) as exc_info:
            classifier.classify_batch(messages)

        assert exc_info.value.message_id == "b"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert seen == ["a", "b"]


class TestPersistence:
    @pytest.mark.asyncio
    async def test_save_and_get_classification(self, classifier, classification_repository, make_message):
        result = classifier.classify(make_message(id="m-1"))

        await classifier.save_classification(result)

        assert classification_repository.store["m-1"] is result
        assert await classifier.get_classification("m-1") is result
        assert await classifier.get_classification("missing") is None

    @pytest.mark.asyncio
    async def test_feedback_overrides_classification(self, classifier, classification_repository, make_message):
        await classifier.save_classification(classifier.classify(make_message(id="m-1")))

        result = await classifier.learn_from_feedback("m-1", "work")

        stored = classification_repository.store["m-1"]
        assert stored is result
        assert stored.category == "work"
        assert stored.confidence == 1.0
        assert stored.method == "user"
        assert stored.tags == ["user_corrected"]
        assert stored.reasoning == "User feedback"


def test_categories_lists_rules_then_builtins(classifier):
    assert classifier.categories() == [
        "work",
        "invoice",
        "promotions",
        "personal",
        "spam",
        "newsletters",
        "urgent",
    ]


def test_stats(classifier, make_message):
    classifier.classify(make_message())

    stats = classifier.get_stats()

    assert stats["cache_size"] == 1
    assert stats["rules_count"] == 3


def test_format_classification(classifier, make_message):
    message = make_message(sender="newsletter@techcrunch.com", subject="Daily Tech News Digest")
    text = format_classification(classifier.classify(message), message)

    assert "Category: newsletters" in text
    assert "Confidence: 75%" in text
    assert "Tags: default, heuristic" in text
    assert "From: newsletter@techcrunch.com" in text
