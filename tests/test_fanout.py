import json
import random
import unittest
from unittest import mock

from fortunegen.core.errors import ConfigError, GenerationError
from fortunegen.core.llm import LLMService
from fortunegen.core.models import (
    AcceptedItem,
    BaselineItem,
    GenerationRequest,
    GenerationState,
    SourceType,
)
from fortunegen.steps.fanout import MultiCategoryStep, allocate_counts, merge_across_categories


class TestAllocateCounts(unittest.TestCase):
    def test_ten_over_four(self):
        cats = [SourceType.AFFIRMATION, SourceType.LIFE_LESSON, SourceType.PROVERBS, SourceType.BIBLE_VERSE]
        for seed in range(20):
            allocation = allocate_counts(10, cats, random.Random(seed))
            self.assertEqual(sum(allocation.values()), 10)
            self.assertTrue(all(n in (2, 3) for n in allocation.values()))
            self.assertEqual(set(allocation), set(cats))

    def test_large_total_spreads_remainder(self):
        allocation = allocate_counts(200, list(SourceType), random.Random(1))
        self.assertEqual(sum(allocation.values()), 200)
        self.assertEqual(sorted(set(allocation.values())), [28, 29])

    def test_total_below_two_per_category_is_rejected(self):
        with self.assertRaises(ConfigError):
            allocate_counts(3, list(SourceType), random.Random(0))
        with self.assertRaises(ConfigError):
            allocate_counts(13, list(SourceType), random.Random(0))

    def test_exactly_two_per_category(self):
        allocation = allocate_counts(14, list(SourceType), random.Random(0))
        self.assertTrue(all(n == 2 for n in allocation.values()))
        self.assertEqual(sum(allocation.values()), 14)

    def test_seed_makes_it_reproducible(self):
        cats = list(SourceType)
        self.assertEqual(allocate_counts(25, cats, random.Random(7)), allocate_counts(25, cats, random.Random(7)))

    def test_no_categories(self):
        self.assertEqual(allocate_counts(10, []), {})


class TestMergeAcrossCategories(unittest.TestCase):
    def test_same_verse_from_two_categories(self):
        items = [
            AcceptedItem(content="Trust in the LORD with all your heart", source_type=SourceType.BIBLE_VERSE, reference="Proverbs 3:5"),
            AcceptedItem(content="Trust in the Lord with all your heart.", source_type=SourceType.PROVERBS, reference="Proverbs 3:5-6"),
            AcceptedItem(content="A cheerful heart is good medicine", source_type=SourceType.PROVERBS, reference="Proverbs 17:22"),
        ]
        merged = merge_across_categories(items)
        self.assertEqual([i.reference for i in merged], ["Proverbs 3:5", "Proverbs 17:22"])


def _reply_for(prompt):
    if "biblical proverbs" in prompt:
        return json.dumps([
            {"content": "Trust in the LORD with all your heart", "reference": "Proverbs 3:5"},
            {"content": "A cheerful heart is good medicine", "reference": "Proverbs 17:22"},
            {"content": "Gracious words are a honeycomb", "reference": "Proverbs 16:24"},
        ])
    if "Bible verses" in prompt:
        return json.dumps([
            {"content": "Trust in the LORD with all your heart", "reference": "Proverbs 3:5"},
            {"content": "God is our refuge and strength", "reference": "Psalm 46:1"},
            {"content": "Be still, and know that I am God", "reference": "Psalm 46:10"},
        ])
    raise GenerationError("unexpected prompt")


class TestMultiCategoryStep(unittest.TestCase):
    def _state(self, **request):
        return GenerationState(
            request=GenerationRequest(category="all", **request),
            baseline=[BaselineItem(content="God is our refuge and strength", source_type=SourceType.BIBLE_VERSE, reference="Psalm 46:1")],
        )

    def _step(self):
        return MultiCategoryStep({"model": "test-model", "seed": 3, "judge": {"enabled": False}})

    def test_fan_out_and_cross_category_dedup(self):
        state = self._state(count=4, categories=[SourceType.BIBLE_VERSE, SourceType.PROVERBS], translation="niv")

        def fake_call(service, prompt, model, temperature, **kwargs):
            return _reply_for(prompt)

        with mock.patch.object(LLMService, "call", autospec=True, side_effect=fake_call):
            state = self._step().run(state)

        contents = [i.content for i in state.accepted]
        self.assertEqual(contents.count("Trust in the LORD with all your heart"), 1)
        self.assertNotIn("God is our refuge and strength", contents)
        self.assertEqual(len(state.accepted), 3)
        self.assertEqual(sum(state.per_category_distribution.values()), 3)
        self.assertEqual(set(state.per_category_distribution), {"bible_verse", "proverbs"})
        self.assertTrue(all(i.translation == "NIV" for i in state.accepted))
        self.assertEqual({o.reason for o in state.outcomes}, {"single_pass"})
        self.assertEqual(len(state.execution_log), 1)

    def test_failed_category_contributes_nothing(self):
        state = self._state(count=4, categories=[SourceType.PROVERBS, SourceType.AFFIRMATION])

        def fake_call(service, prompt, model, temperature, **kwargs):
            return _reply_for(prompt)

        with mock.patch.object(LLMService, "call", autospec=True, side_effect=fake_call):
            state = self._step().run(state)

        self.assertEqual(state.per_category_distribution["affirmation"], 0)
        self.assertEqual(state.per_category_distribution["proverbs"], 2)
        failed = [o for o in state.outcomes if o.source_type == SourceType.AFFIRMATION][0]
        self.assertEqual(failed.attempts, 0)
        self.assertEqual(failed.collected, 0)


if __name__ == "__main__":
    unittest.main()
