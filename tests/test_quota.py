import time
import unittest

from fortunegen.core.dedup import DuplicateDetector, RunContext
from fortunegen.core.errors import ConfigError, GenerationError, ParseError
from fortunegen.core.models import (
    BaselineItem,
    Candidate,
    FulfillmentStatus,
    GenerationRequest,
    GenerationState,
    SourceType,
    Theme,
)
from fortunegen.steps.quota import QuotaFulfillmentStep, attempt_temperature, fulfill_quota


class ScriptedGenerator:
    """Returns one scripted batch per call; exceptions in the script are raised."""

    def __init__(self, batches, source_type=SourceType.AFFIRMATION):
        self.batches = list(batches)
        self.source_type = source_type
        self.calls = []

    def generate(self, source_type, count, context=None, temperature=0.8, theme=None, translation=None):
        self.calls.append({"count": count, "temperature": temperature, "translation": translation})
        if not self.batches:
            return []
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return [
            c if isinstance(c, Candidate) else Candidate(content=c, source_type=self.source_type)
            for c in batch
        ]


def _baseline(*texts, source_type=SourceType.AFFIRMATION):
    return RunContext.from_baseline([BaselineItem(content=t, source_type=source_type) for t in texts])


class TestFulfillQuota(unittest.TestCase):
    def test_rejects_baseline_and_in_batch_duplicates(self):
        generator = ScriptedGenerator([
            ["I am capable and strong.", "I am kind and brave", "I am capable and strong!"],
        ])
        items, outcome = fulfill_quota(
            generator, DuplicateDetector(), _baseline("I am capable and strong"), SourceType.AFFIRMATION, 3
        )
        self.assertEqual([i.content for i in items], ["I am kind and brave"])
        self.assertEqual(outcome.status, FulfillmentStatus.EXHAUSTED)
        self.assertEqual(outcome.rejected, 2)

    def test_overlapping_verse_rejected(self):
        context = RunContext.from_baseline([
            BaselineItem(content="The LORD is my shepherd", source_type=SourceType.BIBLE_VERSE, reference="Psalm 23:1-3"),
        ])
        generator = ScriptedGenerator([[
            Candidate(content="He leads me beside quiet waters", source_type=SourceType.BIBLE_VERSE, reference="Psalm 23:2"),
            Candidate(content="Cast all your anxiety on him", source_type=SourceType.BIBLE_VERSE, reference="1 Peter 5:7"),
        ]])
        items, outcome = fulfill_quota(
            generator, DuplicateDetector(), context, SourceType.BIBLE_VERSE, 1, translation="ESV"
        )
        self.assertEqual([i.reference for i in items], ["1 Peter 5:7"])
        self.assertEqual(items[0].translation, "ESV")
        self.assertEqual(outcome.status, FulfillmentStatus.QUOTA_MET)

    def test_saturation_exits_early(self):
        existing = [f"Saying number {i} about gentle rivers" for i in range(20)]
        generator = ScriptedGenerator([existing[:15]] * 5)
        items, outcome = fulfill_quota(
            generator, DuplicateDetector(), _baseline(*existing), SourceType.AFFIRMATION, 10
        )
        self.assertEqual(items, [])
        self.assertEqual(outcome.reason, "saturated")
        self.assertEqual(outcome.attempts, 1)
        self.assertEqual(outcome.rejected, 15)

    def test_saturation_counts_across_small_attempts(self):
        # count=5 asks for 10 per attempt, so the run of rejections spans two attempts
        existing = [f"Saying number {i} about gentle rivers" for i in range(10)]
        generator = ScriptedGenerator([existing] * 5)
        items, outcome = fulfill_quota(
            generator, DuplicateDetector(), _baseline(*existing), SourceType.AFFIRMATION, 5
        )
        self.assertEqual(items, [])
        self.assertEqual(outcome.reason, "saturated")
        self.assertEqual(outcome.attempts, 2)
        self.assertEqual(outcome.rejected, 15)
        self.assertEqual([c["count"] for c in generator.calls], [10, 10])

    def test_acceptance_resets_rejection_run(self):
        existing = [f"Saying number {i} about gentle rivers" for i in range(10)]
        generator = ScriptedGenerator([
            existing,
            existing[:4] + ["I am a bright light"] + existing[4:],
            existing,
        ])
        items, outcome = fulfill_quota(
            generator, DuplicateDetector(), _baseline(*existing), SourceType.AFFIRMATION, 5
        )
        # 10 + 4 rejections, one acceptance, then 6 + 9 more in a row
        self.assertEqual([i.content for i in items], ["I am a bright light"])
        self.assertEqual(outcome.reason, "saturated")
        self.assertEqual(outcome.attempts, 3)

    def test_terminates_when_generator_underdelivers(self):
        generator = ScriptedGenerator([])
        items, outcome = fulfill_quota(generator, DuplicateDetector(), RunContext(), SourceType.AFFIRMATION, 20)
        self.assertEqual(items, [])
        self.assertEqual(outcome.attempts, 5)
        self.assertEqual(outcome.reason, "max_attempts")
        self.assertEqual(len(generator.calls), 5)

    def test_request_size_and_temperature_ramp(self):
        generator = ScriptedGenerator([["I am patient"], ["I am honest"]])
        fulfill_quota(generator, DuplicateDetector(), RunContext(), SourceType.AFFIRMATION, 4, max_attempts=7)

        self.assertEqual([c["count"] for c in generator.calls[:3]], [9, 8, 7])
        self.assertEqual(
            [c["temperature"] for c in generator.calls],
            [0.8, 0.9, 1.0, 1.1, 1.2, 1.3, 1.3],
        )
        self.assertEqual(attempt_temperature(10, 0.8, 0.1, 1.3), 1.3)

    def test_failed_attempts_are_skipped(self):
        generator = ScriptedGenerator([
            GenerationError("502"),
            ParseError("not json"),
            ["I belong here", "I try new things"],
        ])
        items, outcome = fulfill_quota(generator, DuplicateDetector(), RunContext(), SourceType.AFFIRMATION, 2)
        self.assertEqual(len(items), 2)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(outcome.reason, "quota_met")

    def test_stops_at_quota_inside_a_batch(self):
        generator = ScriptedGenerator([["I am calm", "I am curious", "I am creative"]])
        items, outcome = fulfill_quota(generator, DuplicateDetector(), RunContext(), SourceType.AFFIRMATION, 2)
        self.assertEqual([i.content for i in items], ["I am calm", "I am curious"])
        self.assertEqual(outcome.collected, 2)

    def test_deadline(self):
        generator = ScriptedGenerator([["I am calm"]])
        items, outcome = fulfill_quota(
            generator, DuplicateDetector(), RunContext(), SourceType.AFFIRMATION, 5, deadline=time.monotonic() - 1
        )
        self.assertEqual(outcome.reason, "deadline")
        self.assertEqual(generator.calls, [])

    def test_translation_only_on_citation_categories(self):
        generator = ScriptedGenerator([["I am calm"]])
        items, _ = fulfill_quota(
            generator, DuplicateDetector(), RunContext(), SourceType.AFFIRMATION, 1,
            theme=Theme.PEACE, translation="KJV",
        )
        self.assertIsNone(items[0].translation)
        self.assertEqual(items[0].theme, Theme.PEACE)


class TestQuotaFulfillmentStep(unittest.TestCase):
    def test_rejects_all_category(self):
        step = QuotaFulfillmentStep({"model": "m"})
        state = GenerationState(request=GenerationRequest(category="all", count=14))
        with self.assertRaises(ConfigError):
            step.run(state)


if __name__ == "__main__":
    unittest.main()
