import unittest

from fortunegen.core.dedup import RunContext
from fortunegen.core.errors import ParseError
from fortunegen.core.models import BaselineItem, SourceType, Theme
from fortunegen.steps.generation import CandidateGenerator, build_prompt, clean_json, parse_candidates


class FakeLLM:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def call(self, **kwargs):
        self.calls.append(kwargs)
        return self.reply


class TestParseCandidates(unittest.TestCase):
    def test_fenced_json_with_trailing_comma(self):
        raw = '```json\n[{"content": "I am enough", }, {"content": "I can learn new things"},]\n```'
        self.assertEqual(clean_json(raw), '[{"content": "I am enough"}, {"content": "I can learn new things"}]')
        items = parse_candidates(raw, SourceType.AFFIRMATION)
        self.assertEqual([c.content for c in items], ["I am enough", "I can learn new things"])
        self.assertTrue(all(c.source_type == SourceType.AFFIRMATION for c in items))

    def test_bad_entries_are_dropped(self):
        raw = '[{"content": "  "}, 42, "Plain string entry", {"text": "Alt key", "citation": "John 1:1"}]'
        items = parse_candidates(raw, SourceType.BIBLE_VERSE)
        self.assertEqual([c.content for c in items], ["Plain string entry", "Alt key"])
        self.assertEqual(items[1].reference, "John 1:1")

    def test_quotes_need_an_author(self):
        raw = '[{"content": "Stay hungry", "author": ""}, {"content": "Be yourself", "author": "Oscar Wilde"}]'
        items = parse_candidates(raw, SourceType.INSPIRATIONAL_QUOTE)
        self.assertEqual([(c.content, c.author) for c in items], [("Be yourself", "Oscar Wilde")])

    def test_prose_around_array(self):
        raw = 'Here you go:\n[{"content": "Kindness is free"}]\nEnjoy!'
        self.assertEqual(parse_candidates(raw, SourceType.LIFE_LESSON)[0].content, "Kindness is free")

    def test_single_list_wrapper_object(self):
        raw = '{"items": [{"content": "What made you smile today?"}]}'
        self.assertEqual(len(parse_candidates(raw, SourceType.GRATITUDE_PROMPT)), 1)

    def test_malformed_raises(self):
        for raw in ["", "not json at all", '{"a": 1}', "[{broken"]:
            with self.assertRaises(ParseError):
                parse_candidates(raw, SourceType.AFFIRMATION)


class TestPrompts(unittest.TestCase):
    def test_reference_exclusion_and_translation(self):
        context = RunContext.from_baseline([
            BaselineItem(content="x", source_type=SourceType.BIBLE_VERSE, reference="Micah 6:8"),
        ])
        prompt = build_prompt(SourceType.BIBLE_VERSE, 7, context, theme=Theme.HOPE, translation="ESV")
        self.assertIn("Generate 7", prompt)
        self.assertIn("ESV", prompt)
        self.assertIn("Micah 6:8", prompt)
        self.assertIn("hope", prompt)

    def test_author_exclusion_for_quotes(self):
        context = RunContext.from_baseline([
            BaselineItem(content="q", source_type=SourceType.INSPIRATIONAL_QUOTE, author="Helen Keller"),
        ])
        prompt = build_prompt(SourceType.INSPIRATIONAL_QUOTE, 3, context)
        self.assertIn("Helen Keller", prompt)

    def test_no_blocks_without_context(self):
        prompt = build_prompt(SourceType.AFFIRMATION, 5)
        self.assertNotIn("IMPORTANT", prompt)
        self.assertNotIn("THEME", prompt)

    def test_generator_passes_settings_through(self):
        llm = FakeLLM('[{"content": "I am a good friend"}]')
        generator = CandidateGenerator(llm, model="gen-model", max_tokens=500)
        items = generator.generate(SourceType.AFFIRMATION, 4, temperature=1.1)

        self.assertEqual(items[0].content, "I am a good friend")
        call = llm.calls[0]
        self.assertEqual(call["model"], "gen-model")
        self.assertEqual(call["temperature"], 1.1)
        self.assertEqual(call["max_tokens"], 500)
        self.assertIn("JSON", call["system"])


if __name__ == "__main__":
    unittest.main()
