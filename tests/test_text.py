import unittest

from fortunegen.core.text import (
    citation_key,
    citations_overlap,
    is_soft_match,
    normalize_text,
    parse_citation,
    word_overlap_ratio,
)


class TestNormalize(unittest.TestCase):
    def test_case_punctuation_and_spacing_fold(self):
        self.assertEqual(normalize_text("Hello,  World!"), normalize_text("hello world"))
        self.assertEqual(normalize_text("  I am   capable, and STRONG. "), "i am capable and strong")

    def test_idempotent(self):
        for text in ["Hello,  World!", "Don't give up_now...", "  ", "Psalm 23:1 — The LORD"]:
            once = normalize_text(text)
            self.assertEqual(normalize_text(once), once)

    def test_empty_inputs(self):
        self.assertEqual(normalize_text(None), "")
        self.assertEqual(normalize_text("?!..."), "")


class TestCitations(unittest.TestCase):
    def test_parse_range_and_single(self):
        c = parse_citation("Lamentations 3:22-23")
        self.assertEqual((c.book, c.chapter, c.verse_start, c.verse_end), ("lamentations", 3, 22, 23))
        c = parse_citation("Psalm 23:1")
        self.assertEqual((c.verse_start, c.verse_end), (1, 1))

    def test_parse_numbered_and_multiword_books(self):
        self.assertEqual(parse_citation("1 John 3:17").book, "1 john")
        self.assertEqual(parse_citation("Song of Solomon 2:4").book, "song of solomon")

    def test_reversed_range_is_swapped(self):
        c = parse_citation("John 3:18-16")
        self.assertEqual((c.verse_start, c.verse_end), (16, 18))

    def test_unparsable(self):
        self.assertIsNone(parse_citation("Ancient proverb"))
        self.assertIsNone(parse_citation(""))
        self.assertIsNone(parse_citation(None))

    def test_overlap_cases(self):
        self.assertTrue(citations_overlap(parse_citation("John 3:16-18"), parse_citation("John 3:17")))
        self.assertFalse(citations_overlap(parse_citation("John 3:16"), parse_citation("John 4:16")))
        self.assertFalse(citations_overlap(parse_citation("John 3:16-18"), parse_citation("1 John 3:17")))
        self.assertTrue(citations_overlap(parse_citation("Psalm 23:1-3"), parse_citation("psalm 23:3-6")))
        self.assertFalse(citations_overlap(parse_citation("Psalm 23:1-3"), None))

    def test_citation_key_ignores_case_and_spaces(self):
        self.assertEqual(citation_key("John 3:16"), citation_key("john  3 : 16"))
        self.assertEqual(citation_key(None), "")


class TestSoftMatch(unittest.TestCase):
    def test_exactly_sixty_percent_matches(self):
        candidate = "apple banana cherry grape lemon"
        existing = "apple banana cherry melon peach"
        self.assertAlmostEqual(word_overlap_ratio(candidate, existing), 0.6)
        self.assertTrue(is_soft_match(candidate, existing))

    def test_just_below_sixty_percent_does_not_match(self):
        candidate = " ".join(f"word{i:02d}" for i in range(17))
        existing = "zzzz " + " ".join(f"word{i:02d}" for i in range(10))
        self.assertLess(word_overlap_ratio(candidate, existing), 0.6)
        self.assertFalse(is_soft_match(candidate, existing))

    def test_fifty_nine_of_hundred_words_does_not_match(self):
        words = [f"word{i:03d}" for i in range(100)]
        candidate = " ".join(words)
        existing = "zzzz " + " ".join(words[:59])
        self.assertAlmostEqual(word_overlap_ratio(candidate, existing), 0.59)
        self.assertFalse(is_soft_match(candidate, existing))

    def test_sixty_of_hundred_words_matches(self):
        words = [f"word{i:03d}" for i in range(100)]
        candidate = " ".join(words)
        existing = "zzzz " + " ".join(words[:60])
        self.assertTrue(is_soft_match(candidate, existing))

    def test_containment_matches(self):
        self.assertTrue(is_soft_match("Be kind", "Be kind to everyone you meet."))
        self.assertTrue(is_soft_match("Be kind to everyone you meet today", "be kind to everyone"))

    def test_short_words_are_ignored(self):
        # no word of 4+ letters -> ratio 0, only containment can match
        self.assertEqual(word_overlap_ratio("I am to be", "I am to go"), 0.0)
        self.assertFalse(is_soft_match("I am to be", "I am to go"))


if __name__ == "__main__":
    unittest.main()
