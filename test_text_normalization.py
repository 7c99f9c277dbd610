import os
import sys
import unittest

# Add the src directory to the Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from quran_hafiz.similarity import similarity
from quran_hafiz.text_normalization import normalize, strip_quranic_marks, tokenize


class TestNormalize(unittest.TestCase):
    def test_removes_diacritics(self):
        self.assertEqual(normalize("بِسْمِ"), "بسم")
        self.assertEqual(normalize("ٱلرَّحْمَٰنِ"), "الرحمن")

    def test_unifies_alef_forms(self):
        for word in ("أحد", "إحد", "آحد", "ٱحد"):
            self.assertEqual(normalize(word), "احد")

    def test_letter_variants(self):
        self.assertEqual(normalize("رحمة"), "رحمه")
        self.assertEqual(normalize("هدى"), "هدي")
        self.assertEqual(normalize("مؤمن"), "مومن")
        self.assertEqual(normalize("بئر"), "بير")

    def test_removes_tatweel(self):
        self.assertEqual(normalize("الـــله"), "الله")

    def test_removes_quranic_marks(self):
        self.assertEqual(normalize("أَحَدٌۢ"), "احد")
        self.assertEqual(normalize("ۛ"), "")

    def test_collapses_whitespace(self):
        self.assertEqual(normalize("  قُلْ \t هُوَ\n"), "قل هو")

    def test_idempotent(self):
        text = "وَلَمْ يَكُن لَّهُۥ كُفُوًا أَحَدٌۢ"
        self.assertEqual(normalize(normalize(text)), normalize(text))

    def test_empty(self):
        self.assertEqual(normalize(""), "")

    def test_non_arabic_passes_through(self):
        self.assertEqual(normalize("xyz"), "xyz")


class TestTokenize(unittest.TestCase):
    def test_splits_and_normalizes(self):
        self.assertEqual(tokenize("قُلْ هُوَ ٱللَّهُ أَحَدٌ"), ["قل", "هو", "الله", "احد"])

    def test_drops_words_that_vanish(self):
        self.assertEqual(tokenize("لَا رَيْبَ ۛ فِيهِ"), ["لا", "ريب", "فيه"])

    def test_empty(self):
        self.assertEqual(tokenize("   "), [])


class TestStripQuranicMarks(unittest.TestCase):
    def test_keeps_harakat(self):
        self.assertEqual(strip_quranic_marks("لَّهُۥ"), "لَّهُ")

    def test_lone_mark(self):
        self.assertEqual(strip_quranic_marks("ۚ"), "")


class TestSimilarity(unittest.TestCase):
    def test_identical(self):
        self.assertEqual(similarity("الله", "الله"), 100.0)
        self.assertEqual(similarity("", ""), 100.0)

    def test_against_empty(self):
        self.assertEqual(similarity("الله", ""), 0.0)
        self.assertEqual(similarity("", "الله"), 0.0)

    def test_single_substitution(self):
        self.assertEqual(similarity("الصمد", "السمد"), 80.0)

    def test_symmetric(self):
        self.assertEqual(similarity("ولم", "لم"), similarity("لم", "ولم"))

    def test_completely_different(self):
        self.assertEqual(similarity("abc", "xyz"), 0.0)

    def test_range(self):
        score = similarity("يولد", "يكن")
        self.assertGreaterEqual(score, 0.0)
        self.assertLessEqual(score, 100.0)


if __name__ == "__main__":
    unittest.main()
