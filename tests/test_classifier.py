"""Tests for the Classifier module."""

import os

import pytest

# Resolve paths relative to project root
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TAXONOMY_PATH = os.path.join(PROJECT_ROOT, "data", "taxonomy.yaml")

from autoblog.classifier import Classifier, Taxonomy, TaxonomyError, tokenize


@pytest.fixture
def classifier():
    return Classifier.from_path(TAXONOMY_PATH)


class TestTaxonomy:
    def test_loads_bundled_taxonomy(self, classifier):
        """Every tag points at a defined category."""
        taxonomy = classifier.taxonomy
        category_ids = {c.id for c in taxonomy.categories}
        assert len(taxonomy.categories) == 10
        assert taxonomy.fallback_category == "grammar"
        assert all(t.category_id in category_ids for t in taxonomy.tags)

    def test_unknown_tag_category_rejected(self):
        """A tag may only reference a category that exists."""
        data = {
            "categories": [{"id": "grammar", "name": "Grammar", "keywords": ["verb"]}],
            "tags": [{"name": "Food", "category": "vocabulary", "keywords": ["food"]}],
        }
        with pytest.raises(TaxonomyError):
            Taxonomy.from_dict(data)

    def test_missing_fallback_rejected(self):
        data = {
            "fallback_category": "travel",
            "categories": [{"id": "grammar", "name": "Grammar", "keywords": ["verb"]}],
        }
        with pytest.raises(TaxonomyError):
            Taxonomy.from_dict(data)

    def test_empty_taxonomy_rejected(self):
        with pytest.raises(TaxonomyError):
            Taxonomy.from_dict({})

    def test_missing_file(self, tmp_path):
        with pytest.raises(TaxonomyError):
            Taxonomy.load(str(tmp_path / "nope.yaml"))


class TestClassify:
    def test_grammar_text(self, classifier):
        """Verb and conjugation vocabulary lands in Grammar with the Verbs tag."""
        result = classifier.classify(
            "Verb Conjugation Grammar",
            "Every verb conjugation follows grammar rules. Each tense changes the verb ending in a sentence with a pronoun.",
        )
        assert result.category == "Grammar"
        assert result.category_id == "grammar"
        assert result.tags[0] == "Verbs"
        assert 0.0 < result.confidence <= 1.0

    def test_empty_text_falls_back(self, classifier):
        """No matches anywhere yields the fallback category and zero confidence."""
        result = classifier.classify("", "")
        assert result.category_id == "grammar"
        assert result.confidence == 0.0
        assert result.tags == ["Beginner"]

    def test_weak_matches_backfilled_to_minimum(self, classifier):
        """With no tag above the threshold, the strongest non-zero tags still make three."""
        body = "family mother train " + "zzzz " * 2000
        result = classifier.classify("", body)
        selected = [t for t in result.tags if t not in result.heuristic_tags]
        assert len(selected) == 3
        assert selected[0] == "Family"

    def test_tag_cap(self, classifier):
        """No more than eight taxonomy tags are selected."""
        every_keyword = " ".join(kw for tag in classifier.taxonomy.tags for kw in tag.keywords)
        result = classifier.classify("Everything", every_keyword)
        selected = [t for t in result.tags if t not in result.heuristic_tags]
        assert len(selected) <= 8

    def test_heuristic_tags(self, classifier):
        """Region and practicality markers add tags that are not in the taxonomy."""
        result = classifier.classify(
            "European Portuguese in Lisbon",
            "A practice example for everyday use in Portugal.",
        )
        assert "European Portuguese" in result.heuristic_tags
        assert "Practical" in result.heuristic_tags
        assert "Everyday Portuguese" in result.heuristic_tags
        assert "Brazilian Portuguese" not in result.heuristic_tags
        assert len(result.tags) == len(set(result.tags))

    def test_complex_vocabulary_is_advanced(self, classifier):
        result = classifier.classify("", "extraordinarily sophisticated conjugations everywhere")
        assert "Advanced" in result.heuristic_tags

    def test_tokenize_drops_short_and_stop_words(self):
        assert tokenize("I am at the Lisbon café, it is great!") == ["lisbon", "café", "great"]


class TestTagHelpers:
    def test_tags_for_category(self, classifier):
        names = [t.name for t in classifier.tags_for_category("travel")]
        assert names == ["Transportation", "Accommodation", "Directions"]

    def test_related_tags(self, classifier):
        """Siblings under the same category, capped at five."""
        related = classifier.related_tags("Verbs")
        assert "Verbs" not in related
        assert len(related) == 5
        assert related[0] == "Nouns"

    def test_related_tags_unknown(self, classifier):
        assert classifier.related_tags("Nonexistent") == []

    def test_validate_tags(self, classifier):
        """Known tags and anything longer than two characters survive."""
        assert classifier.validate_tags(["Verbs", "ab", "Custom"]) == ["Verbs", "Custom"]
