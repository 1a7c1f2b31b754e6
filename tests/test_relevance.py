"""Tests for the Relevance Graph module."""

import pytest

from autoblog.corpus import Post
from autoblog.relevance import (
    SAME_CATEGORY,
    SHARED_TAGS,
    RelevanceGraph,
    significant_words,
)

VERB_BODY = (
    "## Verbs\n\n"
    "Regular verbs follow predictable endings in every tense. "
    "You should practise them every day until they feel natural. "
    "Irregular verbs need more attention than regular ones."
)


def make_post(slug, title, category, tags, keywords=(), excerpt="", body=""):
    return Post(
        id=f"post-{slug}",
        title=title,
        slug=slug,
        excerpt=excerpt,
        body=body,
        category=category,
        tags=list(tags),
        keywords=list(keywords),
    )


@pytest.fixture
def posts():
    return [
        make_post(1, "Regular Verb Patterns", "Grammar", ["Verbs", "Present Tense"],
                  ["verbs", "conjugation"], "How regular verbs behave", VERB_BODY),
        make_post(2, "Verb Endings in the Present", "Grammar", ["Verbs", "Present Tense"],
                  ["verbs", "conjugation"], "Conjugate regular verbs in the present tense",
                  "Present tense endings change with the subject. Practise the endings aloud."),
        make_post(3, "Fado Nights", "Culture", ["Music"], ["fado"], "The soul of Lisbon",
                  "Fado is the soul of Lisbon. Singers perform in small taverns every night."),
    ]


@pytest.fixture
def graph(posts):
    return RelevanceGraph(posts)


class TestScoring:
    def test_same_category_and_tags(self, graph, posts):
        """Shared category, tags and keywords add up, labelled by the largest term."""
        edge = graph.edge(posts[0], posts[1])
        assert edge.score >= 0.8
        assert edge.relationship == SHARED_TAGS

    def test_unrelated_posts_score_low(self, graph, posts):
        assert graph.score(posts[0], posts[2]) < 0.3

    def test_category_only(self, posts):
        """Category alone is worth 0.3 and wins the label."""
        bare = make_post(4, "Nouns", "Grammar", ["Nouns"])
        graph = RelevanceGraph(posts + [bare])
        edge = graph.edge(posts[0], bare)
        assert edge.score == pytest.approx(0.3)
        assert edge.relationship == SAME_CATEGORY

    def test_score_capped_at_one(self):
        twin_a = make_post(1, "A", "Grammar", ["Verbs"], ["verbs"], body=VERB_BODY)
        twin_b = make_post(2, "B", "Grammar", ["Verbs"], ["verbs"], body=VERB_BODY)
        assert RelevanceGraph([twin_a, twin_b]).score(twin_a, twin_b) == pytest.approx(1.0)

    def test_significant_words(self):
        words = significant_words("The verbs and the verbs and endings", 5)
        assert words == ["verbs", "endings"]


class TestRelatedPosts:
    def test_related_posts(self, graph):
        related = graph.related_posts("post-1")
        assert [e.target_id for e in related] == ["post-2"]

    def test_unknown_post(self, graph):
        assert graph.related_posts("post-404") == []
        assert graph.insert_automatic_links("post-404") == ""

    def test_max_related(self):
        """At most max_related posts are returned, best first."""
        posts = [make_post(i, f"Grammar {i}", "Grammar", ["Verbs"]) for i in range(1, 9)]
        related = RelevanceGraph(posts, max_related=5).related_posts("post-1")
        assert len(related) == 5
        scores = [e.score for e in related]
        assert scores == sorted(scores, reverse=True)

    def test_backlink_opportunities(self, graph):
        assert [e.source_id for e in graph.backlink_opportunities("post-2")] == ["post-1"]

    def test_linking_report(self, graph):
        report = graph.linking_report()
        assert report.total_posts == 3
        assert report.posts_without_relations == 1
        assert report.average_related_posts == pytest.approx(2 / 3)
        assert report.top_linked_posts[-1] == ("post-3", "Fado Nights", 0)


class TestAutomaticLinks:
    def test_link_inserted_after_first_matching_sentence(self, graph):
        """Headings are skipped and one link per target is inserted."""
        body = graph.insert_automatic_links("post-1")
        assert "in every tense [Verb Endings in the Present](/blog/2)." in body
        assert body.count("](/blog/2)") == 1
        assert body.startswith("## Verbs\n\n")

    def test_suggestions(self, graph):
        suggestions = graph.link_suggestions("post-1")
        assert [s.position for s in suggestions] == [1, 3]
        assert suggestions[0].anchor_text == "Verb Endings in the Present"
        assert suggestions[1].anchor_text == "verbs examples"

    def test_rescan_is_stable(self, graph, posts):
        """Running link insertion again on a linked body changes nothing."""
        posts[0].body = graph.insert_automatic_links("post-1")
        assert RelevanceGraph(posts).insert_automatic_links("post-1") == posts[0].body

    def test_sentence_with_existing_link_skipped(self, posts):
        posts[0].body = (
            "Regular verbs follow predictable endings, see [this](/blog/9) for more. "
            "Irregular verbs need more attention than regular ones."
        )
        body = RelevanceGraph(posts).insert_automatic_links("post-1")
        assert "than regular ones [verbs examples](/blog/2)." in body
        assert "see [this](/blog/9) for more." in body

    def test_external_link_with_dotted_url_kept_whole(self, posts):
        """Dots inside a link URL do not split the sentence, so the existing link is left intact."""
        posts[0].body = (
            "Read about regular verbs on [this site](https://example.com/verbs.html) for more practice. "
            "Irregular verbs need more attention than regular ones."
        )
        body = RelevanceGraph(posts).insert_automatic_links("post-1")
        assert "[this site](https://example.com/verbs.html) for more practice." in body
        assert "than regular ones [verbs examples](/blog/2)." in body
        assert body.count("](/blog/2)") == 1

    def test_sentences_keep_links_whole(self, graph):
        sentences = graph._sentences("See [the guide](https://example.com/a.b). Next one!")
        assert sentences == [(0, "See [the guide](https://example.com/a.b)"), (1, "Next one")]

    def test_below_link_threshold_no_links(self, posts):
        graph = RelevanceGraph(posts, min_link_relevance=0.99)
        assert graph.insert_automatic_links("post-1") == VERB_BODY

    def test_blog_path(self, posts):
        graph = RelevanceGraph(posts, blog_path="/pt/blog/")
        assert "](/pt/blog/2)" in graph.insert_automatic_links("post-1")
