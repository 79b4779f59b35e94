"""Tests for rule scoring."""

import pytest

from modelrouter.routing import RoutingContext, RuleScorer
from modelrouter.routing.scorer import matches_path


@pytest.fixture
def scorer():
    return RuleScorer()


class TestRuleScorer:
    """Weights per satisfied predicate."""

    def test_any_keyword(self, scorer, make_rule):
        rule = make_rule("r", ["openai:gpt-4o"], any_keyword=["test", "pytest"])
        assert scorer.score(rule, RoutingContext(prompt="Write a unit TEST")) == 2
        assert scorer.score(rule, RoutingContext(prompt="hello")) == 0

    def test_all_keywords(self, scorer, make_rule):
        rule = make_rule("r", ["openai:gpt-4o"], all_keywords=["fix", "bug"])
        assert scorer.score(rule, RoutingContext(prompt="fix the bug")) == 2
        assert scorer.score(rule, RoutingContext(prompt="fix the typo")) == 0

    def test_language_case_insensitive(self, scorer, make_rule):
        rule = make_rule("r", ["openai:gpt-4o"], file_lang_in=["Python"])
        assert scorer.score(rule, RoutingContext(prompt="", lang="python")) == 1
        assert scorer.score(rule, RoutingContext(prompt="")) == 0

    def test_path_glob(self, scorer, make_rule):
        rule = make_rule("r", ["openai:gpt-4o"], file_path_matches=["**/tests/**"])
        ctx = RoutingContext(prompt="", file_path="src\\pkg\\tests\\test_a.py")
        assert scorer.score(rule, ctx) == 1

    def test_context_size_bounds_inclusive(self, scorer, make_rule):
        rule = make_rule("r", ["openai:gpt-4o"], min_context_kb=100, max_context_kb=200)
        assert scorer.score(rule, RoutingContext(prompt="", file_size_kb=100)) == 1
        assert scorer.score(rule, RoutingContext(prompt="", file_size_kb=200)) == 1
        assert scorer.score(rule, RoutingContext(prompt="", file_size_kb=201)) == 0
        assert scorer.score(rule, RoutingContext(prompt="")) == 0

    def test_privacy(self, scorer, make_rule):
        rule = make_rule("r", ["ollama:llama3.1:8b"], privacy_strict=True)
        assert scorer.score(rule, RoutingContext(prompt="", privacy_strict=True)) == 3
        assert scorer.score(rule, RoutingContext(prompt="")) == 0

    def test_predicates_add_up(self, scorer, make_rule):
        rule = make_rule(
            "r", ["openai:gpt-4o"],
            any_keyword=["refactor"], file_lang_in=["python"], mode=["quality"])
        ctx = RoutingContext(prompt="refactor this", lang="python", mode="quality")
        hits = scorer.explain(rule, ctx)
        assert hits == {"any_keyword": 2, "file_lang": 1, "mode": 1}
        assert scorer.score(rule, ctx) == 4
        assert scorer.describe(hits) == "any_keyword+2, file_lang+1, mode+1"

    def test_empty_condition_scores_zero(self, scorer, make_rule):
        rule = make_rule("r", ["openai:gpt-4o"])
        assert scorer.score(rule, RoutingContext(prompt="anything")) == 0
        assert scorer.describe({}) == "no predicates matched"

    def test_custom_weights(self, make_rule):
        scorer = RuleScorer(weights={"mode": 5})
        rule = make_rule("r", ["openai:gpt-4o"], mode=["speed"])
        assert scorer.score(rule, RoutingContext(prompt="", mode="speed")) == 5


class TestMatchesPath:
    """Glob matching on normalized paths."""

    def test_root_level_double_star(self):
        assert matches_path(".env", "**/.env*")
        assert matches_path("config/.env.local", "**/.env*")

    def test_case_insensitive(self):
        assert matches_path("Secrets/KEY.pem", "**/secrets/**")

    def test_no_match(self):
        assert not matches_path("src/main.py", "**/secrets/**")

    def test_single_star_stays_in_directory(self):
        assert matches_path("src/main.py", "src/*.py")
        assert not matches_path("src/a/b.py", "src/*.py")
        assert matches_path("src/a/b.py", "src/**/*.py")

    def test_question_mark_is_one_char(self):
        assert matches_path("log1.txt", "log?.txt")
        assert not matches_path("log/.txt", "log?.txt")

    def test_regex_characters_are_literal(self):
        assert matches_path("notes+draft.md", "notes+draft.md")
        assert not matches_path("notesXmd", "notes.md")
