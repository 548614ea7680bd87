"""Tests for keyword, seniority and city matching utilities."""


class TestNormalizeText:
    def test_lowercases_strips_accents_and_whitespace(self):
        from jobmatch.matching.matchers import normalize_text

        assert normalize_text("  Zürich   Office ") == "zurich office"
        assert normalize_text("MÜNCHEN") == "munchen"


class TestCareerKeywords:
    def test_known_path_expands_to_keyword_set(self):
        from jobmatch.matching.matchers import expand_career_keywords

        keywords = expand_career_keywords("Finance")

        assert "finance" in keywords
        assert "accounting" in keywords
        assert list(keywords) == sorted(keywords)

    def test_alias_maps_to_canonical_path(self):
        from jobmatch.matching.matchers import expand_career_keywords

        assert "developer" in expand_career_keywords("Software Engineering")
        assert "analytics" in expand_career_keywords("data-science")

    def test_unknown_path_matches_its_own_text(self):
        from jobmatch.matching.matchers import expand_career_keywords

        assert expand_career_keywords("Marine Biology") == ("marine biology",)

    def test_contains_keyword_is_word_bounded(self):
        from jobmatch.matching.matchers import contains_keyword

        assert contains_keyword("Junior Financial Analyst", "financial") is True
        assert contains_keyword("Tax Advisor", "tax") is True
        assert contains_keyword("Taxi Driver", "tax") is False
        assert contains_keyword("Data Engineers wanted", "engineer") is True

    def test_matching_career_paths_uses_title_description_and_categories(
        self, make_candidate
    ):
        from jobmatch.matching.matchers import matching_career_paths

        by_title = make_candidate("a", title="Audit Associate")
        by_description = make_candidate(
            "b", title="Associate", description="Join our treasury team"
        )
        by_category = make_candidate("c", title="Associate", categories=["Marketing"])
        unrelated = make_candidate("d", title="Barista")

        paths = ["Finance", "Marketing"]
        assert matching_career_paths(paths, by_title) == ["Finance"]
        assert matching_career_paths(paths, by_description) == ["Finance"]
        assert matching_career_paths(paths, by_category) == ["Marketing"]
        assert matching_career_paths(paths, unrelated) == []


class TestSeniority:
    def test_senior_titles_are_senior_only(self, make_candidate):
        from jobmatch.matching.matchers import is_senior_only

        assert is_senior_only(make_candidate("a", title="Senior Accountant")) is True
        assert is_senior_only(make_candidate("b", title="Head of Finance")) is True
        assert is_senior_only(make_candidate("c", title="Accountant")) is False

    def test_early_career_markers_override_seniority(self, make_candidate):
        from jobmatch.matching.matchers import is_senior_only

        assert is_senior_only(make_candidate("a", title="Graduate Team Lead")) is False
        assert (
            is_senior_only(make_candidate("b", title="Senior Analyst", is_early_career=True))
            is False
        )


class TestCityMatching:
    def test_exact_match_on_city_field(self, make_candidate):
        from jobmatch.matching.matchers import city_matches

        assert city_matches(make_candidate("a", city="London"), "london") is True
        assert city_matches(make_candidate("b", city="New London"), "London") is False

    def test_substring_match_on_location(self, make_candidate):
        from jobmatch.matching.matchers import city_matches

        candidate = make_candidate("a", city="", location="Berlin, Germany (Hybrid)")

        assert city_matches(candidate, "Berlin") is True
        assert city_matches(candidate, "Munich") is False

    def test_matching_city_returns_first_declared_match(self, make_candidate):
        from jobmatch.matching.matchers import matching_city

        candidate = make_candidate("a", city="Paris", location="Paris or London")

        assert matching_city(candidate, ["London", "Paris"]) == "London"
        assert matching_city(candidate, ["Madrid"]) is None
