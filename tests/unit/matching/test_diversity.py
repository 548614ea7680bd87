"""Tests for the diversity rebalancer."""

from __future__ import annotations

import math
from collections import Counter

import pytest


@pytest.fixture
def scored(make_candidate):
    """Build a ScoredCandidate with the given score, city and source."""
    from jobmatch.matching.models import ScoredCandidate

    def _make(
        id: str, score: int, city: str = "London", source: str = "indeed", origin: str = "rules"
    ):
        return ScoredCandidate(
            candidate=make_candidate(id, city=city, source=source),
            match_score=score,
            confidence_score=50,
            reason="Scored",
            origin=origin,
        )

    return _make


class TestAllocate:
    def test_remainder_goes_to_first_cities(self):
        from jobmatch.matching.diversity import allocate

        allocations = allocate(5, ["London", "Berlin"])

        assert [(a.city, a.target_count) for a in allocations] == [
            ("London", 3),
            ("Berlin", 2),
        ]

    def test_even_split(self):
        from jobmatch.matching.diversity import allocate

        assert [a.target_count for a in allocate(9, ["A", "B", "C"])] == [3, 3, 3]
        assert [a.target_count for a in allocate(10, ["A", "B", "C"])] == [4, 3, 3]


class TestCityRebalancing:
    def test_single_city_returns_top_n_unchanged(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored(f"c{i}", 90 - i, source="indeed") for i in range(8)]

        outcome = DiversityRebalancer().rebalance(ranked, 5, ["London"])

        assert list(outcome.matches) == ranked[:5]
        assert outcome.substitutions == 0
        assert outcome.allocations == ()

    def test_small_n_returns_top_n_unchanged(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored("a", 90), scored("b", 80, city="Berlin"), scored("c", 70)]

        outcome = DiversityRebalancer().rebalance(ranked, 2, ["London", "Berlin"])

        assert list(outcome.matches) == ranked[:2]

    def test_allocates_across_cities(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        london = [scored(f"l{i}", 90 - i, source=f"s{i}") for i in range(6)]
        berlin = [scored(f"b{i}", 60 - i, city="Berlin", source=f"t{i}") for i in range(6)]

        outcome = DiversityRebalancer().rebalance(london + berlin, 5, ["London", "Berlin"])

        ids = [m.candidate_id for m in outcome.matches]
        assert ids == ["l0", "l1", "l2", "b0", "b1"]
        assert [(a.city, a.target_count) for a in outcome.allocations] == [
            ("London", 3),
            ("Berlin", 2),
        ]

    def test_shortfall_is_filled_from_ranked_list(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored(f"l{i}", 90 - i, source=f"s{i}") for i in range(6)]
        ranked.append(scored("b0", 10, city="Berlin", source="x"))

        outcome = DiversityRebalancer().rebalance(ranked, 5, ["London", "Berlin"])

        ids = [m.candidate_id for m in outcome.matches]
        assert len(ids) == 5
        assert "b0" in ids
        assert ids[:4] == ["l0", "l1", "l2", "l3"]

    def test_falls_back_to_top_n_when_too_few_city_matches(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [
            scored(f"r{i}", 90 - i, city="Rome", source=f"s{i}") for i in range(6)
        ] + [scored("l0", 10, source="x")]

        outcome = DiversityRebalancer().rebalance(ranked, 5, ["London", "Berlin"])

        assert [m.candidate_id for m in outcome.matches] == [f"r{i}" for i in range(5)]

    def test_matches_location_substring(self, scored, make_candidate):
        from dataclasses import replace

        from jobmatch.matching.diversity import DiversityRebalancer

        london = [scored(f"l{i}", 90 - i, source=f"s{i}") for i in range(5)]
        remote_berlin = replace(
            scored("b0", 20, source="x"),
            candidate=make_candidate("b0", city="", location="Berlin (Hybrid)", source="x"),
        )

        outcome = DiversityRebalancer().rebalance(
            london + [remote_berlin], 4, ["London", "Berlin"]
        )

        assert "b0" in [m.candidate_id for m in outcome.matches]

    def test_result_is_sorted_by_score(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored("l0", 95, source="a"), scored("l1", 40, source="b")]
        ranked += [scored(f"b{i}", 80 - i, city="Berlin", source=f"c{i}") for i in range(3)]

        outcome = DiversityRebalancer().rebalance(ranked, 4, ["London", "Berlin"])

        scores = [m.match_score for m in outcome.matches]
        assert scores == sorted(scores, reverse=True)

    def test_ai_scored_entries_outrank_higher_rule_scores(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ai_picks = [
            scored(f"ai-l{i}", 75 - 2 * i, source=f"a{i}", origin="ai") for i in range(3)
        ] + [
            scored(f"ai-b{i}", 74 - 2 * i, city="Berlin", source=f"b{i}", origin="ai")
            for i in range(3)
        ]
        ai_picks.sort(key=lambda s: -s.match_score)
        rule_rest = [scored(f"r-l{i}", 90, source=f"c{i}") for i in range(3)] + [
            scored(f"r-b{i}", 90, city="Berlin", source=f"d{i}") for i in range(3)
        ]

        outcome = DiversityRebalancer().rebalance(
            ai_picks + rule_rest, 5, ["London", "Berlin"]
        )

        assert [m.candidate_id for m in outcome.matches] == [
            "ai-l0",
            "ai-b0",
            "ai-l1",
            "ai-b1",
            "ai-l2",
        ]
        assert all(m.origin == "ai" for m in outcome.matches)

    def test_city_shortfall_of_ai_picks_is_filled_with_rules_after_them(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ai_picks = [
            scored(f"ai-l{i}", 70 - i, source=f"a{i}", origin="ai") for i in range(4)
        ]
        rule_rest = [scored(f"r-b{i}", 90 - i, city="Berlin", source=f"d{i}") for i in range(3)]

        outcome = DiversityRebalancer().rebalance(
            ai_picks + rule_rest, 5, ["London", "Berlin"]
        )

        assert [m.candidate_id for m in outcome.matches] == [
            "ai-l0",
            "ai-l1",
            "ai-l2",
            "r-b0",
            "r-b1",
        ]

    def test_diversity_bound_for_three_cities(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = []
        for city_index, city in enumerate(["A", "B", "C"]):
            for i in range(6):
                ranked.append(
                    scored(f"{city}{i}", 95 - city_index * 20 - i, city=city, source=f"{city}-{i}")
                )
        ranked.sort(key=lambda s: -s.match_score)

        outcome = DiversityRebalancer().rebalance(ranked, 9, ["A", "B", "C"])

        assert len(outcome.matches) == 9
        cities = Counter(m.candidate.city for m in outcome.matches)
        assert max(cities.values()) <= math.ceil(9 / 3) + 1
        sources = Counter(m.candidate.source for m in outcome.matches)
        assert max(sources.values()) <= math.ceil(9 / 2)

    def test_ignores_duplicate_ids_in_input(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored("a", 90), scored("a", 90), scored("b", 80, source="x")]

        outcome = DiversityRebalancer().rebalance(ranked, 5, ["London"])

        assert [m.candidate_id for m in outcome.matches] == ["a", "b"]

    def test_never_raises_on_empty_input(self):
        from jobmatch.matching.diversity import DiversityRebalancer

        assert DiversityRebalancer().rebalance([], 5, ["A", "B"]).matches == ()
        assert DiversityRebalancer().rebalance([], 0, []).matches == ()


class TestSourceDiversity:
    def test_dominant_source_is_capped_with_penalty(self, scored):
        from jobmatch.matching.diversity import SUBSTITUTION_NOTE, DiversityRebalancer

        london = [scored(f"l{i}", 90 - i, source="indeed") for i in range(6)]
        berlin = [scored(f"b{i}", 80 - i, city="Berlin", source="indeed") for i in range(4)]
        alternatives = [
            scored("alt-l", 50, source="reed"),
            scored("alt-b", 45, city="Berlin", source="stepstone"),
        ]

        outcome = DiversityRebalancer(penalty=5).rebalance(
            london + berlin + alternatives, 5, ["London", "Berlin"]
        )

        sources = Counter(m.candidate.source for m in outcome.matches)
        assert sources["indeed"] == 3
        assert outcome.substitutions == 2
        by_id = {m.candidate_id: m for m in outcome.matches}
        assert by_id["alt-l"].match_score == 45
        assert by_id["alt-b"].match_score == 40
        assert SUBSTITUTION_NOTE in by_id["alt-l"].reason

    def test_substitution_prefers_same_city(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored(f"l{i}", 90 - i, source="indeed") for i in range(3)]
        ranked += [scored(f"b{i}", 80 - i, city="Berlin", source="indeed") for i in range(2)]
        ranked += [
            scored("alt-l", 60, source="reed"),
            scored("alt-b", 55, city="Berlin", source="reed"),
        ]

        outcome = DiversityRebalancer().rebalance(ranked, 5, ["London", "Berlin"])

        ids = {m.candidate_id for m in outcome.matches}
        # The lowest indeed member (b1, Berlin) is replaced by the Berlin alternative
        assert "alt-b" in ids
        assert "b1" not in ids

    def test_no_alternatives_is_accepted(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored(f"l{i}", 90 - i, source="indeed") for i in range(4)]
        ranked += [scored(f"b{i}", 80 - i, city="Berlin", source="indeed") for i in range(4)]

        outcome = DiversityRebalancer().rebalance(ranked, 5, ["London", "Berlin"])

        assert len(outcome.matches) == 5
        assert outcome.substitutions == 0

    def test_penalty_floors_at_zero(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored(f"l{i}", 90 - i, source="indeed") for i in range(3)]
        ranked += [scored(f"b{i}", 80 - i, city="Berlin", source="indeed") for i in range(2)]
        ranked += [scored("alt", 3, source="reed")]

        outcome = DiversityRebalancer(penalty=10).rebalance(ranked, 5, ["London", "Berlin"])

        by_id = {m.candidate_id: m for m in outcome.matches}
        assert by_id["alt"].match_score == 0

    def test_single_city_results_are_source_capped(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored(f"i{i}", 90 - i, source="indeed") for i in range(6)]
        ranked += [scored(f"r{i}", 60 - i, source="reed") for i in range(4)]

        outcome = DiversityRebalancer(penalty=5).rebalance(ranked, 5, ["London"])

        assert Counter(m.candidate.source for m in outcome.matches) == {"indeed": 3, "reed": 2}
        assert [m.candidate_id for m in outcome.matches] == ["i0", "i1", "i2", "r0", "r1"]
        assert [m.match_score for m in outcome.matches][3:] == [55, 54]
        assert outcome.substitutions == 2
        assert outcome.allocations == ()

    def test_small_n_results_are_source_capped(self, scored):
        from jobmatch.matching.diversity import DiversityRebalancer

        ranked = [scored("a", 90), scored("b", 85), scored("c", 40, source="reed")]

        outcome = DiversityRebalancer(penalty=5).rebalance(ranked, 2, ["London", "Berlin"])

        assert [m.candidate_id for m in outcome.matches] == ["a", "c"]
        assert outcome.substitutions == 1
