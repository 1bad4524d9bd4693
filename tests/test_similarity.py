import itertools

import pytest

from site_affinity.similarity import (
    compute_similarity,
    edge_lookup,
    edges_to_frame,
    material_set,
    score,
    shared_materials,
    similarity_matrix,
    top_similar,
)


class TestScore:
    def test_reference_example(self, site_factory):
        a = site_factory("a", ["Terracotta", "Iron", "Gold"])
        b = site_factory("b", ["Terracotta", "Glass"])
        assert score(a, b) == pytest.approx(0.25)
        assert shared_materials(a, b) == ["terracotta"]

    def test_both_empty_is_zero(self, site_factory):
        a = site_factory("a")
        b = site_factory("b")
        assert score(a, b) == 0.0

    def test_one_empty_is_zero(self, site_factory):
        assert score(site_factory("a", ["Iron"]), site_factory("b")) == 0.0

    def test_case_and_duplicates_ignored(self, site_factory):
        a = site_factory("a", ["IRON", "iron ", "Gold"])
        b = site_factory("b", ["Iron", "gold"])
        assert material_set(a) == {"iron", "gold"}
        assert score(a, b) == 1.0

    def test_blank_materials_ignored(self, site_factory):
        a = site_factory("a", ["", "  ", "Iron"])
        assert material_set(a) == {"iron"}

    def test_symmetric_and_bounded(self, sample_sites):
        for a, b in itertools.product(sample_sites, repeat=2):
            s = score(a, b)
            assert s == score(b, a)
            assert 0.0 <= s <= 1.0


class TestComputeSimilarity:
    def test_every_unordered_pair_once(self, sample_sites):
        edges = compute_similarity(sample_sites)
        n = len(sample_sites)
        assert len(edges) == n * (n - 1) // 2
        keys = {e.key for e in edges}
        assert len(keys) == len(edges)
        assert all(len(k) == 2 for k in keys)

    def test_matches_pairwise_score(self, sample_sites):
        edges = edge_lookup(compute_similarity(sample_sites))
        for a, b in itertools.combinations(sample_sites, 2):
            e = edges[frozenset((a.id, b.id))]
            assert e.score == pytest.approx(score(a, b))
            assert e.shared == shared_materials(a, b)

    def test_known_sample_scores(self, sample_sites):
        edges = edge_lookup(compute_similarity(sample_sites))
        # terracotta/iron/gold vs terracotta/glass
        assert edges[frozenset(("adichanallur", "keezhadi"))].score == pytest.approx(0.25)
        # terracotta only on both sides
        assert edges[frozenset(("keezhadi", "arikamedu"))].score == pytest.approx(0.5)
        # no shared materials
        assert edges[frozenset(("kodumanal", "arikamedu"))].score == 0.0

    def test_small_sets(self, site_factory):
        assert compute_similarity([]) == []
        assert compute_similarity([site_factory("a", ["Iron"])]) == []

    def test_all_sites_without_artifacts(self, site_factory):
        edges = compute_similarity([site_factory("a"), site_factory("b"), site_factory("c")])
        assert [e.score for e in edges] == [0.0, 0.0, 0.0]

    def test_recomputed_after_edit(self, site_factory):
        a = site_factory("a", ["Iron"])
        b = site_factory("b", ["Gold"])
        assert compute_similarity([a, b])[0].score == 0.0
        b.artifacts[0].material = "iron"
        assert compute_similarity([a, b])[0].score == 1.0


class TestTabular:
    def test_matrix(self, sample_sites):
        edges = compute_similarity(sample_sites)
        m = similarity_matrix(sample_sites, edges)
        ids = [s.id for s in sample_sites]
        assert list(m.index) == ids and list(m.columns) == ids
        for sid in ids:
            assert m.loc[sid, sid] == 1.0
        assert (m.values == m.values.T).all()
        assert m.loc["adichanallur", "keezhadi"] == pytest.approx(0.25)

    def test_matrix_missing_pairs_are_zero(self, site_factory):
        a, b = site_factory("a", ["Iron"]), site_factory("b", ["Iron"])
        m = similarity_matrix([a, b], [])
        assert m.loc["a", "b"] == 0.0

    def test_top_similar(self, sample_sites):
        keezhadi = next(s for s in sample_sites if s.id == "keezhadi")
        top = top_similar(keezhadi, sample_sites, n=2)
        assert len(top) == 2
        assert all(s.id != "keezhadi" for s, _ in top)
        assert top[0][1] >= top[1][1]
        assert top[0][0].id == "arikamedu"

    def test_top_similar_from_edges(self, sample_sites):
        lookup = edge_lookup(compute_similarity(sample_sites))
        for site in sample_sites:
            from_edges = top_similar(site, sample_sites, n=4, lookup=lookup)
            recomputed = top_similar(site, sample_sites, n=4)
            assert [(s.id, sc) for s, sc in from_edges] == [(s.id, sc) for s, sc in recomputed]
        # a pair absent from the lookup scores 0.0
        first = top_similar(sample_sites[0], sample_sites, n=4, lookup={})
        assert all(sc == 0.0 for _, sc in first)

    def test_edges_frame(self, sample_sites):
        df = edges_to_frame(compute_similarity(sample_sites), threshold=0.2)
        assert {"source_id", "target_id", "score", "shared_materials", "in_graph"} <= set(df.columns)
        assert (df["in_graph"] == (df["score"] > 0.2)).all()
