from __future__ import annotations

from pathlib import Path

import pytest

from family_graph.config import ALL_TREES, TreeDefinition
from family_graph.csv_codec import decode_csv
from family_graph.errors import NotFoundError, UnknownTreeError
from family_graph.models import Person
from family_graph.store import PersonStore
from family_graph.trees import descendant_scope, person_scope, tree_scope

SAMPLE_CSV = Path(__file__).parent.parent / "examples" / "sample.csv"

TREES = {
    "yamada": TreeDefinition("yamada", "山田家", [1]),
    "sato": TreeDefinition("sato", "佐藤家", [13]),
}


@pytest.fixture
def store() -> PersonStore:
    return PersonStore(decode_csv(SAMPLE_CSV.read_bytes()))


class TestTreeScope:
    def test_all_is_whole_store(self, store: PersonStore) -> None:
        assert tree_scope(store, TREES, ALL_TREES) is None

    def test_descendants_and_spouses(self, store: PersonStore) -> None:
        scope = tree_scope(store, TREES, "yamada")
        assert scope == set(range(1, 13))

    def test_married_out_child_included(self, store: PersonStore) -> None:
        """嫁いだ娘とその配偶者は実家のツリーにも含まれる。"""
        scope = tree_scope(store, TREES, "sato")
        assert scope == {13, 14, 15, 4, 3, 7, 8}

    def test_unknown_tree(self, store: PersonStore) -> None:
        with pytest.raises(UnknownTreeError, match="ツリーが見つかりません"):
            tree_scope(store, TREES, "tanaka")


class TestDescendantScope:
    def test_missing_roots_ignored(self, store: PersonStore) -> None:
        assert descendant_scope(store, [999]) == set()

    def test_one_sided_spouse_claim(self) -> None:
        store = PersonStore(
            [
                Person(id=1, name="A"),
                Person(id=2, name="B", spouse_id=1),
            ]
        )
        assert descendant_scope(store, [1]) == {1, 2}

    def test_self_parent_does_not_loop(self) -> None:
        store = PersonStore([Person(id=1, name="A", parent_ids=[1])])
        assert descendant_scope(store, [1]) == {1}


class TestPersonScope:
    def test_subtree(self, store: PersonStore) -> None:
        assert person_scope(store, 5) == {5, 6, 9, 10, 11, 12}

    def test_unknown_person(self, store: PersonStore) -> None:
        with pytest.raises(NotFoundError):
            person_scope(store, 42)
