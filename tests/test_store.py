from __future__ import annotations

import pytest

from family_graph.errors import DuplicateIdError, InvalidPersonError, NotFoundError
from family_graph.models import Person, Sex
from family_graph.store import PersonStore


def _make_person(
    id: int,
    name: str = "テスト",
    sex: Sex | None = Sex.M,
    parent_ids: list[int] | None = None,
    spouse_id: int | None = None,
) -> Person:
    return Person(
        id=id,
        name=name,
        sex=sex,
        parent_ids=parent_ids or [],
        spouse_id=spouse_id,
    )


class TestAdd:
    def test_add_and_get(self) -> None:
        store = PersonStore()
        store.add(_make_person(1, "太郎"))
        assert store.get(1).name == "太郎"
        assert len(store) == 1
        assert 1 in store

    def test_duplicate_id(self) -> None:
        store = PersonStore([_make_person(1, "太郎")])
        with pytest.raises(DuplicateIdError, match="IDが重複"):
            store.add(_make_person(1, "花子"))
        # 失敗した追加はストアを変更しない
        assert store.get(1).name == "太郎"
        assert store.revision == 0

    def test_duplicate_in_constructor(self) -> None:
        with pytest.raises(DuplicateIdError):
            PersonStore([_make_person(1), _make_person(1)])

    def test_empty_name_rejected(self) -> None:
        store = PersonStore()
        with pytest.raises(InvalidPersonError, match="名前が空"):
            store.add(_make_person(1, "  "))
        assert len(store) == 0

    def test_non_positive_id_rejected(self) -> None:
        store = PersonStore()
        with pytest.raises(InvalidPersonError):
            store.add(_make_person(0))


class TestUpdate:
    def test_update_fields(self) -> None:
        store = PersonStore([_make_person(1, "太郎")])
        updated = store.update(1, name="太郎兵衛", spouse_id=2)
        assert updated.name == "太郎兵衛"
        assert store.get(1).spouse_id == 2

    def test_update_missing(self) -> None:
        store = PersonStore()
        with pytest.raises(NotFoundError, match="見つかりません"):
            store.update(1, name="x")

    def test_invalid_update_leaves_record(self) -> None:
        store = PersonStore([_make_person(1, "太郎")])
        with pytest.raises(InvalidPersonError):
            store.update(1, name="")
        assert store.get(1).name == "太郎"
        assert store.revision == 0

    def test_unknown_field(self) -> None:
        store = PersonStore([_make_person(1, "太郎")])
        with pytest.raises(InvalidPersonError):
            store.update(1, nickname="タロ")

    def test_id_change_rejected(self) -> None:
        store = PersonStore([_make_person(1)])
        with pytest.raises(InvalidPersonError, match="IDは変更できません"):
            store.update(1, id=2)


class TestRemove:
    def test_remove(self) -> None:
        store = PersonStore([_make_person(1), _make_person(2)])
        removed = store.remove(1)
        assert removed.id == 1
        assert 1 not in store
        assert store.ids() == [2]

    def test_remove_missing(self) -> None:
        store = PersonStore()
        with pytest.raises(NotFoundError):
            store.remove(99)

    def test_remove_keeps_dangling_references(self) -> None:
        """削除された親を参照する子のリンクは自動修復されない。"""
        store = PersonStore([_make_person(1), _make_person(2, parent_ids=[1])])
        store.remove(1)
        assert store.get(2).parent_ids == [1]


class TestQueries:
    def test_all_keeps_insertion_order(self) -> None:
        store = PersonStore([_make_person(3), _make_person(1), _make_person(2)])
        assert [p.id for p in store.all()] == [3, 1, 2]

    def test_find(self) -> None:
        store = PersonStore(
            [_make_person(1, sex=Sex.M), _make_person(2, sex=Sex.F), _make_person(3, sex=Sex.F)]
        )
        assert [p.id for p in store.find(lambda p: p.sex is Sex.F)] == [2, 3]

    def test_search_is_case_insensitive(self) -> None:
        store = PersonStore([_make_person(1, "A S Mahadevan"), _make_person(2, "Radha")])
        assert [p.id for p in store.search("mahadevan")] == [1]
        assert len(store.search("")) == 2

    def test_select_scope(self) -> None:
        store = PersonStore([_make_person(1), _make_person(2), _make_person(3)])
        assert [p.id for p in store.select({3, 1, 99})] == [1, 3]
        assert len(store.select(None)) == 3

    def test_get_missing(self) -> None:
        store = PersonStore()
        with pytest.raises(NotFoundError):
            store.get(1)


class TestRevision:
    def test_every_mutation_increments_revision(self) -> None:
        store = PersonStore()
        store.add(_make_person(1))
        store.update(1, name="x")
        store.remove(1)
        assert store.revision == 3

    def test_replace_all_failure_keeps_store(self) -> None:
        store = PersonStore([_make_person(1, "太郎")])
        with pytest.raises(DuplicateIdError):
            store.replace_all([_make_person(2), _make_person(2)])
        assert store.ids() == [1]
        assert store.revision == 0


class TestRecords:
    def test_round_trip(self) -> None:
        person = Person(
            id=3,
            name="一郎",
            sex=Sex.M,
            parent_ids=[1, 2],
            spouse_id=4,
            image_id="img_003",
            birth_date="1965-01-10",
            notes="長男",
            metadata={"occupation": "エンジニア"},
        )
        store = PersonStore([person])
        restored = PersonStore.from_records(store.to_records())
        assert restored.get(3) == person

    def test_single_parent_id_key(self) -> None:
        person = Person.from_record({"id": 2, "name": "B", "sex": "female", "parentId": 1})
        assert person.parent_ids == [1]
        assert person.sex is Sex.F

    def test_father_mother_keys(self) -> None:
        person = Person.from_record({"id": 3, "name": "C", "fatherId": 1, "motherId": "2"})
        assert person.parent_ids == [1, 2]
        assert person.sex is None


class TestIsolation:
    def test_get_returns_copy(self) -> None:
        """get() の戻り値を書き換えても revision を経ずにストアは変わらない。"""
        store = PersonStore([_make_person(1, "太郎", parent_ids=[2])])
        person = store.get(1)
        person.name = "次郎"
        person.parent_ids.append(3)
        person.metadata["note"] = "x"
        assert store.get(1).name == "太郎"
        assert store.get(1).parent_ids == [2]
        assert store.get(1).metadata == {}
        assert store.revision == 0

    def test_all_returns_copies(self) -> None:
        store = PersonStore([_make_person(1, "太郎")])
        store.all()[0].name = "次郎"
        assert store.get(1).name == "太郎"

    def test_added_person_detached_from_caller(self) -> None:
        person = _make_person(1, "太郎")
        store = PersonStore()
        store.add(person)
        person.spouse_id = 5
        assert store.get(1).spouse_id is None
