from __future__ import annotations

import pytest

from family_graph.errors import DuplicateIdError, InvalidPersonError
from family_graph.models import Person, Sex, ensure_unique_ids


class TestSex:
    @pytest.mark.parametrize("value", ["M", "m", "male", " Male "])
    def test_male(self, value: str) -> None:
        assert Sex.parse(value) is Sex.M

    @pytest.mark.parametrize("value", ["F", "female", "FEMALE"])
    def test_female(self, value: str) -> None:
        assert Sex.parse(value) is Sex.F

    @pytest.mark.parametrize("value", [None, "", "  ", "U"])
    def test_unknown(self, value: str | None) -> None:
        assert Sex.parse(value) is None

    def test_invalid(self) -> None:
        with pytest.raises(ValueError, match="不正な性別値"):
            Sex.parse("X")


class TestValidate:
    def test_valid(self) -> None:
        Person(id=1, name="太郎", parent_ids=[2, 3]).validate()

    @pytest.mark.parametrize("bad_id", [0, -1, True, "1"])
    def test_bad_id(self, bad_id: object) -> None:
        with pytest.raises(InvalidPersonError, match="正の整数"):
            Person(id=bad_id, name="太郎").validate()  # type: ignore[arg-type]

    def test_too_many_parents(self) -> None:
        with pytest.raises(InvalidPersonError, match="親は2人まで"):
            Person(id=1, name="太郎", parent_ids=[2, 3, 4]).validate()

    def test_invalid_person_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            Person(id=1, name="").validate()


class TestRecords:
    def test_to_record_keys(self) -> None:
        record = Person(id=1, name="太郎", sex=Sex.M, spouse_id=2).to_record()
        assert record["sex"] == "male"
        assert record["spouseId"] == 2
        assert record["parentIds"] == []

    def test_from_record_string_ids(self) -> None:
        person = Person.from_record({"id": "4", "name": " 美咲 ", "spouseId": "3", "parentIds": ["1", 2]})
        assert person.id == 4
        assert person.name == "美咲"
        assert person.spouse_id == 3
        assert person.parent_ids == [1, 2]

    def test_ensure_unique_ids(self) -> None:
        with pytest.raises(DuplicateIdError):
            ensure_unique_ids([Person(id=1, name="A"), Person(id=1, name="B")])

    def test_from_record_rejects_non_object_metadata(self) -> None:
        with pytest.raises(ValueError, match="metadata"):
            Person.from_record({"id": 1, "name": "太郎", "metadata": ["農家"]})
