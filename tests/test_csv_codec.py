from __future__ import annotations

import csv
import io
import textwrap
from pathlib import Path

import pytest

from family_graph.csv_codec import decode_csv, decode_sheets_csv, encode_csv, encode_sheets_csv
from family_graph.errors import CsvParseError, DuplicateIdError, MissingRequiredColumnError
from family_graph.models import Person, Sex
from family_graph.store import PersonStore

SAMPLE_CSV = Path(__file__).parent.parent / "examples" / "sample.csv"


def _csv(text: str) -> bytes:
    return textwrap.dedent(text).encode("utf-8")


@pytest.fixture()
def sample_bytes() -> bytes:
    """最小限のサンプルCSVを作成する。"""
    return _csv("""\
        id,name,birth_date,sex,parent_ids,spouse_id
        1,太郎,1940-03-15,M,,2
        2,花子,1942-07-22,F,,1
        3,一郎,1965-01-10,M,"1,2",4
        4,美咲,1967-05-30,F,,3
    """)


class TestDecodeCSV:
    def test_parse_basic(self, sample_bytes: bytes) -> None:
        persons = decode_csv(sample_bytes)
        assert len(persons) == 4

    def test_person_fields(self, sample_bytes: bytes) -> None:
        taro = decode_csv(sample_bytes)[0]
        assert taro.name == "太郎"
        assert taro.birth_date == "1940-03-15"
        assert taro.sex == Sex.M
        assert taro.parent_ids == []
        assert taro.spouse_id == 2

    def test_parent_ids_parsed(self, sample_bytes: bytes) -> None:
        ichiro = decode_csv(sample_bytes)[2]
        assert ichiro.parent_ids == [1, 2]

    def test_empty_spouse_id(self) -> None:
        """spouse_id が空の場合は None になる。"""
        persons = decode_csv(_csv("""\
            id,name,birth_date,sex,parent_ids,spouse_id
            1,太郎,1940-03-15,M,,
        """))
        assert persons[0].spouse_id is None

    def test_only_required_columns(self) -> None:
        persons = decode_csv(_csv("""\
            id,name
            1,太郎
        """))
        assert persons[0].sex is None
        assert persons[0].parent_ids == []

    def test_dangling_parent_allowed(self) -> None:
        """存在しない親IDは読み込み時にはエラーにしない。"""
        persons = decode_csv(_csv("""\
            id,name,parent_ids
            2,一郎,"1,99"
        """))
        assert persons[0].parent_ids == [1, 99]

    def test_blank_rows_skipped(self) -> None:
        persons = decode_csv(_csv("""\
            id,name,sex
            1,太郎,M
            ,,
            2,花子,F
        """))
        assert [p.id for p in persons] == [1, 2]

    def test_bom_is_ignored(self) -> None:
        persons = decode_csv("\ufeffid,name\n1,太郎\n".encode("utf-8"))
        assert persons[0].name == "太郎"


class TestMetadata:
    def test_extra_columns_stored_as_metadata(self) -> None:
        """未知のカラムはメタデータとして保持される。"""
        persons = decode_csv(_csv("""\
            id,name,birth_date,sex,parent_ids,spouse_id,occupation,notes
            1,太郎,1940-03-15,M,,,エンジニア,備考テスト
        """))
        taro = persons[0]
        assert taro.metadata["occupation"] == "エンジニア"
        assert taro.notes == "備考テスト"

    def test_empty_extra_columns_not_stored(self) -> None:
        """空の未知カラムはメタデータに含まれない。"""
        persons = decode_csv(_csv("""\
            id,name,birth_date,sex,parent_ids,spouse_id,occupation
            1,太郎,1940-03-15,M,,,
        """))
        assert "occupation" not in persons[0].metadata

    def test_metadata_written_after_fixed_columns(self) -> None:
        store = PersonStore(
            [Person(id=1, name="太郎", metadata={"occupation": "農家", "blood_type": "A"})]
        )
        rows = list(csv.reader(io.StringIO(encode_csv(store).decode("utf-8"))))
        assert rows[0][-2:] == ["blood_type", "occupation"]
        assert rows[1][-2:] == ["A", "農家"]


class TestValidation:
    def test_missing_required_column(self) -> None:
        with pytest.raises(MissingRequiredColumnError, match="必須カラムが不足"):
            decode_csv(_csv("""\
                id,birth_date,sex
                1,1940-03-15,M
            """))

    def test_duplicate_id(self) -> None:
        with pytest.raises(DuplicateIdError, match="IDが重複"):
            decode_csv(_csv("""\
                id,name
                1,太郎
                1,花子
            """))

    def test_invalid_sex_value(self) -> None:
        with pytest.raises(CsvParseError, match="不正な性別値"):
            decode_csv(_csv("""\
                id,name,sex
                1,太郎,X
            """))

    def test_invalid_id(self) -> None:
        with pytest.raises(CsvParseError, match="2行目"):
            decode_csv(_csv("""\
                id,name
                abc,太郎
            """))

    def test_empty_name(self) -> None:
        with pytest.raises(CsvParseError, match="名前が空"):
            decode_csv(_csv("""\
                id,name,sex
                1,,M
            """))

    def test_empty_csv(self) -> None:
        with pytest.raises(CsvParseError, match="CSVファイルが空です"):
            decode_csv(b"")

    def test_not_utf8(self) -> None:
        with pytest.raises(CsvParseError, match="UTF-8"):
            decode_csv("id,name\n1,太郎\n".encode("shift_jis"))


class TestEncodeCSV:
    def test_sample_survives_round_trip(self) -> None:
        persons = decode_csv(SAMPLE_CSV.read_bytes())
        assert decode_csv(encode_csv(PersonStore(persons))) == persons

    def test_scope(self) -> None:
        store = PersonStore(decode_csv(SAMPLE_CSV.read_bytes()))
        persons = decode_csv(encode_csv(store, scope={13, 14, 15}))
        assert [p.id for p in persons] == [13, 14, 15]


class TestSheetsCSV:
    def test_decode_father_mother(self) -> None:
        persons = decode_sheets_csv(_csv("""\
            ID,Name,Gender,Father ID,Mother ID,Spouse ID,Occupation
            1,Taro,Male,,,2,
            2,Hanako,Female,,,1,
            3,Ichiro,male,1,2,,Farmer
        """))
        ichiro = persons[2]
        assert ichiro.parent_ids == [1, 2]
        assert ichiro.sex is Sex.M
        assert ichiro.metadata == {"Occupation": "Farmer"}
        assert persons[0].spouse_id == 2

    def test_headers_case_insensitive(self) -> None:
        persons = decode_sheets_csv(_csv("""\
            id,name,gender,mother id
            1,Hanako,F,
            2,Jiro,M,1
        """))
        assert persons[1].parent_ids == [1]

    def test_missing_name_column(self) -> None:
        with pytest.raises(MissingRequiredColumnError):
            decode_sheets_csv(_csv("""\
                ID,Gender
                1,Male
            """))

    def test_encode_splits_parents_by_sex(self) -> None:
        store = PersonStore(
            [
                Person(id=1, name="Taro", sex=Sex.M),
                Person(id=2, name="Hanako", sex=Sex.F),
                Person(id=3, name="Ichiro", sex=Sex.M, parent_ids=[2, 1]),
            ]
        )
        rows = list(csv.reader(io.StringIO(encode_sheets_csv(store).decode("utf-8"))))
        assert rows[0][:5] == ["ID", "Name", "Gender", "Father ID", "Mother ID"]
        assert rows[3][:5] == ["3", "Ichiro", "Male", "1", "2"]

    def test_sheets_round_trip_keeps_parents(self) -> None:
        store = PersonStore(decode_csv(SAMPLE_CSV.read_bytes()))
        persons = decode_sheets_csv(encode_sheets_csv(store))
        by_id = {p.id: p for p in persons}
        assert by_id[7].parent_ids == [3, 4]
        assert by_id[4].parent_ids == [13, 14]
        assert by_id[1].image_id == "img_001"
