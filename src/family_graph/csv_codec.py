"""CSV 形式のインポート・エクスポート。

標準形式のほかに、Google スプレッドシート向けの見出し（"Father ID" など）を
使う形式も同じ Person に対応付ける。
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable

from family_graph.errors import CsvParseError, MissingRequiredColumnError
from family_graph.models import Person, Sex, ensure_unique_ids
from family_graph.store import PersonStore

REQUIRED_COLUMNS = {"id", "name"}
COLUMNS = (
    "id",
    "name",
    "sex",
    "parent_ids",
    "spouse_id",
    "image_id",
    "birth_date",
    "death_date",
    "notes",
)

# Google スプレッドシート形式の見出し → 内部カラム名
SHEETS_COLUMNS = {
    "ID": "id",
    "Name": "name",
    "Gender": "sex",
    "Father ID": "father_id",
    "Mother ID": "mother_id",
    "Spouse ID": "spouse_id",
    "Photo ID": "image_id",
    "Birth Date": "birth_date",
    "Death Date": "death_date",
    "Notes": "notes",
}
_SHEETS_LOOKUP = {header.casefold(): column for header, column in SHEETS_COLUMNS.items()}


def encode_csv(store: PersonStore, scope: Iterable[int] | None = None) -> bytes:
    """1人1行の CSV を出力する。metadata のキーは固定カラムの後ろに並べる。"""
    persons = store.select(scope)
    extra = sorted({key for p in persons for key in p.metadata} - set(COLUMNS))

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow([*COLUMNS, *extra])
    for p in persons:
        writer.writerow(
            [
                p.id,
                p.name,
                p.sex.value if p.sex is not None else "",
                ",".join(str(pid) for pid in p.parent_ids),
                _blank(p.spouse_id),
                _blank(p.image_id),
                _blank(p.birth_date),
                _blank(p.death_date),
                _blank(p.notes),
                *(p.metadata.get(key, "") for key in extra),
            ]
        )
    return buf.getvalue().encode("utf-8")


def decode_csv(data: bytes) -> list[Person]:
    """CSV を読み込み、Person のリストを返す。

    id / name 以外のカラムは省略できる。未知のカラムは metadata に保持する。

    Raises:
        MissingRequiredColumnError: id または name カラムがない
        CsvParseError: 値の読み込みエラー
        DuplicateIdError: 同じ ID が複数ある
    """
    headers, rows = _read_rows(data)
    _validate_columns(set(headers))
    extra_columns = [h for h in headers if h not in COLUMNS]
    return _parse_rows(rows, extra_columns)


def encode_sheets_csv(store: PersonStore, scope: Iterable[int] | None = None) -> bytes:
    """Google スプレッドシート向けの見出しで CSV を出力する。

    親は性別から Father ID / Mother ID に振り分け、性別が不明な親は空いている方に入れる。
    """
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(list(SHEETS_COLUMNS))
    for p in store.select(scope):
        father, mother = _split_parents(store, p)
        writer.writerow(
            [
                p.id,
                p.name,
                p.sex.label.capitalize() if p.sex is not None else "",
                _blank(father),
                _blank(mother),
                _blank(p.spouse_id),
                _blank(p.image_id),
                _blank(p.birth_date),
                _blank(p.death_date),
                _blank(p.notes),
            ]
        )
    return buf.getvalue().encode("utf-8")


def decode_sheets_csv(data: bytes) -> list[Person]:
    """Google スプレッドシートから書き出した CSV を読み込む。

    見出しは大文字小文字を区別しない。対応表にない見出しは metadata に入る。
    """
    headers, rows = _read_rows(data)
    mapping = {h: _SHEETS_LOOKUP.get(h.strip().casefold(), h) for h in headers}
    _validate_columns(set(mapping.values()))

    normalized: list[dict[str, str]] = []
    for row in rows:
        values = {mapping[h]: (v or "") for h, v in row.items() if h in mapping}
        parents = [values.pop("father_id", ""), values.pop("mother_id", "")]
        values["parent_ids"] = ",".join(v.strip() for v in parents if v.strip())
        normalized.append(values)

    extra_columns = [
        mapping[h] for h in headers if mapping[h] not in COLUMNS and mapping[h] not in ("father_id", "mother_id")
    ]
    return _parse_rows(normalized, extra_columns)


def _read_rows(data: bytes) -> tuple[list[str], list[dict[str, str]]]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvParseError(f"UTF-8 として読み込めません: {e}") from e

    reader = csv.DictReader(io.StringIO(text))
    if reader.fieldnames is None:
        raise CsvParseError("CSVファイルが空です")
    headers = [h.strip() for h in reader.fieldnames]
    reader.fieldnames = headers
    return headers, list(reader)


def _validate_columns(headers: set[str]) -> None:
    """必須カラムの存在を確認する。"""
    missing = REQUIRED_COLUMNS - headers
    if missing:
        raise MissingRequiredColumnError(missing)


def _parse_rows(rows: list[dict[str, str]], extra_columns: list[str]) -> list[Person]:
    """CSV行をPersonオブジェクトのリストに変換する。"""
    persons: list[Person] = []
    for i, row in enumerate(rows, start=2):  # ヘッダー行が1行目
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        try:
            persons.append(_parse_row(row, extra_columns))
        except ValueError as e:
            raise CsvParseError(f"{i}行目: {e}") from e
    return ensure_unique_ids(persons)


def _parse_row(row: dict[str, str], extra_columns: list[str]) -> Person:
    """1行のCSVデータをPersonオブジェクトに変換する。"""
    person_id = int(_cell(row, "id"))
    name = _cell(row, "name")
    if not name:
        raise ValueError("名前が空です")

    parent_ids_str = _cell(row, "parent_ids")
    parent_ids: list[int] = []
    if parent_ids_str:
        parent_ids = [int(pid.strip()) for pid in parent_ids_str.split(",") if pid.strip()]

    spouse_id_str = _cell(row, "spouse_id")
    spouse_id: int | None = int(spouse_id_str) if spouse_id_str else None

    metadata: dict[str, str] = {}
    for col in extra_columns:
        value = row.get(col) or ""
        if value:
            metadata[col] = value

    person = Person(
        id=person_id,
        name=name,
        sex=Sex.parse(_cell(row, "sex")),
        parent_ids=parent_ids,
        spouse_id=spouse_id,
        image_id=_cell(row, "image_id") or None,
        birth_date=_cell(row, "birth_date") or None,
        death_date=_cell(row, "death_date") or None,
        notes=_cell(row, "notes") or None,
        metadata=metadata,
    )
    person.validate()
    return person


def _cell(row: dict[str, str], column: str) -> str:
    return (row.get(column) or "").strip()


def _blank(value: object) -> object:
    return "" if value is None else value


def _split_parents(store: PersonStore, person: Person) -> tuple[int | None, int | None]:
    father: int | None = None
    mother: int | None = None
    unknown: list[int] = []
    for pid in person.parent_ids:
        sex = store.get(pid).sex if pid in store else None
        if sex is Sex.M and father is None:
            father = pid
        elif sex is Sex.F and mother is None:
            mother = pid
        else:
            unknown.append(pid)
    for pid in unknown:
        if father is None:
            father = pid
        elif mother is None:
            mother = pid
    return father, mother
