from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from family_graph.errors import DuplicateIdError, InvalidPersonError

_SEX_ALIASES = {
    "M": "M",
    "MALE": "M",
    "F": "F",
    "FEMALE": "F",
}


class Sex(Enum):
    M = "M"
    F = "F"

    @classmethod
    def parse(cls, value: str | None) -> Sex | None:
        """"M" / "male" / "Female" などを Sex に変換する。空なら None。"""
        if value is None:
            return None
        text = str(value).strip().upper()
        if not text or text == "U":
            return None
        try:
            return cls(_SEX_ALIASES[text])
        except KeyError:
            raise ValueError(f"不正な性別値です: {value}")

    @property
    def label(self) -> str:
        return "male" if self is Sex.M else "female"


@dataclass
class Person:
    """個人情報を表すデータクラス。

    親は 0〜2 人を parent_ids に持つ。取り込み元の形式（parentId 単独、
    fatherId/motherId）の違いは各コーデックのアダプタで吸収する。
    未知のカラムは metadata 辞書に保持する。
    """

    id: int
    name: str
    sex: Sex | None = None
    parent_ids: list[int] = field(default_factory=list)
    spouse_id: int | None = None
    image_id: str | None = None
    birth_date: str | None = None
    death_date: str | None = None
    notes: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """ID と名前の最低限の整合性を確認する。"""
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise InvalidPersonError(f"IDは正の整数で指定してください: {self.id!r}")
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidPersonError(f"ID {self.id}: 名前が空です")
        if len(self.parent_ids) > 2:
            raise InvalidPersonError(f"ID {self.id}: 親は2人までです")

    def to_record(self) -> dict[str, Any]:
        """保存・交換用のプレーンな辞書に変換する。"""
        return {
            "id": self.id,
            "name": self.name,
            "sex": self.sex.label if self.sex is not None else None,
            "parentIds": list(self.parent_ids),
            "spouseId": self.spouse_id,
            "imageId": self.image_id,
            "birthDate": self.birth_date,
            "deathDate": self.death_date,
            "notes": self.notes,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Person:
        """to_record() 形式の辞書から Person を復元する。

        単一の parentId や fatherId/motherId を持つ旧形式も受け付ける。
        """
        metadata = record.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError(f"metadata はオブジェクトで指定してください: {metadata!r}")
        person = cls(
            id=_to_int(record["id"]),
            name=str(record.get("name") or "").strip(),
            sex=Sex.parse(record.get("sex")),
            parent_ids=_collect_parent_ids(record),
            spouse_id=_to_optional_int(record.get("spouseId")),
            image_id=_to_optional_str(record.get("imageId")),
            birth_date=_to_optional_str(record.get("birthDate")),
            death_date=_to_optional_str(record.get("deathDate")),
            notes=_to_optional_str(record.get("notes")),
            metadata={str(k): str(v) for k, v in metadata.items()},
        )
        person.validate()
        return person


def ensure_unique_ids(persons: list[Person]) -> list[Person]:
    """取り込んだ人物に同じ ID が2回現れないことを確認する。"""
    seen: set[int] = set()
    for person in persons:
        if person.id in seen:
            raise DuplicateIdError(person.id)
        seen.add(person.id)
    return persons


def _collect_parent_ids(record: dict[str, Any]) -> list[int]:
    if record.get("parentIds"):
        raw = record["parentIds"]
        values = raw if isinstance(raw, list) else [raw]
    else:
        values = [record.get(key) for key in ("parentId", "fatherId", "motherId")]
    parent_ids: list[int] = []
    for value in values:
        pid = _to_optional_int(value)
        if pid is not None and pid not in parent_ids:
            parent_ids.append(pid)
    return parent_ids


def _to_int(value: object) -> int:
    if isinstance(value, bool):
        raise ValueError(f"整数ではありません: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return int(str(value).strip())


def _to_optional_int(value: object) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _to_int(value)


def _to_optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None
