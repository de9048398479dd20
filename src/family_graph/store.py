"""人物レコードの正本を保持するストア。

ストアは変更のたびに revision を進めるだけで、グラフの再構築はしない。
派生データ（親子マップ、世代）は revision を見て呼び出し側が作り直す。
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Iterator

from family_graph.errors import DuplicateIdError, InvalidPersonError, NotFoundError
from family_graph.models import Person

logger = logging.getLogger(__name__)


class PersonStore:
    """ID → Person の対応を管理する。"""

    def __init__(self, persons: Iterable[Person] = ()) -> None:
        self._persons: dict[int, Person] = {}
        self._revision = 0
        staged: dict[int, Person] = {}
        for person in persons:
            person.validate()
            if person.id in staged:
                raise DuplicateIdError(person.id)
            staged[person.id] = _copy(person)
        self._persons = staged

    @property
    def revision(self) -> int:
        """変更のたびに増えるカウンタ。キャッシュの無効化判定に使う。"""
        return self._revision

    def __len__(self) -> int:
        return len(self._persons)

    def __contains__(self, person_id: object) -> bool:
        return person_id in self._persons

    def __iter__(self) -> Iterator[Person]:
        return iter(self.all())

    def ids(self) -> list[int]:
        return list(self._persons)

    def get(self, person_id: int) -> Person:
        """人物のコピーを返す。変更は update() を通して行う。"""
        try:
            return _copy(self._persons[person_id])
        except KeyError:
            raise NotFoundError(person_id) from None

    def all(self) -> list[Person]:
        """登録順の人物リスト（コピー）を返す。"""
        return [_copy(p) for p in self._persons.values()]

    def find(self, predicate: Callable[[Person], bool]) -> list[Person]:
        return [p for p in self.all() if predicate(p)]

    def select(self, scope: Iterable[int] | None = None) -> list[Person]:
        """scope に含まれる人物を登録順で返す。None の場合は全員。"""
        if scope is None:
            return self.all()
        wanted = set(scope)
        return [_copy(p) for p in self._persons.values() if p.id in wanted]

    def search(self, query: str) -> list[Person]:
        """名前の部分一致（大文字小文字を区別しない）で検索する。"""
        needle = query.strip().casefold()
        if not needle:
            return self.all()
        return self.find(lambda p: needle in p.name.casefold())

    def add(self, person: Person) -> None:
        person.validate()
        if person.id in self._persons:
            raise DuplicateIdError(person.id)
        self._persons[person.id] = _copy(person)
        self._touch()
        logger.debug("人物を追加しました: %s (%s)", person.id, person.name)

    def update(self, person_id: int, **changes: object) -> Person:
        """指定フィールドを書き換えた新しいレコードで置き換える。

        検証はコピーに対して行うため、失敗時に元のレコードは変わらない。
        """
        current = self.get(person_id)
        if "id" in changes and changes["id"] != person_id:
            raise InvalidPersonError(f"IDは変更できません: {person_id}")
        try:
            updated = dataclasses.replace(current, **changes)  # type: ignore[arg-type]
        except TypeError as e:
            raise InvalidPersonError(f"ID {person_id}: {e}") from e
        updated.validate()
        self._persons[person_id] = _copy(updated)
        self._touch()
        return updated

    def remove(self, person_id: int) -> Person:
        """人物を削除する。他の人物からの参照はそのまま残す。"""
        if person_id not in self._persons:
            raise NotFoundError(person_id)
        person = self._persons.pop(person_id)
        self._touch()
        logger.debug("人物を削除しました: %s (%s)", person.id, person.name)
        return person

    def replace_all(self, persons: Iterable[Person]) -> None:
        """全レコードを入れ替える。検証に失敗した場合は何も変更しない。"""
        staged = PersonStore(persons)
        self._persons = staged._persons
        self._touch()

    def to_records(self) -> list[dict[str, object]]:
        """ストア全体をプレーンな辞書のリストとして返す。"""
        return [p.to_record() for p in self._persons.values()]

    @classmethod
    def from_records(cls, records: Iterable[dict[str, object]]) -> PersonStore:
        return cls(Person.from_record(r) for r in records)

    def _touch(self) -> None:
        self._revision += 1


def _copy(person: Person) -> Person:
    return dataclasses.replace(
        person, parent_ids=list(person.parent_ids), metadata=dict(person.metadata)
    )
