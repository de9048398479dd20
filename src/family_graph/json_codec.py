from __future__ import annotations

import json
from collections.abc import Iterable

from family_graph.errors import MalformedJsonError
from family_graph.models import Person, ensure_unique_ids
from family_graph.store import PersonStore


def encode_json(store: PersonStore, scope: Iterable[int] | None = None) -> bytes:
    """人物レコードの配列として JSON 出力する。全フィールドを保持する。"""
    records = [p.to_record() for p in store.select(scope)]
    return json.dumps(records, ensure_ascii=False, indent=2).encode("utf-8")


def decode_json(data: bytes) -> list[Person]:
    """JSON から人物リストを読み込む。

    トップレベルは配列、または "people" キーに配列を持つオブジェクト。

    Raises:
        MalformedJsonError: 構文エラー、または id / name のないレコード
        DuplicateIdError: 同じ ID が複数ある
    """
    try:
        payload = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedJsonError(f"JSONを読み込めません: {e}") from e

    if isinstance(payload, dict):
        payload = payload.get("people")
    if not isinstance(payload, list):
        raise MalformedJsonError("人物レコードの配列が見つかりません")

    persons: list[Person] = []
    for i, record in enumerate(payload):
        if not isinstance(record, dict):
            raise MalformedJsonError(f"{i}番目: オブジェクトではありません")
        if record.get("id") is None:
            raise MalformedJsonError(f"{i}番目: id がありません")
        if not str(record.get("name") or "").strip():
            raise MalformedJsonError(f"{i}番目 (ID {record['id']}): name がありません")
        try:
            persons.append(Person.from_record(record))
        except (ValueError, TypeError) as e:
            # InvalidPersonError も ValueError のサブクラス
            raise MalformedJsonError(f"{i}番目 (ID {record['id']}): {e}") from e

    return ensure_unique_ids(persons)
