from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import NamedTuple

from family_graph.csv_codec import decode_csv, decode_sheets_csv, encode_csv, encode_sheets_csv
from family_graph.errors import CodecError
from family_graph.gedcom_codec import decode_gedcom, encode_gedcom
from family_graph.json_codec import decode_json, encode_json
from family_graph.models import Person
from family_graph.store import PersonStore


class Codec(NamedTuple):
    name: str
    extension: str
    encode: Callable[[PersonStore, Iterable[int] | None], bytes]
    decode: Callable[[bytes], list[Person]]


CODECS: dict[str, Codec] = {
    "json": Codec("json", ".json", encode_json, decode_json),
    "csv": Codec("csv", ".csv", encode_csv, decode_csv),
    "sheets": Codec("sheets", ".csv", encode_sheets_csv, decode_sheets_csv),
    "gedcom": Codec("gedcom", ".ged", encode_gedcom, decode_gedcom),
}

_BY_EXTENSION = {".json": "json", ".csv": "csv", ".ged": "gedcom", ".gedcom": "gedcom"}


def get_codec(name: str) -> Codec:
    try:
        return CODECS[name.lower()]
    except KeyError:
        raise CodecError(f"未対応の形式です: {name}") from None


def codec_for_path(path: str | Path) -> Codec:
    """拡張子から形式を判定する（.csv は標準形式として扱う）。"""
    suffix = Path(path).suffix.lower()
    try:
        return CODECS[_BY_EXTENSION[suffix]]
    except KeyError:
        raise CodecError(f"拡張子から形式を判定できません: {path}") from None
