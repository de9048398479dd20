"""GEDCOM 5.5.1 のインポート・エクスポート。

INDI（個人）と FAM（家族）レコードだけを扱う。写真 ID や metadata のように
GEDCOM に対応する項目がないフィールドは出力されない（往復で失われる）。
読み込みは python-gedcom のパーサで要素木を作り、INDI / FAM 要素をたどる。
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from gedcom.element.element import Element
from gedcom.element.family import FamilyElement
from gedcom.element.individual import IndividualElement
from gedcom.parser import GedcomFormatViolationError, Parser

from family_graph.errors import GedcomParseError, UnsupportedGedcomVersionError
from family_graph.models import Person, Sex, ensure_unique_ids
from family_graph.store import PersonStore

logger = logging.getLogger(__name__)

GEDCOM_VERSION = "5.5.1"
SUPPORTED_MAJOR_VERSIONS = ("5", "7")
UNKNOWN_NAME = "Unknown"
# NAME の "/" は姓の区切りなので、"/" を含む名前はこのタグに元の表記を残す
DISPLAY_NAME_TAG = "_DISPLAY"


@dataclass
class _Indi:
    xref: str
    name: str = ""
    given: str = ""
    surname: str = ""
    display: str = ""
    sex: str = ""
    birth_date: str = ""
    death_date: str = ""
    notes: list[str] = field(default_factory=list)


@dataclass
class _Fam:
    xref: str
    husb: str | None = None
    wife: str | None = None
    chil: list[str] = field(default_factory=list)
    married: bool = False


@dataclass
class _FamilyGroup:
    parents: tuple[int, ...]
    children: list[int] = field(default_factory=list)
    married: bool = False


# ---------------------------------------------------------------------------
# エクスポート
# ---------------------------------------------------------------------------


def encode_gedcom(store: PersonStore, scope: Iterable[int] | None = None) -> bytes:
    """INDI / FAM レコードを組み立てて GEDCOM を出力する。

    親の組み合わせ（1人または2人）ごとに FAM を1つ作り、その組の子を CHIL に並べる。
    配偶者リンクから作った FAM には MARR を付け、子のいない夫婦も出力する。
    """
    persons = store.select(scope)
    by_id = {p.id: p for p in persons}
    families = _collect_families(persons, by_id)

    famc: dict[int, list[str]] = {}
    fams: dict[int, list[str]] = {}
    fam_lines: list[str] = []
    for i, family in enumerate(families, start=1):
        xref = f"@F{i}@"
        husb, wife = _assign_roles(family.parents, by_id)
        fam_lines.append(f"0 {xref} FAM")
        for tag, pid in (("HUSB", husb), ("WIFE", wife)):
            if pid is not None:
                fam_lines.append(f"1 {tag} @I{pid}@")
                fams.setdefault(pid, []).append(xref)
        for child in family.children:
            fam_lines.append(f"1 CHIL @I{child}@")
            famc.setdefault(child, []).append(xref)
        if family.married:
            fam_lines.append("1 MARR")

    lines = [
        "0 HEAD",
        "1 SOUR FAMILY_GRAPH",
        "2 NAME family-graph",
        "1 GEDC",
        f"2 VERS {GEDCOM_VERSION}",
        "2 FORM LINEAGE-LINKED",
        "1 CHAR UTF-8",
    ]
    for p in persons:
        lines.append(f"0 @I{p.id}@ INDI")
        lines.extend(_name_lines(p.name))
        if p.sex is not None:
            lines.append(f"1 SEX {p.sex.value}")
        if p.birth_date:
            lines.extend(["1 BIRT", f"2 DATE {p.birth_date}"])
        if p.death_date:
            lines.extend(["1 DEAT", f"2 DATE {p.death_date}"])
        if p.notes:
            lines.extend(_note_lines(p.notes))
        for xref in famc.get(p.id, []):
            lines.append(f"1 FAMC {xref}")
        for xref in fams.get(p.id, []):
            lines.append(f"1 FAMS {xref}")
    lines.extend(fam_lines)
    lines.append("0 TRLR")
    return ("\n".join(lines) + "\n").encode("utf-8")


def _collect_families(persons: list[Person], by_id: dict[int, Person]) -> list[_FamilyGroup]:
    """親の組ごとの FAM。夫婦の組は子がいなくても含める。"""
    groups: dict[tuple[int, ...], _FamilyGroup] = {}
    for p in persons:
        sid = p.spouse_id
        if sid is None or sid not in by_id or sid == p.id:
            continue
        key = tuple(sorted((p.id, sid)))
        group = groups.setdefault(key, _FamilyGroup(key))
        # 相手が別の人を配偶者にしている片側リンクは婚姻として扱わない
        if by_id[sid].spouse_id in (p.id, None):
            group.married = True
    for p in persons:
        parents = tuple(sorted({pid for pid in p.parent_ids if pid in by_id and pid != p.id}))
        if parents:
            groups.setdefault(parents, _FamilyGroup(parents)).children.append(p.id)
    return [groups[key] for key in sorted(groups)]


def _assign_roles(
    parents: tuple[int, ...], by_id: dict[int, Person]
) -> tuple[int | None, int | None]:
    """性別から HUSB / WIFE を決める。決まらない場合は ID の小さい方を HUSB にする。"""
    if len(parents) == 1:
        pid = parents[0]
        if by_id[pid].sex is Sex.F:
            return None, pid
        return pid, None
    a, b = parents
    if by_id[a].sex is Sex.F and by_id[b].sex is not Sex.F:
        return b, a
    return a, b


def _name_lines(name: str) -> list[str]:
    if "/" not in name:
        return [f"1 NAME {name}"]
    return [f"1 NAME {' '.join(name.replace('/', ' ').split())}", f"2 {DISPLAY_NAME_TAG} {name}"]


def _note_lines(text: str) -> list[str]:
    first, *rest = text.split("\n")
    return [f"1 NOTE {first}".rstrip()] + [f"2 CONT {line}".rstrip() for line in rest]


# ---------------------------------------------------------------------------
# インポート
# ---------------------------------------------------------------------------


def decode_gedcom(data: bytes) -> list[Person]:
    """GEDCOM を読み込み、INDI / FAM から Person のリストを組み立てる。

    未知のタグは無視する。@I<数字>@ 形式の xref はその数字を ID として使い、
    それ以外の xref には既存の最大 ID の次から連番を振る。配偶者は MARR の
    ある FAM から先に決め、MARR のない FAM の夫婦は未婚の2人だけを結ぶ。

    Raises:
        UnsupportedGedcomVersionError: ヘッダーの GEDC.VERS が 5.x / 7.x 以外
        GedcomParseError: レベルの飛びなど、要素木を組み立てられない
    """
    parser = _parse(data)

    indis: dict[str, _Indi] = {}
    fams: list[_Fam] = []
    for element in parser.get_root_child_elements():
        xref = element.get_pointer()
        if element.get_tag() == "HEAD":
            _check_version(element)
        elif isinstance(element, IndividualElement) and xref:
            indis.setdefault(xref, _read_individual(element))
        elif isinstance(element, FamilyElement) and xref:
            fams.append(_read_family(element))
    ids = _assign_ids(indis)

    parents: dict[str, list[str]] = {}
    for fam in fams:
        couple = [x for x in (fam.husb, fam.wife) if x is not None and x in indis]
        for child in fam.chil:
            if child not in indis:
                continue
            links = parents.setdefault(child, [])
            links.extend(x for x in couple if x not in links and x != child)
    spouses = _pair_spouses(fams, indis)

    persons: list[Person] = []
    for xref, indi in indis.items():
        persons.append(
            Person(
                id=ids[xref],
                name=_indi_name(indi),
                sex=_parse_sex(indi.sex),
                parent_ids=[ids[x] for x in parents.get(xref, [])][:2],
                spouse_id=ids[spouses[xref]] if xref in spouses else None,
                birth_date=indi.birth_date or None,
                death_date=indi.death_date or None,
                notes="\n".join(indi.notes).strip() or None,
            )
        )
    logger.debug("GEDCOM を読み込みました: INDI %d, FAM %d", len(indis), len(fams))
    return ensure_unique_ids(persons)


def _parse(data: bytes) -> Parser:
    text = data.decode("utf-8-sig", errors="replace")
    lines = [ln.lstrip() for ln in text.splitlines() if ln.strip()]
    parser = Parser()
    stream = io.BytesIO(("\n".join(lines) + "\n").encode("utf-8") if lines else b"")
    try:
        parser.parse(stream, strict=False)
    except GedcomFormatViolationError as e:
        raise GedcomParseError(f"GEDCOM を読み込めません: {e}") from e
    return parser


def _check_version(head: Element) -> None:
    for child in head.get_child_elements():
        if child.get_tag() != "GEDC":
            continue
        for sub in child.get_child_elements():
            if sub.get_tag() == "VERS":
                version = sub.get_value().strip()
                if version.split(".", 1)[0] not in SUPPORTED_MAJOR_VERSIONS:
                    raise UnsupportedGedcomVersionError(version)


def _read_individual(element: IndividualElement) -> _Indi:
    indi = _Indi(xref=element.get_pointer())
    for child in element.get_child_elements():
        tag = child.get_tag()
        value = child.get_value().strip()
        if tag == "NAME" and not (indi.name or indi.given or indi.surname):
            indi.name = value
            for sub in child.get_child_elements():
                if sub.get_tag() == "GIVN":
                    indi.given = sub.get_value().strip()
                elif sub.get_tag() == "SURN":
                    indi.surname = sub.get_value().strip()
                elif sub.get_tag() == DISPLAY_NAME_TAG:
                    indi.display = sub.get_value().strip()
        elif tag == "SEX":
            indi.sex = value
        elif tag in ("BIRT", "DEAT"):
            date = _event_date(child)
            if tag == "BIRT":
                indi.birth_date = date
            else:
                indi.death_date = date
        elif tag == "NOTE" and not value.startswith("@"):
            indi.notes.append(_multi_line_value(child))
    return indi


def _read_family(element: FamilyElement) -> _Fam:
    fam = _Fam(xref=element.get_pointer())
    for child in element.get_child_elements():
        tag = child.get_tag()
        value = child.get_value().strip()
        if tag == "HUSB" and value:
            fam.husb = value
        elif tag == "WIFE" and value:
            fam.wife = value
        elif tag == "CHIL" and value and value not in fam.chil:
            fam.chil.append(value)
        elif tag == "MARR":
            fam.married = True
    return fam


def _event_date(event: Element) -> str:
    for sub in event.get_child_elements():
        if sub.get_tag() == "DATE":
            return sub.get_value().strip()
    return ""


def _multi_line_value(element: Element) -> str:
    """NOTE の本文に CONT（改行）と CONC（連結）をつなげる。"""
    text = element.get_value()
    for sub in element.get_child_elements():
        if sub.get_tag() == "CONT":
            text += "\n" + sub.get_value()
        elif sub.get_tag() == "CONC":
            text += sub.get_value()
    return text


def _pair_spouses(fams: list[_Fam], indis: dict[str, _Indi]) -> dict[str, str]:
    spouses: dict[str, str] = {}
    ordered = [f for f in fams if f.married] + [f for f in fams if not f.married]
    for fam in ordered:
        if fam.husb is None or fam.wife is None or fam.husb == fam.wife:
            continue
        a, b = fam.husb, fam.wife
        if a in indis and b in indis and a not in spouses and b not in spouses:
            spouses[a] = b
            spouses[b] = a
    return spouses


def _assign_ids(indis: dict[str, _Indi]) -> dict[str, int]:
    ids: dict[str, int] = {}
    for xref in indis:
        key = xref.strip("@")
        if key[:1] == "I" and key[1:].isdigit() and int(key[1:]) > 0:
            ids[xref] = int(key[1:])
    next_id = max(ids.values(), default=0) + 1
    for xref in indis:
        if xref not in ids:
            ids[xref] = next_id
            next_id += 1
    return ids


def _indi_name(indi: _Indi) -> str:
    if indi.display:
        return indi.display
    raw = indi.name or f"{indi.given} {indi.surname}"
    name = " ".join(raw.replace("/", " ").split())
    return name or UNKNOWN_NAME


def _parse_sex(value: str) -> Sex | None:
    try:
        return Sex.parse(value)
    except ValueError:
        return None
