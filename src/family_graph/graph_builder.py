"""人物ストアから親子・配偶者・ルートの構造を導出する。

入力データが汚れていても描画可能な森を必ず返す。存在しない親への参照は
「親なし」として扱い、循環する親子関係だけを unresolved に隔離する。
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

import networkx as nx

from family_graph.errors import CyclicReferenceError
from family_graph.models import Person
from family_graph.store import PersonStore

logger = logging.getLogger(__name__)

PARENT_OF = "PARENT_OF"
SPOUSE_OF = "SPOUSE_OF"


@dataclass(frozen=True)
class Diagnostic:
    """データの欠陥を表す診断情報。描画を止めるものではない。"""

    kind: str  # asymmetric_spouse, dangling_parent, dangling_spouse, self_spouse, cyclic_parent
    person_id: int
    detail: str


@dataclass(frozen=True)
class FamilyGraph:
    """ストアのある時点から導出した読み取り専用の家系構造。"""

    persons: dict[int, Person]
    roots: tuple[int, ...]
    children: dict[int, tuple[int, ...]]
    parents: dict[int, tuple[int, ...]]
    spouses: dict[int, int]
    married_in: frozenset[int]
    diagnostics: tuple[Diagnostic, ...] = ()
    unresolved: dict[int, CyclicReferenceError] = field(default_factory=dict, compare=False)

    def __contains__(self, person_id: object) -> bool:
        return person_id in self.persons

    @property
    def spouse_pairs(self) -> frozenset[tuple[int, int]]:
        return frozenset(
            (a, b) for a, b in self.spouses.items() if a < b
        )

    def get_children(self, person_id: int) -> tuple[int, ...]:
        return self.children.get(person_id, ())

    def get_parents(self, person_id: int) -> tuple[int, ...]:
        return self.parents.get(person_id, ())

    def get_spouse(self, person_id: int) -> int | None:
        return self.spouses.get(person_id)

    def siblings(self, person_id: int) -> tuple[int, ...]:
        """親を1人以上共有する人物（本人を除く）。"""
        found: set[int] = set()
        for parent in self.get_parents(person_id):
            found.update(self.get_children(parent))
        found.discard(person_id)
        return tuple(sorted(found))

    def descendants(self, person_id: int) -> set[int]:
        seen: set[int] = set()
        queue = deque(self.get_children(person_id))
        while queue:
            pid = queue.popleft()
            if pid in seen:
                continue
            seen.add(pid)
            queue.extend(self.get_children(pid))
        return seen

    def to_networkx(self) -> nx.DiGraph:
        """PARENT_OF / SPOUSE_OF の辺を持つ有向グラフに変換する。"""
        g = nx.DiGraph()
        for pid, person in self.persons.items():
            g.add_node(pid, person_name=person.name)
        for parent, kids in self.children.items():
            for child in kids:
                g.add_edge(parent, child, relationship_type=PARENT_OF)
        for a, b in self.spouses.items():
            g.add_edge(a, b, relationship_type=SPOUSE_OF)
        return g


def build_graph(store: PersonStore, scope: Iterable[int] | None = None) -> FamilyGraph:
    """ストア（または scope に含まれる人物だけ）から FamilyGraph を構築する。

    Args:
        store: 人物ストア
        scope: 対象とする人物IDの集合。None の場合は全員

    Returns:
        FamilyGraph オブジェクト
    """
    all_ids = set(store.ids())
    if scope is None:
        selected = all_ids
    else:
        selected = {pid for pid in scope if pid in all_ids}
    members = {pid: store.get(pid) for pid in sorted(selected)}
    diagnostics: list[Diagnostic] = []

    raw_parents: dict[int, list[int]] = {}
    for person in members.values():
        links: list[int] = []
        for pid in person.parent_ids:
            if pid in members:
                if pid not in links:
                    links.append(pid)
            elif pid not in all_ids:
                logger.debug("存在しない親IDを無視します: %s -> %s", person.id, pid)
                diagnostics.append(
                    Diagnostic(
                        "dangling_parent",
                        person.id,
                        f"ID {person.id} ({person.name}): 親ID {pid} が存在しません",
                    )
                )
        raw_parents[person.id] = links

    unresolved = _find_cycles(raw_parents)
    for pid, error in unresolved.items():
        diagnostics.append(Diagnostic("cyclic_parent", pid, str(error)))
    if unresolved:
        logger.warning("循環参照のため %d 人を除外しました", len(unresolved))

    resolved = {pid: p for pid, p in members.items() if pid not in unresolved}
    parents: dict[int, tuple[int, ...]] = {
        pid: tuple(x for x in raw_parents[pid] if x not in unresolved)
        for pid in resolved
    }

    children_lists: dict[int, list[int]] = {}
    for child, parent_ids in parents.items():
        for parent in parent_ids:
            kids = children_lists.setdefault(parent, [])
            if child not in kids:
                kids.append(child)
    children = {pid: tuple(sorted(kids)) for pid, kids in children_lists.items()}

    spouses = _pair_spouses(resolved, all_ids, diagnostics)

    parentless = [pid for pid in resolved if not parents[pid]]
    married_in: set[int] = set()
    for pid in parentless:
        sid = spouses.get(pid)
        if sid is None:
            continue
        # 配偶者に親がいる → 嫁入り/婿入り。両方とも親なし → ID が小さい方をルートとする
        if parents[sid] or sid < pid:
            married_in.add(pid)
    roots = tuple(pid for pid in parentless if pid not in married_in)

    logger.debug(
        "グラフを構築しました: 人物 %d, ルート %d, 配偶者ペア %d",
        len(resolved),
        len(roots),
        len(spouses) // 2,
    )
    return FamilyGraph(
        persons=resolved,
        roots=roots,
        children=children,
        parents=parents,
        spouses=spouses,
        married_in=frozenset(married_in),
        diagnostics=tuple(diagnostics),
        unresolved=unresolved,
    )


def _find_cycles(raw_parents: dict[int, list[int]]) -> dict[int, CyclicReferenceError]:
    """親子関係の循環（自己参照を含む）に属する人物を返す。"""
    g = nx.DiGraph()
    g.add_nodes_from(raw_parents)
    g.add_edges_from(
        (parent, child) for child, parent_ids in raw_parents.items() for parent in parent_ids
    )
    unresolved: dict[int, CyclicReferenceError] = {}
    for component in nx.strongly_connected_components(g):
        cycle = sorted(component)
        if len(cycle) == 1 and not g.has_edge(cycle[0], cycle[0]):
            continue
        error = CyclicReferenceError(cycle)
        for pid in cycle:
            unresolved[pid] = error
    return unresolved


def _pair_spouses(
    persons: dict[int, Person],
    all_ids: set[int],
    diagnostics: list[Diagnostic],
) -> dict[int, int]:
    """配偶者リンクを対称なペアにまとめる。

    両側から参照し合うペアを先に確定し、片側だけのリンクは相手が
    未婚の場合に限って補完する。
    """
    claims = {pid: p.spouse_id for pid, p in persons.items() if p.spouse_id is not None}
    spouses: dict[int, int] = {}
    one_sided: list[tuple[int, int]] = []

    for pid, sid in claims.items():
        person = persons[pid]
        if sid == pid:
            diagnostics.append(
                Diagnostic("self_spouse", pid, f"ID {pid} ({person.name}): 自分自身が配偶者です")
            )
            continue
        if sid not in persons:
            if sid not in all_ids:
                diagnostics.append(
                    Diagnostic(
                        "dangling_spouse",
                        pid,
                        f"ID {pid} ({person.name}): 配偶者ID {sid} が存在しません",
                    )
                )
            continue
        if claims.get(sid) == pid:
            spouses[pid] = sid
        else:
            one_sided.append((pid, sid))

    for pid, sid in one_sided:
        back = claims.get(sid)
        diagnostics.append(
            Diagnostic(
                "asymmetric_spouse",
                pid,
                f"ID {pid} -> 配偶者 {sid}, しかし {sid} -> 配偶者 {back}",
            )
        )
        logger.warning("配偶者リンクが片側のみです: %s -> %s (%s)", pid, sid, back)
        if back is None and pid not in spouses and sid not in spouses:
            spouses[pid] = sid
            spouses[sid] = pid

    return dict(sorted(spouses.items()))
