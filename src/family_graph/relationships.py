"""2人の人物の続柄を求める。

経路の有無は親・子・配偶者の辺を無向グラフとみなした双方向幅優先探索で
判定し、続柄の名前は共通祖先までの距離の組 (up_a, up_b) から
classify() の規則表で決める。ラベルは「a が b から見て何にあたるか」。
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

import networkx as nx

from family_graph.errors import NotFoundError, NotRelatedError, SelfRelationshipError
from family_graph.graph_builder import FamilyGraph
from family_graph.models import Sex

logger = logging.getLogger(__name__)

_ORDINALS = (
    "zeroth",
    "first",
    "second",
    "third",
    "fourth",
    "fifth",
    "sixth",
    "seventh",
    "eighth",
    "ninth",
    "tenth",
)


@dataclass(frozen=True)
class Kinship:
    """距離の組に対応する続柄。male / female は a の性別で使い分ける。"""

    kind: str
    label: str
    male: str
    female: str

    def for_sex(self, sex: Sex | None) -> str:
        if sex is Sex.M:
            return self.male
        if sex is Sex.F:
            return self.female
        return self.label


@dataclass(frozen=True)
class PathStep:
    """経路の1歩。edge は from_id から見た to_id の立場（parent / child / spouse）。"""

    from_id: int
    to_id: int
    edge: str


@dataclass(frozen=True)
class RelationshipLabel:
    source_id: int
    target_id: int
    kind: str
    label: str
    gendered_label: str
    distance: tuple[int, int]
    in_law: bool = False
    path: tuple[PathStep, ...] = ()

    def __str__(self) -> str:
        return self.label


def ordinal(n: int) -> str:
    if 0 <= n < len(_ORDINALS):
        return _ORDINALS[n]
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def _times(n: int) -> str:
    if n == 1:
        return "once"
    if n == 2:
        return "twice"
    return f"{n} times"


def _greats(n: int) -> str:
    return "great-" * n


def classify(up_a: int, up_b: int, half: bool = False) -> Kinship:
    """共通祖先までの距離の組から続柄を決める。

    up_a は a から共通祖先まで、up_b は b から共通祖先までの世代数。
    (0, 0) は配偶者を表す。
    """
    if up_a < 0 or up_b < 0:
        raise ValueError(f"距離は0以上で指定してください: ({up_a}, {up_b})")

    if up_a == 0 and up_b == 0:
        return Kinship("spouse", "spouse", "husband", "wife")

    if up_a == 0:
        if up_b == 1:
            return Kinship("parent", "parent", "father", "mother")
        prefix = _greats(up_b - 2)
        return Kinship(
            "ancestor",
            f"{prefix}grandparent",
            f"{prefix}grandfather",
            f"{prefix}grandmother",
        )

    if up_b == 0:
        if up_a == 1:
            return Kinship("child", "child", "son", "daughter")
        prefix = _greats(up_a - 2)
        return Kinship(
            "descendant",
            f"{prefix}grandchild",
            f"{prefix}grandson",
            f"{prefix}granddaughter",
        )

    if up_a == 1 and up_b == 1:
        if half:
            return Kinship("sibling", "half-sibling", "half-brother", "half-sister")
        return Kinship("sibling", "sibling", "brother", "sister")

    if up_a == 1:
        prefix = _greats(up_b - 2)
        return Kinship(
            "aunt_uncle",
            f"{prefix}aunt/uncle",
            f"{prefix}uncle",
            f"{prefix}aunt",
        )

    if up_b == 1:
        prefix = _greats(up_a - 2)
        return Kinship(
            "niece_nephew",
            f"{prefix}niece/nephew",
            f"{prefix}nephew",
            f"{prefix}niece",
        )

    degree = min(up_a, up_b) - 1
    removed = abs(up_a - up_b)
    label = f"{ordinal(degree)} cousin"
    if removed:
        label = f"{label}, {_times(removed)} removed"
    return Kinship("cousin", label, label, label)


def _in_law(text: str) -> str:
    if " " in text:
        return f"{text} (in-law)"
    return f"{text}-in-law"


class RelationshipResolver:
    """1つの FamilyGraph に対して続柄を問い合わせる。"""

    def __init__(self, graph: FamilyGraph) -> None:
        self.graph = graph
        self._undirected = graph.to_networkx().to_undirected()

    def resolve(self, a: int, b: int) -> RelationshipLabel:
        """a が b から見て何にあたるかを返す。

        Raises:
            SelfRelationshipError: a と b が同一人物
            NotFoundError: どちらかがグラフに存在しない
            NotRelatedError: 2人を結ぶ経路がない
        """
        if a == b:
            raise SelfRelationshipError(a)
        for pid in (a, b):
            if pid not in self.graph:
                raise NotFoundError(pid)

        path = self.find_path(a, b)
        sex = self.graph.persons[a].sex

        if self.graph.get_spouse(a) == b:
            return self._label(a, b, classify(0, 0), sex, (0, 0), path)

        blood = self.blood_distance(a, b)
        if blood is not None:
            half = blood == (1, 1) and self._is_half_sibling(a, b)
            return self._label(a, b, classify(*blood, half=half), sex, blood, path)

        by_marriage = self._via_spouse(a, b)
        if by_marriage is not None:
            side, (up_a, up_b) = by_marriage
            kinship = classify(up_a, up_b)
            if side == "source":
                distance = (up_a + 1, up_b)
            else:
                distance = (up_a, up_b + 1)
            # 自分の配偶者の親子 → 継親・継子
            if (side == "source" and kinship.kind == "parent") or (
                side == "target" and kinship.kind == "child"
            ):
                step = Kinship(
                    f"step_{kinship.kind}",
                    f"step-{kinship.label}",
                    f"step{kinship.male}",
                    f"step{kinship.female}",
                )
                return self._label(a, b, step, sex, distance, path)
            in_law = Kinship(
                f"{kinship.kind}_in_law",
                _in_law(kinship.label),
                _in_law(kinship.male),
                _in_law(kinship.female),
            )
            return self._label(a, b, in_law, sex, distance, path, in_law=True)

        ups = sum(1 for step in path if step.edge == "parent")
        downs = sum(1 for step in path if step.edge == "child")
        relative = Kinship(
            "relative_by_marriage",
            "relative by marriage",
            "relative by marriage",
            "relative by marriage",
        )
        return self._label(a, b, relative, sex, (ups, downs), path, in_law=True)

    def find_path(self, a: int, b: int) -> tuple[PathStep, ...]:
        """親・子・配偶者の辺をたどる最短経路を返す。"""
        try:
            nodes = nx.bidirectional_shortest_path(self._undirected, a, b)
        except nx.NetworkXNoPath:
            raise NotRelatedError(a, b) from None
        steps: list[PathStep] = []
        for u, v in zip(nodes, nodes[1:]):
            if v in self.graph.get_parents(u):
                edge = "parent"
            elif v in self.graph.get_children(u):
                edge = "child"
            else:
                edge = "spouse"
            steps.append(PathStep(u, v, edge))
        return tuple(steps)

    def blood_distance(self, a: int, b: int) -> tuple[int, int] | None:
        """最も近い共通祖先までの距離の組。共通祖先がなければ None。"""
        ups_a = self._ancestor_distances(a)
        ups_b = self._ancestor_distances(b)
        common = ups_a.keys() & ups_b.keys()
        if not common:
            return None
        return min(
            ((ups_a[c], ups_b[c]) for c in common),
            key=lambda d: (d[0] + d[1], max(d), d),
        )

    def _via_spouse(self, a: int, b: int) -> tuple[str, tuple[int, int]] | None:
        candidates: list[tuple[int, int, str, tuple[int, int]]] = []
        spouse_b = self.graph.get_spouse(b)
        if spouse_b is not None and spouse_b != a:
            distance = self.blood_distance(a, spouse_b)
            if distance is not None:
                candidates.append((sum(distance), 0, "target", distance))
        spouse_a = self.graph.get_spouse(a)
        if spouse_a is not None and spouse_a != b:
            distance = self.blood_distance(spouse_a, b)
            if distance is not None:
                candidates.append((sum(distance), 1, "source", distance))
        if not candidates:
            return None
        _, _, side, distance = min(candidates)
        return side, distance

    def _ancestor_distances(self, person_id: int) -> dict[int, int]:
        distances = {person_id: 0}
        queue = deque([person_id])
        while queue:
            pid = queue.popleft()
            for parent in self.graph.get_parents(pid):
                if parent not in distances:
                    distances[parent] = distances[pid] + 1
                    queue.append(parent)
        return distances

    def _is_half_sibling(self, a: int, b: int) -> bool:
        parents_a = set(self.graph.get_parents(a))
        parents_b = set(self.graph.get_parents(b))
        return len(parents_a) == 2 and len(parents_b) == 2 and len(parents_a & parents_b) == 1

    def _label(
        self,
        a: int,
        b: int,
        kinship: Kinship,
        sex: Sex | None,
        distance: tuple[int, int],
        path: tuple[PathStep, ...],
        in_law: bool = False,
    ) -> RelationshipLabel:
        result = RelationshipLabel(
            source_id=a,
            target_id=b,
            kind=kinship.kind,
            label=kinship.label,
            gendered_label=kinship.for_sex(sex),
            distance=distance,
            in_law=in_law,
            path=path,
        )
        logger.debug("続柄: %d -> %d = %s %s", a, b, result.label, distance)
        return result


def resolve(graph: FamilyGraph, a: int, b: int) -> RelationshipLabel:
    """RelationshipResolver を都度作って続柄を求める。"""
    return RelationshipResolver(graph).resolve(a, b)
