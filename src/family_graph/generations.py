from __future__ import annotations

import heapq
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from family_graph.graph_builder import FamilyGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationConflict:
    """親から見た世代と割り当てた世代が食い違う人物。"""

    person_id: int
    assigned: int
    via_parent: int
    parent_generation: int


@dataclass(frozen=True)
class SpouseMismatch:
    """それぞれ自分の親経路で世代が決まり、世代がそろわない夫婦。"""

    person_id: int
    spouse_id: int
    generation: int
    spouse_generation: int


class GenerationMap(Mapping[int, int]):
    """person_id -> generation の読み取り専用マッピング。"""

    def __init__(
        self,
        values: dict[int, int],
        conflicts: tuple[GenerationConflict, ...] = (),
        spouse_mismatches: tuple[SpouseMismatch, ...] = (),
    ) -> None:
        self._values = values
        self.conflicts = conflicts
        self.spouse_mismatches = spouse_mismatches

    def __getitem__(self, person_id: int) -> int:
        return self._values[person_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, GenerationMap):
            return (
                self._values == other._values
                and self.conflicts == other.conflicts
                and self.spouse_mismatches == other.spouse_mismatches
            )
        if isinstance(other, Mapping):
            return self._values == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"GenerationMap({self._values!r})"

    def by_generation(self) -> dict[int, list[int]]:
        """世代ごとに人物IDをまとめる。"""
        groups: dict[int, list[int]] = {}
        for pid, gen in sorted(self._values.items()):
            groups.setdefault(gen, []).append(pid)
        return dict(sorted(groups.items()))


def assign_generations(graph: FamilyGraph, base: int = 0) -> GenerationMap:
    """各人物の世代を算出する。

    ルートを base 世代とし、子は +1 の重みで最小値を伝播する。配偶者の世代を
    受け継ぐのは、範囲内に親を持たない側（嫁入り/婿入りした人物、親のいない
    夫婦の片方）だけ。自分の親経路を持つ人物は配偶者に引きずられない。
    複数の親経路で世代が異なる場合は小さい方（ルートに近い方）を採用し、
    食い違いを conflicts に、世代のそろわない夫婦を spouse_mismatches に記録する。
    関係のないルート同士の世代はそろえない。

    Returns:
        GenerationMap オブジェクト
    """
    generations: dict[int, int] = {}
    heap: list[tuple[int, int]] = [(base, root) for root in graph.roots]
    heapq.heapify(heap)

    pending = sorted(graph.persons)
    while True:
        _propagate(graph, heap, generations)
        rest = [pid for pid in pending if pid not in generations]
        if not rest:
            break
        # ルートから到達できない成分（嫁入りした人物が配偶者の祖先でもある場合）
        for pid in rest:
            spouse = graph.get_spouse(pid)
            if spouse is not None and spouse in generations:
                heapq.heappush(heap, (generations[spouse], pid))
        if not heap:
            logger.debug("ルートから到達できない人物 %d から世代を割り当てます", rest[0])
            heapq.heappush(heap, (base, rest[0]))
        pending = rest

    conflicts: list[GenerationConflict] = []
    for pid, parent_ids in graph.parents.items():
        for parent in parent_ids:
            expected = generations[parent] + 1
            if generations[pid] != expected:
                conflicts.append(
                    GenerationConflict(pid, generations[pid], parent, generations[parent])
                )
    for conflict in conflicts:
        logger.debug(
            "世代の食い違い: ID %d は %d 世代, 親 %d から見ると %d 世代",
            conflict.person_id,
            conflict.assigned,
            conflict.via_parent,
            conflict.parent_generation + 1,
        )

    mismatches = tuple(
        SpouseMismatch(a, b, generations[a], generations[b])
        for a, b in sorted(graph.spouse_pairs)
        if generations[a] != generations[b]
    )
    for mismatch in mismatches:
        logger.debug(
            "夫婦の世代が異なります: ID %d (%d 世代) と ID %d (%d 世代)",
            mismatch.person_id,
            mismatch.generation,
            mismatch.spouse_id,
            mismatch.spouse_generation,
        )

    return GenerationMap(dict(sorted(generations.items())), tuple(conflicts), mismatches)


def _propagate(
    graph: FamilyGraph,
    heap: list[tuple[int, int]],
    generations: dict[int, int],
) -> None:
    while heap:
        gen, pid = heapq.heappop(heap)
        if pid in generations:
            continue
        generations[pid] = gen
        spouse = graph.get_spouse(pid)
        # 配偶者経由で世代が決まるのは親のいない側だけ
        if spouse is not None and spouse not in generations and not graph.get_parents(spouse):
            heapq.heappush(heap, (gen, spouse))
        for child in graph.get_children(pid):
            if child not in generations:
                heapq.heappush(heap, (gen + 1, child))
