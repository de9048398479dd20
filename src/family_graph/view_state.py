"""選択中ツリーの折りたたみ状態と世代マップを管理する。

折りたたみは描画上の状態であり、ストアやグラフからデータを取り除くことはない。
ツリーを切り替えると状態はすべて破棄される。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from family_graph.config import ALL_TREES
from family_graph.errors import NotFoundError
from family_graph.generations import GenerationMap
from family_graph.graph_builder import FamilyGraph
from family_graph.models import Person

logger = logging.getLogger(__name__)


@dataclass
class TreeNode:
    """描画用の森の1ノード。配偶者は同じカードに並べて表示する想定。"""

    person: Person
    generation: int
    folded: bool = False
    spouse: Person | None = None
    spouse_generation: int | None = None
    children: list[TreeNode] = field(default_factory=list)

    @property
    def person_id(self) -> int:
        return self.person.id

    def descendant_count(self) -> int:
        return sum(1 + child.descendant_count() for child in self.children)

    @property
    def hidden_count(self) -> int:
        """折りたたみによって隠れている子孫ノードの数。"""
        return self.descendant_count() if self.folded else 0

    def iter_visible(self) -> Iterator[TreeNode]:
        yield self
        if not self.folded:
            for child in self.children:
                yield from child.iter_visible()


class ViewState:
    """ツリーキーごとの折りたたみ状態。"""

    def __init__(self, tree_key: str = ALL_TREES) -> None:
        self.tree_key = tree_key
        self._folded: set[int] = set()
        self.graph: FamilyGraph | None = None
        self.generations: GenerationMap | None = None

    @property
    def folded(self) -> frozenset[int]:
        return frozenset(self._folded)

    def attach(self, graph: FamilyGraph, generations: GenerationMap) -> None:
        """再構築したグラフと世代マップを受け取る。

        折りたたみ状態は保持し、グラフから消えた人物の分だけ取り除く。
        """
        self.graph = graph
        self.generations = generations
        self._folded &= set(graph.persons)

    def reset_for_tree(self, tree_key: str) -> None:
        if tree_key != self.tree_key:
            logger.debug("ツリーを切り替えました: %s -> %s", self.tree_key, tree_key)
        self.tree_key = tree_key
        self._folded.clear()
        self.graph = None
        self.generations = None

    def is_folded(self, person_id: int) -> bool:
        return person_id in self._folded

    def set_folded(self, person_id: int, folded: bool) -> None:
        self._check_known(person_id)
        if folded:
            self._folded.add(person_id)
        else:
            self._folded.discard(person_id)

    def toggle_fold(self, person_id: int) -> bool:
        """指定ノードだけの状態を反転し、反転後の状態を返す。"""
        folded = not self.is_folded(person_id)
        self.set_folded(person_id, folded)
        return folded

    def collapse_all(self) -> None:
        """子を持つノードをすべて折りたたむ。"""
        graph = self._require_graph()
        self._folded = {pid for pid, kids in graph.children.items() if kids}

    def expand_all(self) -> None:
        self._folded.clear()

    def forest(self) -> list[TreeNode]:
        """世代と折りたたみ状態を持つ描画用の森を返す。

        嫁入り/婿入りした配偶者は自分のノードを持たず、相手のノードの spouse
        として現れる。複数の親経路を持つ子は、世代が最も小さく ID が最も小さい
        親のノードの下に1回だけ置く。両家に親を持つ夫婦は両方の親の下に現れる。
        """
        graph = self._require_graph()
        generations = self.generations
        assert generations is not None

        def owner(pid: int) -> int:
            if pid in graph.married_in:
                return graph.spouses[pid]
            return pid

        placed: dict[int, list[int]] = {}
        for child, parent_ids in graph.parents.items():
            if not parent_ids:
                continue
            owners = {owner(p) for p in parent_ids}
            primary = min(owners, key=lambda o: (generations[o], o))
            placed.setdefault(primary, []).append(child)

        def make_node(pid: int) -> TreeNode:
            spouse_id = graph.get_spouse(pid)
            node = TreeNode(
                person=graph.persons[pid],
                generation=generations[pid],
                folded=self.is_folded(pid),
                spouse=graph.persons[spouse_id] if spouse_id is not None else None,
                spouse_generation=generations[spouse_id] if spouse_id is not None else None,
            )
            node.children = [make_node(c) for c in sorted(placed.get(pid, []))]
            return node

        return [make_node(root) for root in graph.roots]

    def _check_known(self, person_id: int) -> None:
        if self.graph is not None and person_id not in self.graph:
            raise NotFoundError(person_id)

    def _require_graph(self) -> FamilyGraph:
        if self.graph is None:
            raise RuntimeError("グラフが未構築です。attach() を先に呼んでください")
        return self.graph
