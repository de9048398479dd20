"""ストア・グラフ・表示状態をまとめて扱うセッション。

セッションは1つの PersonStore を所有し、選択中ツリーのグラフと世代を
ストアの revision とツリーキーで判定して必要なときだけ作り直す。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from family_graph.config import AppConfig
from family_graph.errors import NotFoundError
from family_graph.formats import get_codec
from family_graph.generations import GenerationMap, assign_generations
from family_graph.graph_builder import Diagnostic, FamilyGraph, build_graph
from family_graph.models import Person
from family_graph.relationships import RelationshipLabel, RelationshipResolver
from family_graph.store import PersonStore
from family_graph.trees import person_scope, tree_scope
from family_graph.view_state import TreeNode, ViewState

logger = logging.getLogger(__name__)

PERSON_TREE_PREFIX = "person:"


@dataclass
class PersonDetail:
    """人物詳細画面に出す情報。"""

    person: Person
    parents: list[Person]
    spouse: Person | None
    siblings: list[Person]
    children: list[Person]
    generation: int | None


class FamilyTreeSession:
    def __init__(self, store: PersonStore | None = None, config: AppConfig | None = None) -> None:
        self.store = store if store is not None else PersonStore()
        self.config = config if config is not None else AppConfig()
        self.view = ViewState(self.config.view.default_tree)
        self._person_root: int | None = None
        self._built_key: tuple[int, str] | None = None
        self._graph: FamilyGraph | None = None
        self._generations: GenerationMap | None = None
        self._full_revision: int | None = None
        self._resolver: RelationshipResolver | None = None
        # 既定ツリーのキーが正しいことを先に確認する
        self._scope()

    # ------------------------------------------------------------------
    # ツリー選択
    # ------------------------------------------------------------------

    @property
    def tree_key(self) -> str:
        return self.view.tree_key

    def select_tree(self, tree_key: str) -> None:
        """表示するツリーを切り替える。折りたたみ状態は破棄される。"""
        tree_scope(self.store, self.config.trees, tree_key)
        self._person_root = None
        self.view.reset_for_tree(tree_key)

    def view_person_tree(self, person_id: int) -> None:
        """指定した人物を頂点とするツリーに切り替える。"""
        if person_id not in self.store:
            raise NotFoundError(person_id)
        self._person_root = person_id
        self.view.reset_for_tree(f"{PERSON_TREE_PREFIX}{person_id}")

    def _scope(self) -> set[int] | None:
        if self._person_root is not None:
            return person_scope(self.store, self._person_root)
        return tree_scope(self.store, self.config.trees, self.view.tree_key)

    # ------------------------------------------------------------------
    # 構築
    # ------------------------------------------------------------------

    def _ensure_built(self) -> None:
        key = (self.store.revision, self.view.tree_key)
        if key == self._built_key and self.view.graph is not None:
            return
        graph = build_graph(self.store, self._scope())
        generations = assign_generations(graph, base=self.config.view.generation_base)
        self._graph = graph
        self._generations = generations
        self._built_key = key
        self.view.attach(graph, generations)

    @property
    def graph(self) -> FamilyGraph:
        self._ensure_built()
        assert self._graph is not None
        return self._graph

    @property
    def generations(self) -> GenerationMap:
        self._ensure_built()
        assert self._generations is not None
        return self._generations

    def forest(self) -> list[TreeNode]:
        self._ensure_built()
        return self.view.forest()

    def toggle_fold(self, person_id: int) -> bool:
        self._ensure_built()
        return self.view.toggle_fold(person_id)

    def is_folded(self, person_id: int) -> bool:
        return self.view.is_folded(person_id)

    def collapse_all(self) -> None:
        self._ensure_built()
        self.view.collapse_all()

    def expand_all(self) -> None:
        self.view.expand_all()

    def diagnostics(self) -> tuple[Diagnostic, ...]:
        """ストア全体を対象にしたデータ欠陥の一覧。"""
        return self._full_resolver().graph.diagnostics

    # ------------------------------------------------------------------
    # 問い合わせ
    # ------------------------------------------------------------------

    def _full_resolver(self) -> RelationshipResolver:
        if self._resolver is None or self._full_revision != self.store.revision:
            self._resolver = RelationshipResolver(build_graph(self.store))
            self._full_revision = self.store.revision
        return self._resolver

    def resolve(self, a: int, b: int) -> RelationshipLabel:
        """ツリーの選択に関係なく、ストア全体で続柄を求める。"""
        return self._full_resolver().resolve(a, b)

    def person_detail(self, person_id: int) -> PersonDetail:
        person = self.store.get(person_id)
        graph = self._full_resolver().graph
        if person_id not in graph:
            # 循環参照で除外された人物は関係を持たない
            return PersonDetail(person, [], None, [], [], None)

        def persons(ids: tuple[int, ...]) -> list[Person]:
            return [graph.persons[i] for i in ids]

        spouse_id = graph.get_spouse(person_id)
        return PersonDetail(
            person=person,
            parents=persons(graph.get_parents(person_id)),
            spouse=graph.persons[spouse_id] if spouse_id is not None else None,
            siblings=persons(graph.siblings(person_id)),
            children=persons(graph.get_children(person_id)),
            generation=self.generations.get(person_id),
        )

    def search(self, query: str) -> list[Person]:
        return self.store.search(query)

    # ------------------------------------------------------------------
    # 編集
    # ------------------------------------------------------------------

    def add_person(self, person: Person) -> None:
        self.store.add(person)

    def update_person(self, person_id: int, **changes: object) -> Person:
        return self.store.update(person_id, **changes)

    def delete_person(self, person_id: int) -> Person:
        return self.store.remove(person_id)

    # ------------------------------------------------------------------
    # インポート・エクスポート
    # ------------------------------------------------------------------

    def import_bytes(self, data: bytes, fmt: str) -> int:
        """データを読み込んでストアを置き換える。

        読み込みに失敗した場合はストアを変更しない。折りたたみ状態は破棄する。

        Returns:
            読み込んだ人物の数
        """
        persons = get_codec(fmt).decode(data)
        self.store.replace_all(persons)
        if self._person_root is not None and self._person_root not in self.store:
            self._person_root = None
            self.view.reset_for_tree(self.config.view.default_tree)
        else:
            self.view.reset_for_tree(self.view.tree_key)
        logger.info("%d 人を読み込みました (%s)", len(persons), fmt)
        return len(persons)

    def export(self, fmt: str, tree_key: str | None = None) -> bytes:
        """ストアを指定形式で出力する。tree_key を指定するとそのツリーだけを出力する。"""
        scope = None
        if tree_key is not None:
            scope = tree_scope(self.store, self.config.trees, tree_key)
        return get_codec(fmt).encode(self.store, scope)
