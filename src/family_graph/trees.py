from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from family_graph.config import ALL_TREES, TreeDefinition
from family_graph.errors import NotFoundError, UnknownTreeError
from family_graph.store import PersonStore


def _children_index(store: PersonStore) -> dict[int, list[int]]:
    index: dict[int, list[int]] = {}
    for person in store:
        for pid in person.parent_ids:
            if pid != person.id:
                index.setdefault(pid, []).append(person.id)
    return index


def descendant_scope(store: PersonStore, root_ids: Iterable[int]) -> set[int]:
    """root_ids とその子孫、さらに全員の配偶者を含む人物IDの集合を返す。

    ストアに存在しないルートは無視する。
    """
    children = _children_index(store)
    scope: set[int] = set()
    queue = deque(pid for pid in root_ids if pid in store)
    while queue:
        pid = queue.popleft()
        if pid in scope:
            continue
        scope.add(pid)
        queue.extend(children.get(pid, ()))

    for pid in list(scope):
        spouse_id = store.get(pid).spouse_id
        if spouse_id is not None and spouse_id in store:
            scope.add(spouse_id)
    # 片側だけのリンクで配偶者を指している人物も含める
    for person in store:
        if person.spouse_id in scope:
            scope.add(person.id)
    return scope


def tree_scope(
    store: PersonStore,
    trees: dict[str, TreeDefinition],
    tree_key: str,
) -> set[int] | None:
    """ツリーキーに対応する人物IDの集合を返す。"all" の場合は None（全員）。"""
    if tree_key == ALL_TREES:
        return None
    try:
        tree = trees[tree_key]
    except KeyError:
        raise UnknownTreeError(tree_key) from None
    return descendant_scope(store, tree.root_ids)


def person_scope(store: PersonStore, person_id: int) -> set[int]:
    """指定した人物を頂点とするツリーの人物IDの集合を返す。"""
    if person_id not in store:
        raise NotFoundError(person_id)
    return descendant_scope(store, [person_id])
