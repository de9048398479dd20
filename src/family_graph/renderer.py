from __future__ import annotations

import logging
from pathlib import Path

import graphviz

from family_graph.config import ColorConfig
from family_graph.errors import RenderError
from family_graph.models import Person, Sex
from family_graph.view_state import TreeNode

logger = logging.getLogger(__name__)

RENDER_FORMATS = ("png", "svg")


def _hex(rgb: tuple[int, int, int]) -> str:
    return "#{:02x}{:02x}{:02x}".format(*rgb)


def _get_node_color(person: Person, colors: ColorConfig) -> str:
    if person.sex is Sex.M:
        return _hex(colors.male_fill)
    if person.sex is Sex.F:
        return _hex(colors.female_fill)
    return _hex(colors.unknown_fill)


def _format_label(person: Person, generation: int, hidden: int = 0) -> str:
    lines = [person.name]
    if person.birth_date:
        lines.append(person.birth_date)
    lines.append(f"第{generation}世代")
    if hidden:
        lines.append(f"+{hidden}")
    return "\n".join(lines)


def build_dot(forest: list[TreeNode], colors: ColorConfig | None = None) -> graphviz.Digraph:
    """描画用の森から Graphviz の Digraph オブジェクトを生成する。

    折りたたまれたノードは子孫を描かず、隠れている人数を「+N」で表示する。
    """
    colors = colors or ColorConfig()
    dot = graphviz.Digraph(
        "family_graph",
        graph_attr={
            "rankdir": "TB",
            "splines": "polyline",
            "nodesep": "0.8",
            "ranksep": "1.0",
        },
        node_attr={
            "fontname": "Helvetica",
            "fontsize": "11",
            "shape": "box",
            "style": "filled,rounded",
        },
        edge_attr={
            "fontname": "Helvetica",
        },
    )

    gen_groups: dict[int, list[str]] = {}
    drawn: set[int] = set()
    couples: set[str] = set()

    def add_person(person: Person, generation: int, hidden: int = 0) -> None:
        if person.id in drawn:
            return
        drawn.add(person.id)
        attrs = {"fillcolor": _get_node_color(person, colors)}
        if hidden:
            attrs.update(color=_hex(colors.folded_border), penwidth="2", style="filled,rounded,bold")
        dot.node(str(person.id), label=_format_label(person, generation, hidden), **attrs)
        gen_groups.setdefault(generation, []).append(str(person.id))

    def visit(node: TreeNode) -> None:
        add_person(node.person, node.generation, node.hidden_count)
        anchor = str(node.person_id)

        if node.spouse is not None:
            spouse_gen = node.spouse_generation
            add_person(node.spouse, node.generation if spouse_gen is None else spouse_gen)
            couple = sorted((node.person_id, node.spouse.id))
            # 婚姻の中間ノード（不可視）
            mid_node = f"couple_{couple[0]}_{couple[1]}"
            if mid_node not in couples:
                couples.add(mid_node)
                dot.node(mid_node, label="", shape="point", width="0.01", height="0.01")
                with dot.subgraph() as s:
                    s.attr(rank="same")
                    s.node(str(couple[0]))
                    s.node(mid_node)
                    s.node(str(couple[1]))
                # 婚姻エッジ（矢印なし）
                color = _hex(colors.marriage_line)
                dot.edge(str(couple[0]), mid_node, dir="none", color=color, penwidth="2")
                dot.edge(mid_node, str(couple[1]), dir="none", color=color, penwidth="2")
            anchor = mid_node

        if node.folded:
            return
        for child in node.children:
            visit(child)
            dot.edge(anchor, str(child.person_id), color=_hex(colors.child_line))

    for root in forest:
        visit(root)

    # 世代ごとに rank を揃える
    for gen in sorted(gen_groups):
        with dot.subgraph() as s:
            s.attr(rank="same")
            for node_name in gen_groups[gen]:
                s.node(node_name)

    return dot


def render_graph(
    dot: graphviz.Digraph,
    output_path: str | Path,
    fmt: str | None = None,
) -> Path:
    """Graphviz グラフを画像ファイルとして出力する。

    Args:
        dot: build_dot() で作った Digraph
        output_path: 出力ファイルパス（例: output/tree.svg）
        fmt: "png" または "svg"。省略時は拡張子から判定する

    Returns:
        出力されたファイルのパス

    Raises:
        RenderError: 対応外の形式、または dot コマンドが見つからない
    """
    output_path = Path(output_path)
    fmt = (fmt or output_path.suffix.lstrip(".")).lower()
    if fmt not in RENDER_FORMATS:
        raise RenderError(f"対応していない出力形式です: {fmt or output_path.name}（png / svg）")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        dot.render(outfile=str(output_path), format=fmt, cleanup=True, quiet=True)
    except graphviz.ExecutableNotFound as e:
        raise RenderError("Graphviz の dot コマンドが見つかりません") from e
    logger.debug("家系図を出力しました: %s (%s)", output_path, fmt)
    return output_path
