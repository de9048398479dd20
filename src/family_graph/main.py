import logging
from pathlib import Path

import click

from family_graph.config import load_config
from family_graph.errors import FamilyGraphError
from family_graph.formats import codec_for_path
from family_graph.renderer import build_dot, render_graph
from family_graph.session import FamilyTreeSession

_CONFIG_OPTION = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, readable=True),
    default=None,
    help="設定ファイルのパス（省略時はカレントディレクトリの config.toml を自動検索）",
)

_INPUT_OPTION = click.option(
    "--input",
    "input_path",
    required=True,
    type=click.Path(exists=True, file_okay=True, dir_okay=False, readable=True),
    help="入力ファイルパス（.json / .csv / .ged）",
)

_SHEETS_OPTION = click.option(
    "--sheets",
    is_flag=True,
    default=False,
    help="CSV を Google スプレッドシート形式として扱う",
)


def _format_name(path: str, sheets: bool) -> str:
    codec = codec_for_path(path)
    if sheets and codec.name == "csv":
        return "sheets"
    return codec.name


def _open_session(input_path: str, config_path: str | None, sheets: bool = False) -> FamilyTreeSession:
    config = load_config(Path(config_path) if config_path else None)
    session = FamilyTreeSession(config=config)
    try:
        fmt = _format_name(input_path, sheets)
        session.import_bytes(Path(input_path).read_bytes(), fmt)
    except FamilyGraphError as e:
        raise click.ClickException(str(e))
    return session


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="デバッグログを表示する")
def cli(verbose: bool) -> None:
    """家系図データの変換・閲覧CLIアプリケーション"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
@_INPUT_OPTION
@click.option("--output", "output_path", required=True, help="出力ファイルパス")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["png", "svg"]),
    default=None,
    help="出力形式（省略時は出力ファイルの拡張子から判定）",
)
@click.option("--tree", "tree_key", default=None, help="表示するツリーのキー（省略時は設定の default_tree）")
@click.option("--root", "root_id", type=int, default=None, help="指定した人物を頂点とするツリーを表示する")
@click.option("--fold", "fold_ids", type=int, multiple=True, help="折りたたむ人物ID（複数指定可）")
@click.option("--collapse-all", is_flag=True, default=False, help="子を持つノードをすべて折りたたむ")
@_SHEETS_OPTION
@_CONFIG_OPTION
def render(
    input_path: str,
    output_path: str,
    fmt: str | None,
    tree_key: str | None,
    root_id: int | None,
    fold_ids: tuple[int, ...],
    collapse_all: bool,
    sheets: bool,
    config_path: str | None,
) -> None:
    """家系図を画像として出力する"""
    session = _open_session(input_path, config_path, sheets)
    try:
        if root_id is not None:
            session.view_person_tree(root_id)
        elif tree_key is not None:
            session.select_tree(tree_key)
        if collapse_all:
            session.collapse_all()
        for pid in fold_ids:
            session.toggle_fold(pid)
        dot = build_dot(session.forest(), session.config.colors)
        result = render_graph(dot, output_path, fmt=fmt)
    except FamilyGraphError as e:
        raise click.ClickException(str(e))

    click.echo(f"出力しました: {result}")


@cli.command()
@_INPUT_OPTION
@click.option("--output", "output_path", required=True, help="出力ファイルパス（.json / .csv / .ged）")
@click.option("--tree", "tree_key", default=None, help="指定したツリーだけを出力する")
@click.option("--sheets-in", is_flag=True, default=False, help="入力 CSV を Google スプレッドシート形式として扱う")
@click.option("--sheets-out", is_flag=True, default=False, help="Google スプレッドシート形式の CSV を出力する")
@_CONFIG_OPTION
def convert(
    input_path: str,
    output_path: str,
    tree_key: str | None,
    sheets_in: bool,
    sheets_out: bool,
    config_path: str | None,
) -> None:
    """家系データを別の形式に変換する"""
    session = _open_session(input_path, config_path, sheets_in)
    try:
        fmt = _format_name(output_path, sheets_out)
        data = session.export(fmt, tree_key=tree_key)
    except FamilyGraphError as e:
        raise click.ClickException(str(e))

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    click.echo(f"出力しました: {output}")


@cli.command()
@_INPUT_OPTION
@click.argument("person_a", type=int)
@click.argument("person_b", type=int)
@_SHEETS_OPTION
@_CONFIG_OPTION
def relation(input_path: str, person_a: int, person_b: int, sheets: bool, config_path: str | None) -> None:
    """PERSON_A が PERSON_B から見て何にあたるかを表示する"""
    session = _open_session(input_path, config_path, sheets)
    try:
        result = session.resolve(person_a, person_b)
    except FamilyGraphError as e:
        raise click.ClickException(str(e))
    a = session.store.get(person_a)
    b = session.store.get(person_b)
    click.echo(f"{a.name} は {b.name} の {result.gendered_label} です")
    for step in result.path:
        click.echo(f"  {step.from_id} -[{step.edge}]-> {step.to_id}")


@cli.command()
@_INPUT_OPTION
@click.argument("person_id", type=int)
@_SHEETS_OPTION
@_CONFIG_OPTION
def show(input_path: str, person_id: int, sheets: bool, config_path: str | None) -> None:
    """人物の詳細（親・配偶者・兄弟姉妹・子）を表示する"""
    session = _open_session(input_path, config_path, sheets)
    try:
        detail = session.person_detail(person_id)
    except FamilyGraphError as e:
        raise click.ClickException(str(e))

    person = detail.person
    click.echo(f"{person.id}: {person.name}")
    if person.birth_date or person.death_date:
        click.echo(f"  生没: {person.birth_date or '?'} - {person.death_date or ''}")
    if detail.generation is not None:
        click.echo(f"  世代: {detail.generation}")
    sections = (
        ("親", detail.parents),
        ("配偶者", [detail.spouse] if detail.spouse else []),
        ("兄弟姉妹", detail.siblings),
        ("子", detail.children),
    )
    for title, people in sections:
        if people:
            click.echo(f"  {title}: " + ", ".join(f"{p.name} ({p.id})" for p in people))
    if person.notes:
        click.echo(f"  備考: {person.notes}")


@cli.command()
@_INPUT_OPTION
@click.option("--tree", "tree_key", default=None, help="対象のツリーのキー")
@_SHEETS_OPTION
@_CONFIG_OPTION
def generations(input_path: str, tree_key: str | None, sheets: bool, config_path: str | None) -> None:
    """世代ごとの人物一覧を表示する"""
    session = _open_session(input_path, config_path, sheets)
    try:
        if tree_key is not None:
            session.select_tree(tree_key)
        groups = session.generations.by_generation()
    except FamilyGraphError as e:
        raise click.ClickException(str(e))

    for gen, ids in groups.items():
        names = ", ".join(session.store.get(pid).name for pid in ids)
        click.echo(f"第{gen}世代: {names}")


@cli.command()
@_INPUT_OPTION
@_SHEETS_OPTION
@_CONFIG_OPTION
def check(input_path: str, sheets: bool, config_path: str | None) -> None:
    """データの欠陥（片側だけの配偶者リンク、存在しない親、循環参照）を表示する"""
    session = _open_session(input_path, config_path, sheets)
    diagnostics = session.diagnostics()
    for diag in diagnostics:
        click.echo(f"[{diag.kind}] {diag.detail}")
    conflicts = session.generations.conflicts
    for conflict in conflicts:
        click.echo(
            f"[generation_conflict] ID {conflict.person_id}: "
            f"{conflict.assigned} 世代 (親 {conflict.via_parent} から見ると {conflict.parent_generation + 1} 世代)"
        )
    mismatches = session.generations.spouse_mismatches
    for mismatch in mismatches:
        click.echo(
            f"[spouse_generation] ID {mismatch.person_id} ({mismatch.generation} 世代) と "
            f"配偶者 {mismatch.spouse_id} ({mismatch.spouse_generation} 世代) の世代が異なります"
        )
    if not diagnostics and not conflicts and not mismatches:
        click.echo("問題は見つかりませんでした")


@cli.command()
@_INPUT_OPTION
@click.argument("query")
@_SHEETS_OPTION
@_CONFIG_OPTION
def search(input_path: str, query: str, sheets: bool, config_path: str | None) -> None:
    """名前の部分一致で人物を検索する"""
    session = _open_session(input_path, config_path, sheets)
    for person in session.search(query):
        click.echo(f"{person.id}: {person.name}")
