"""設定ファイルの読み込みと設定値の管理。

TOML 形式の設定ファイルを読み込み、AppConfig として返す。
設定ファイルが存在しない場合はデフォルト値を使用する。
"""

from __future__ import annotations

import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

ALL_TREES = "all"


@dataclass
class ColorConfig:
    """描画色の設定（和色）。"""

    male_fill: tuple[int, int, int] = (193, 216, 236)      # 白藍（しらあい）
    female_fill: tuple[int, int, int] = (253, 239, 242)    # 桜色（さくらいろ）
    unknown_fill: tuple[int, int, int] = (245, 240, 232)   # 生成色（きなりいろ）
    marriage_line: tuple[int, int, int] = (197, 61, 67)    # 朱色（しゅいろ）
    child_line: tuple[int, int, int] = (89, 88, 87)        # 墨色（すみいろ）
    folded_border: tuple[int, int, int] = (43, 43, 43)     # 墨


@dataclass
class TreeDefinition:
    """名前付きツリー。root_ids の子孫とその配偶者が対象になる。"""

    key: str
    label: str
    root_ids: list[int] = field(default_factory=list)


@dataclass
class ViewConfig:
    """表示の既定値。"""

    default_tree: str = ALL_TREES
    generation_base: int = 0


@dataclass
class AppConfig:
    """アプリケーション全体の設定。"""

    colors: ColorConfig = field(default_factory=ColorConfig)
    view: ViewConfig = field(default_factory=ViewConfig)
    trees: dict[str, TreeDefinition] = field(default_factory=dict)

    def tree_keys(self) -> list[str]:
        """選択可能なツリーキー（"all" を含む）。"""
        return [*self.trees, ALL_TREES]


# ---------------------------------------------------------------------------
# バリデーション
# ---------------------------------------------------------------------------

_RGB_KEYS = (
    "male_fill",
    "female_fill",
    "unknown_fill",
    "marriage_line",
    "child_line",
    "folded_border",
)


def _fail(message: str) -> None:
    print(f"設定エラー: {message}", file=sys.stderr)
    sys.exit(1)


def _validate_rgb(value: object, key: str) -> tuple[int, int, int]:
    """RGB 配列値を検証し tuple[int, int, int] に変換する。"""
    if not isinstance(value, list) or len(value) != 3:
        _fail(f"{key} は [R, G, B] 形式の3要素配列で指定してください")
    for i, v in enumerate(value):  # type: ignore[arg-type]
        if not isinstance(v, int) or not (0 <= v <= 255):
            _fail(f"{key}[{i}] は 0〜255 の整数で指定してください")
    return (int(value[0]), int(value[1]), int(value[2]))  # type: ignore[index]


def _build_colors(data: dict[str, object]) -> ColorConfig:
    cfg = ColorConfig()
    for key in _RGB_KEYS:
        if key in data:
            setattr(cfg, key, _validate_rgb(data[key], f"style.colors.{key}"))
    return cfg


def _build_view(data: dict[str, object]) -> ViewConfig:
    cfg = ViewConfig()
    if "default_tree" in data:
        val = data["default_tree"]
        if not isinstance(val, str) or not val:
            _fail("view.default_tree は文字列で指定してください")
        cfg.default_tree = val  # type: ignore[assignment]
    if "generation_base" in data:
        val = data["generation_base"]
        if isinstance(val, bool) or val not in (0, 1):
            _fail("view.generation_base は 0 または 1 で指定してください")
        cfg.generation_base = val  # type: ignore[assignment]
    return cfg


def _build_trees(data: dict[str, object]) -> dict[str, TreeDefinition]:
    trees: dict[str, TreeDefinition] = {}
    for key, body in data.items():
        if key == ALL_TREES:
            _fail(f"trees.{ALL_TREES} は予約されたキーです")
        if not isinstance(body, dict):
            _fail(f"trees.{key} はテーブルで指定してください")
        root_ids = body.get("root_ids", [])  # type: ignore[union-attr]
        if not isinstance(root_ids, list) or not all(
            isinstance(r, int) and not isinstance(r, bool) for r in root_ids
        ):
            _fail(f"trees.{key}.root_ids は整数の配列で指定してください")
        label = body.get("label", key)  # type: ignore[union-attr]
        if not isinstance(label, str):
            _fail(f"trees.{key}.label は文字列で指定してください")
        trees[key] = TreeDefinition(key=key, label=label, root_ids=list(root_ids))
    return trees


# ---------------------------------------------------------------------------
# ロード
# ---------------------------------------------------------------------------


def load_config(path: Path | None) -> AppConfig:
    """設定ファイルを読み込んで AppConfig を返す。

    Args:
        path: 設定ファイルのパス。None の場合はカレントディレクトリの
              config.toml を探索し、存在しなければデフォルト値を使用する。

    Returns:
        AppConfig オブジェクト。
    """
    config_path = path if path is not None else Path("config.toml")

    if not config_path.exists():
        return AppConfig()

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            _fail(f"{config_path} を読み込めません: {e}")

    app_config = AppConfig()

    style: dict[str, object] = data.get("style", {})  # type: ignore[assignment]
    if isinstance(style, dict):
        colors = style.get("colors")
        if isinstance(colors, dict):
            app_config.colors = _build_colors(colors)  # type: ignore[arg-type]

    view = data.get("view")
    if isinstance(view, dict):
        app_config.view = _build_view(view)

    trees = data.get("trees")
    if isinstance(trees, dict):
        app_config.trees = _build_trees(trees)

    if app_config.view.default_tree not in app_config.tree_keys():
        _fail(f"view.default_tree に未定義のツリーが指定されています: {app_config.view.default_tree}")

    return app_config
