"""家系グラフで使う例外の定義。

グラフ自体の欠陥（宙に浮いた親参照、片側だけの配偶者リンクなど）は
例外にせず診断情報として扱う。ここにあるのは呼び出し側に返すべき失敗だけ。
"""

from __future__ import annotations


class FamilyGraphError(Exception):
    """family_graph の全例外の基底クラス。"""


class DuplicateIdError(FamilyGraphError):
    """同じ ID の人物がすでに存在する。"""

    def __init__(self, person_id: int) -> None:
        super().__init__(f"IDが重複しています: {person_id}")
        self.person_id = person_id


class NotFoundError(FamilyGraphError, KeyError):
    """指定された ID の人物が存在しない。"""

    def __init__(self, person_id: object) -> None:
        super().__init__(f"人物が見つかりません: {person_id}")
        self.person_id = person_id

    def __str__(self) -> str:
        # KeyError は引数を repr するため上書きする
        return str(self.args[0])


class UnknownTreeError(NotFoundError):
    """設定にないツリーキーが指定された。"""

    def __init__(self, tree_key: str) -> None:
        FamilyGraphError.__init__(self, f"ツリーが見つかりません: {tree_key}")
        self.person_id = None
        self.tree_key = tree_key


class InvalidPersonError(FamilyGraphError, ValueError):
    """人物レコードの値が不正。"""


class CyclicReferenceError(FamilyGraphError):
    """親子関係が循環している。"""

    def __init__(self, person_ids: list[int]) -> None:
        ids = ", ".join(str(pid) for pid in person_ids)
        super().__init__(f"親子関係が循環しています: {ids}")
        self.person_ids = person_ids


class NotRelatedError(FamilyGraphError):
    """2人の間に関係の経路が存在しない。"""

    def __init__(self, a: int, b: int) -> None:
        super().__init__(f"ID {a} と ID {b} の間に関係が見つかりません")
        self.a = a
        self.b = b


class SelfRelationshipError(FamilyGraphError):
    """同一人物同士の関係を問い合わせた。"""

    def __init__(self, person_id: int) -> None:
        super().__init__(f"同一人物です: {person_id}")
        self.person_id = person_id


class CodecError(FamilyGraphError):
    """インポート・エクスポート時のエラー。"""


class MalformedJsonError(CodecError):
    """JSON の構文またはスキーマが不正。"""


class CsvParseError(CodecError):
    """CSV読み込み時のエラー。"""


class MissingRequiredColumnError(CsvParseError):
    """CSV に必須カラムがない。"""

    def __init__(self, missing: set[str]) -> None:
        super().__init__(f"必須カラムが不足しています: {', '.join(sorted(missing))}")
        self.missing = missing


class GedcomParseError(CodecError):
    """GEDCOM 読み込み時のエラー。"""


class UnsupportedGedcomVersionError(GedcomParseError):
    """ヘッダーに対応外の GEDCOM バージョンが宣言されている。"""

    def __init__(self, version: str) -> None:
        super().__init__(f"対応していない GEDCOM バージョンです: {version}")
        self.version = version


class RenderError(FamilyGraphError):
    """家系図の画像出力に失敗した。"""
