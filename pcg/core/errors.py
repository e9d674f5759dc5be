"""
エラー定義 — 記録・レジストリ・実行エンジン共通の例外階層

各例外は境界（MCP ツール / HTTP 相当の呼び出し元）へ返すステータスコードを
status_code として保持する。

分類:
  - InvalidInputError (400): 必須項目の欠落・不正な URL。リトライしない
  - NotFoundError (404): 未知のセッション・シナリオ・ドメイン
  - SessionNotActiveError (409): 停止済みセッションへの書き込み
  - NavigationError: リトライ上限到達。シナリオ単位の失敗として結果に格納
  - StepFailure: ステップ単位の失敗として結果に格納
"""

from __future__ import annotations


class PcgError(Exception):
    """pcg の全例外の基底クラス。"""

    status_code: int = 500


class InvalidInputError(PcgError):
    """必須入力が欠落している、または形式が不正な場合のエラー。"""

    status_code = 400


class MalformedUrlError(InvalidInputError):
    """URL を絶対 http(s) URL に正規化できない場合のエラー。"""


class NotFoundError(PcgError):
    """対象が存在しない場合のエラー。"""

    status_code = 404


class SessionNotFoundError(NotFoundError):
    """アクティブな記録セッションが見つからない場合のエラー。"""


class ScenarioNotFoundError(NotFoundError):
    """ドメイン内に指定名のシナリオが存在しない場合のエラー。"""


class NoScenariosFoundError(NotFoundError):
    """ドメインにシナリオが1件も登録されていない場合のエラー。"""


class SessionNotActiveError(PcgError):
    """停止済みのセッションにステップを追加しようとした場合のエラー。"""

    status_code = 409


class NavigationError(PcgError):
    """リトライ上限まで遷移に失敗した場合のエラー。"""

    def __init__(self, url: str, attempts: int, last_error: Exception) -> None:
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(str(last_error))


class StepFailure(PcgError):
    """ステップ実行（セレクタ待機・操作・事後条件）に失敗した場合のエラー。"""
