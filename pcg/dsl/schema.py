"""
DSL スキーマ定義 — ステップ / シナリオモデル

記録・カタログ・コード生成・再実行で共有する正規のステップ表現を
Pydantic v2 モデルとして定義する。

ステップ種別:
  - login: ユーザー名 / パスワード入力と送信
  - navigation / action / click: 要素クリック（navigation は URL 遷移も可）
  - fill / select / check / uncheck: 入力要素の変更

kind は文字列として保持し、未定義の種別も受け付ける。
未定義種別の扱いはコード生成側・実行側がそれぞれ決める。
"""

from __future__ import annotations

import enum
from types import MappingProxyType
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


# ---------------------------------------------------------------------------
# ステップ種別
# ---------------------------------------------------------------------------

class StepKind(str, enum.Enum):
    """既知のステップ種別。"""

    LOGIN = "login"
    NAVIGATION = "navigation"
    ACTION = "action"
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    CHECK = "check"
    UNCHECK = "uncheck"


KNOWN_KINDS: frozenset[str] = frozenset(k.value for k in StepKind)

# クリック系（selector をクリックし、expectedText を待機する）
CLICK_KINDS: frozenset[str] = frozenset({"navigation", "action", "click"})

# 入力系（selector に対して payload を反映する）
INPUT_KINDS: frozenset[str] = frozenset({"fill", "select", "check", "uncheck"})

# login ステップの既定セレクタ
DEFAULT_USERNAME_SELECTOR = 'input[name="username"]'
DEFAULT_PASSWORD_SELECTOR = 'input[name="password"]'
DEFAULT_SUBMIT_SELECTOR = 'button[type="submit"]'

# login ステップの既定資格情報（テストデータ・payload のどちらにもない場合）
DEFAULT_USERNAME = "testuser"
DEFAULT_PASSWORD = "testpass"


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, MappingProxyType):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# ステップ
# ---------------------------------------------------------------------------

class Step(BaseModel):
    """1つの操作または検証を表すステップ。

    payload は種別ごとのデータを持つ（login: username / password,
    fill / select: value, navigation: url）。未知のキーは無視される。
    timestamp はセッション内の順序付けにのみ使用し、同一性には使わない。
    """

    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., description="ステップ種別")
    description: str = Field(..., min_length=1, description="表示用ラベル")
    selector: Optional[str] = Field(default=None, description="対象要素のセレクタ")
    payload: dict[str, Any] = Field(
        default_factory=dict, validate_default=True, description="種別ごとのデータ"
    )
    expectedText: Optional[str] = Field(
        default=None, description="実行後に表示されるべきテキスト"
    )
    timestamp: int = Field(default=0, ge=0, description="セッション内の順序キー")

    @field_validator("kind")
    @classmethod
    def normalize_kind(cls, v: str) -> str:
        """kind を小文字に正規化する。"""
        v = v.strip().lower()
        if not v:
            raise ValueError("kind は空にできません")
        return v

    @field_validator("payload", mode="after")
    @classmethod
    def freeze_payload(cls, v: dict[str, Any]) -> Any:
        """payload を読み取り専用にする（入れ子の dict / list も含む）。"""
        return _freeze(v)

    @field_serializer("payload")
    def dump_payload(self, v: Any) -> dict[str, Any]:
        return _thaw(v)

    @model_validator(mode="after")
    def check_selector(self) -> Step:
        """既知種別の selector 必須条件を検証する。

        navigation は payload に url があれば selector なしを許可する。
        未知種別は検証しない。
        """
        if self.kind not in KNOWN_KINDS or self.selector:
            return self
        if self.kind == StepKind.NAVIGATION.value and self.payload.get("url"):
            return self
        raise ValueError(f"'{self.kind}' ステップには selector が必要です")

    @property
    def is_known(self) -> bool:
        """既知の種別かどうかを返す。"""
        return self.kind in KNOWN_KINDS

    @property
    def url(self) -> Optional[str]:
        """navigation の遷移先 URL を返す。"""
        url = self.payload.get("url")
        return str(url) if url else None

    @property
    def value(self) -> str:
        """fill / select の入力値を返す。"""
        value = self.payload.get("value")
        return "" if value is None else str(value)


def resolve_login_selectors(step: Step) -> tuple[str, str, str]:
    """login ステップのユーザー名 / パスワード / 送信ボタンのセレクタを決定する。

    selector は "ユーザー名, パスワード" のカンマ区切りを許可する。
    payload の usernameSelector / passwordSelector / submitSelector が優先される。

    Args:
        step: login ステップ

    Returns:
        (ユーザー名セレクタ, パスワードセレクタ, 送信セレクタ) のタプル
    """
    parts = [p.strip() for p in (step.selector or "").split(",") if p.strip()]
    username = parts[0] if parts else DEFAULT_USERNAME_SELECTOR
    password = parts[1] if len(parts) > 1 else DEFAULT_PASSWORD_SELECTOR

    payload = step.payload
    return (
        str(payload.get("usernameSelector") or username),
        str(payload.get("passwordSelector") or password),
        str(payload.get("submitSelector") or DEFAULT_SUBMIT_SELECTOR),
    )


# ---------------------------------------------------------------------------
# シナリオ
# ---------------------------------------------------------------------------

class Scenario(BaseModel):
    """名前付きの不変なステップ列。

    記録セッションの停止、またはカタログの読み込みで生成される。
    生成後に変更されることはない。
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="シナリオ名")
    steps: tuple[Step, ...] = Field(default=(), description="順序付きステップ列")
    targetUrl: Optional[str] = Field(default=None, description="記録開始 URL")

    def to_wire(self) -> dict[str, Any]:
        """境界レスポンス用の辞書に変換する。"""
        return self.model_dump(mode="json", exclude_none=True)
