"""
ScenarioRegistry — ドメイン単位のシナリオ保管庫

正規化したドメインをキーに、記録済み・定義済みのシナリオを
追加順で保持する。同名シナリオは上書きせず追記し、
名前検索では最後に追加されたものを返す。

排他制御:
  - ドメイン辞書自体の更新はガードロックで保護
  - ドメインごとのリスト操作はドメイン単位のロックで直列化
  - 異なるドメインへの操作は互いにブロックしない
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Optional
from urllib.parse import urlsplit

from ..dsl.schema import Scenario
from .errors import InvalidInputError, MalformedUrlError, ScenarioNotFoundError

logger = logging.getLogger(__name__)

_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")
_AUTHORITY_END = re.compile(r"[/?#]")


def normalize_url(url: str) -> str:
    """URL を絶対 http(s) URL に正規化する。

    スキームが省略されている場合は "https://" を補ってから検証する。

    Args:
        url: 対象 URL

    Returns:
        正規化済み URL

    Raises:
        MalformedUrlError: 絶対 http(s) URL として解釈できない場合
    """
    candidate = url.strip()
    if not _SCHEME_PATTERN.match(candidate):
        candidate = f"https://{candidate}"

    try:
        parsed = urlsplit(candidate)
    except ValueError as exc:
        raise MalformedUrlError(f"URL を解釈できません: {url!r}") from exc
    if (
        parsed.scheme.lower() not in ("http", "https")
        or not parsed.hostname
        or any(ch.isspace() for ch in candidate)
    ):
        raise MalformedUrlError(f"URL を解釈できません: {url!r}")
    return candidate


def normalize_domain(url: str) -> str:
    """URL からドメインキーを取り出す。

    スキームと先頭の "www." を1つだけ除去し、最初の "/" までの
    authority 部分を小文字で返す。素のドメインに対しては冪等。

    Args:
        url: 対象 URL（スキーム省略可）

    Returns:
        ドメインキー（例: "example.com"）
    """
    rest = _SCHEME_PATTERN.sub("", url.strip(), count=1)
    if rest[:4].lower() == "www.":
        rest = rest[4:]
    return _AUTHORITY_END.split(rest, maxsplit=1)[0].lower()


class ScenarioRegistry:
    """ドメインごとのシナリオ一覧を管理するレジストリ。

    使用例::

        registry = ScenarioRegistry()
        registry.add_scenario("example.com", scenario)
        latest = registry.find_by_name("https://www.example.com/", "Login Flow")
    """

    def __init__(self) -> None:
        """空のレジストリを初期化する。"""
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._scenarios: dict[str, list[Scenario]] = {}

    def _lock_for(self, domain: str, create: bool = True) -> Optional[threading.Lock]:
        # 読み取り側 (create=False) は未登録ドメインのロックを作らない
        with self._guard:
            lock = self._locks.get(domain)
            if lock is None and create:
                lock = self._locks[domain] = threading.Lock()
            return lock

    def add_scenario(self, domain: str, scenario: Scenario) -> None:
        """ドメインのシナリオ一覧に追記する（名前による重複排除はしない）。

        Args:
            domain: ドメインキーまたは URL
            scenario: 追加するシナリオ

        Raises:
            InvalidInputError: ドメインが空の場合
        """
        key = normalize_domain(domain)
        if not key:
            raise InvalidInputError("ドメインが空です")

        with self._lock_for(key):  # type: ignore[union-attr]
            self._scenarios.setdefault(key, []).append(scenario)
            count = len(self._scenarios[key])

        logger.info(
            "シナリオを登録しました: %s / %s（%d 件目）", key, scenario.name, count,
        )

    def list_scenarios(self, domain: str) -> tuple[Scenario, ...]:
        """ドメインのシナリオ一覧を追加順で返す。未知のドメインは空。"""
        key = normalize_domain(domain)
        lock = self._lock_for(key, create=False)
        if lock is None:
            return ()
        with lock:
            return tuple(self._scenarios.get(key, ()))

    def find_by_name(self, domain: str, name: str) -> Scenario:
        """名前でシナリオを検索する。同名が複数あれば最後に追加されたものを返す。

        Args:
            domain: ドメインキーまたは URL
            name: シナリオ名

        Returns:
            見つかったシナリオ

        Raises:
            ScenarioNotFoundError: 該当するシナリオがない場合
        """
        for scenario in reversed(self.list_scenarios(domain)):
            if scenario.name == name:
                return scenario
        raise ScenarioNotFoundError(
            f"シナリオ '{name}' はドメイン '{normalize_domain(domain)}' に存在しません"
        )

    def latest_by_name(self, domain: str) -> tuple[Scenario, ...]:
        """同名シナリオを最新のもの1件に絞った一覧を返す。

        並び順は各名前が最初に登録された位置に従う。
        """
        latest: dict[str, Scenario] = {}
        for scenario in self.list_scenarios(domain):
            latest[scenario.name] = scenario
        return tuple(latest.values())

    def has_scenarios(self, domain: str) -> bool:
        """ドメインに1件以上のシナリオがあるかを返す。"""
        return bool(self.list_scenarios(domain))

    @property
    def domains(self) -> list[str]:
        """登録済みドメインをソート済みリストで返す。"""
        with self._guard:
            return sorted(d for d, items in self._scenarios.items() if items)
