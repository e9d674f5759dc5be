"""
カタログパーサー — シナリオカタログ YAML の読み込み・書き出し

ruamel.yaml を使用してドメインごとのシナリオカタログを読み書きし、
ScenarioRegistry へのシード（事前登録）を行う。

カタログ形式（<domain>.yaml）:

    domain: saucedemo.com          # 省略時はファイル名（拡張子除く）
    url: https://www.saucedemo.com # 省略時は https://<domain>
    scenarios:
      - name: Login Flow
        steps:
          - kind: login
            description: Login with valid credentials
            selector: "#user-name, #password"
            payload: {username: standard_user, password: secret_sauce}
            expectedText: Products
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..core.scenarios import ScenarioRegistry, normalize_domain
from .schema import Scenario

logger = logging.getLogger(__name__)

CATALOG_SUFFIXES = (".yaml", ".yml")


class CatalogParser:
    """シナリオカタログの読み込み・書き出しを担当するパーサー。"""

    def __init__(self) -> None:
        """ruamel.yaml インスタンスを初期化する。"""
        self._yaml = YAML()
        self._yaml.preserve_quotes = True
        self._yaml.default_flow_style = False

    # ----- load -----

    def load(self, path: Path) -> tuple[str, list[Scenario]]:
        """カタログ YAML を読み込み、ドメインキーとシナリオ一覧を返す。

        Args:
            path: 読み込む YAML ファイルのパス

        Returns:
            (ドメインキー, シナリオ一覧) のタプル

        Raises:
            FileNotFoundError: ファイルが存在しない場合
            ValueError: YAML 構文エラーまたはスキーマ検証エラーの場合
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"カタログファイルが見つかりません: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = self._yaml.load(f)
        except YAMLError as e:
            line_info = ""
            if hasattr(e, "problem_mark") and e.problem_mark is not None:
                mark = e.problem_mark
                line_info = f" (行 {mark.line + 1}, 列 {mark.column + 1})"
            raise ValueError(f"YAML 構文エラー{line_info}: {e}") from e

        if data is None:
            raise ValueError(f"カタログファイルが空です: {path}")

        plain = _to_plain(data)
        if not isinstance(plain, dict):
            raise ValueError(f"カタログのトップレベルはマッピングである必要があります: {path}")

        domain = normalize_domain(str(plain.get("domain") or _catalog_stem(path)))
        if not domain:
            raise ValueError(f"カタログのドメインを決定できません: {path}")
        url = str(plain.get("url") or f"https://{domain}")

        raw_scenarios = plain.get("scenarios") or []
        if not isinstance(raw_scenarios, list):
            raise ValueError(f"scenarios はリストである必要があります: {path}")

        scenarios: list[Scenario] = []
        for index, raw in enumerate(raw_scenarios):
            if not isinstance(raw, dict):
                raise ValueError(f"scenarios[{index}] はマッピングである必要があります: {path}")
            raw.setdefault("targetUrl", url)
            try:
                scenarios.append(Scenario(**raw))
            except PydanticValidationError as e:
                raise ValueError(f"スキーマ検証エラー (scenarios[{index}]): {e}") from e

        return domain, scenarios

    # ----- seed -----

    def seed(self, registry: ScenarioRegistry, path: Path) -> int:
        """カタログのシナリオをレジストリに登録し、登録件数を返す。"""
        domain, scenarios = self.load(path)
        for scenario in scenarios:
            registry.add_scenario(domain, scenario)
        logger.info("カタログを読み込みました: %s（%s, %d 件）", path, domain, len(scenarios))
        return len(scenarios)

    def seed_dir(self, registry: ScenarioRegistry, directory: Path) -> int:
        """ディレクトリ内の全カタログをレジストリに登録する。

        ディレクトリが存在しない場合は何もしない。

        Returns:
            登録したシナリオの総数
        """
        directory = Path(directory)
        if not directory.is_dir():
            logger.debug("カタログディレクトリがありません: %s", directory)
            return 0

        total = 0
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() in CATALOG_SUFFIXES and path.is_file():
                total += self.seed(registry, path)
        return total

    # ----- dump -----

    def dump(
        self,
        domain: str,
        scenarios: Iterable[Scenario],
        path: Path,
        url: Optional[str] = None,
    ) -> None:
        """シナリオ一覧をカタログ YAML に書き出す。

        Args:
            domain: ドメインキー
            scenarios: 書き出すシナリオ
            path: 出力先の YAML ファイルパス
            url: カタログ既定の URL
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data: dict[str, Any] = {"domain": normalize_domain(domain)}
        if url:
            data["url"] = url
        data["scenarios"] = [_scenario_to_dict(s) for s in scenarios]

        with open(path, "w", encoding="utf-8") as f:
            self._yaml.dump(data, f)

    def append_scenario(self, path: Path, domain: str, scenario: Scenario) -> None:
        """既存カタログ（なければ新規）の末尾にシナリオを追記する。"""
        path = Path(path)
        url: Optional[str] = None
        scenarios: list[Scenario] = []
        if path.exists():
            _, scenarios = self.load(path)
            with open(path, "r", encoding="utf-8") as f:
                existing = _to_plain(self._yaml.load(f)) or {}
            if isinstance(existing, dict) and existing.get("url"):
                url = str(existing["url"])
        scenarios.append(scenario)
        self.dump(domain, scenarios, path, url=url)
        logger.info("カタログにシナリオを追記しました: %s / %s", path, scenario.name)


def catalog_path(catalog_dir: Path, domain: str) -> Path:
    """ドメインに対応するカタログファイルのパスを返す。"""
    return Path(catalog_dir) / f"{normalize_domain(domain)}.yaml"


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def _catalog_stem(path: Path) -> str:
    # "saucedemo.com.yaml" → "saucedemo.com"
    name = path.name
    for suffix in CATALOG_SUFFIXES:
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return path.stem


def _scenario_to_dict(scenario: Scenario) -> dict[str, Any]:
    data: dict[str, Any] = {"name": scenario.name}
    if scenario.targetUrl:
        data["targetUrl"] = scenario.targetUrl
    data["steps"] = [
        step.model_dump(mode="json", exclude_defaults=True) for step in scenario.steps
    ]
    return data


def _to_plain(data: object) -> object:
    """ruamel.yaml の CommentedMap/CommentedSeq を通常の dict/list に再帰変換する。"""
    if isinstance(data, dict):
        return {key: _to_plain(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_to_plain(item) for item in data]
    return data
