"""
MCP サーバー設定 — 環境変数・CLI 引数からの設定読み込み

環境変数または CLI 引数で MCP サーバーの動作を制御する。
CLI 引数 > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  PCG_HEADED              : シナリオ実行時のブラウザ表示（true/false, デフォルト: false）
  PCG_ARTIFACTS_DIR       : 成果物ディレクトリ（デフォルト: artifacts）
  PCG_TESTS_DIR           : 生成スクリプトの出力先（デフォルト: generated）
  PCG_CATALOG_DIR         : シナリオカタログディレクトリ（デフォルト: catalogs）
  PCG_STEP_TIMEOUT        : ステップ待機タイムアウト ms（デフォルト: 30000）
  PCG_NAVIGATION_TIMEOUT  : 遷移タイムアウト ms（デフォルト: 30000）
  PCG_NAVIGATION_ATTEMPTS : 遷移の最大試行回数（デフォルト: 3）
  PCG_TEST_DATA           : テストデータセットファイル（デフォルト: なし）
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..core.runner import RunnerConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数 → ServerConfig フィールド
# ---------------------------------------------------------------------------

_ENV_FIELDS = {
    "PCG_HEADED": "headed",
    "PCG_ARTIFACTS_DIR": "artifacts_dir",
    "PCG_TESTS_DIR": "tests_dir",
    "PCG_CATALOG_DIR": "catalog_dir",
    "PCG_STEP_TIMEOUT": "step_timeout",
    "PCG_NAVIGATION_TIMEOUT": "navigation_timeout",
    "PCG_NAVIGATION_ATTEMPTS": "navigation_attempts",
    "PCG_TEST_DATA": "test_data_file",
}

_INT_FIELDS = frozenset({"step_timeout", "navigation_timeout", "navigation_attempts"})


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class ServerConfig:
    """MCP サーバーの実行時設定。

    Attributes:
        headed: シナリオ実行時のブラウザ表示モード（True=表示, False=ヘッドレス）
        artifacts_dir: 成果物ディレクトリパス
        tests_dir: 生成スクリプトの出力先
        catalog_dir: シナリオカタログディレクトリ
        step_timeout: ステップ待機タイムアウト（ミリ秒）
        navigation_timeout: 遷移タイムアウト（ミリ秒）
        navigation_attempts: 遷移の最大試行回数
        test_data_file: コード生成用テストデータセットのファイル（None で組み込みのみ）
    """

    headed: bool = False
    artifacts_dir: str = "artifacts"
    tests_dir: str = "generated"
    catalog_dir: str = "catalogs"
    step_timeout: int = 30_000
    navigation_timeout: int = 30_000
    navigation_attempts: int = 3
    test_data_file: Optional[str] = None

    def runner_config(self) -> RunnerConfig:
        """Runner 用の実行設定に変換する。"""
        return RunnerConfig(
            headed=self.headed,
            navigation_attempts=self.navigation_attempts,
            navigation_timeout=self.navigation_timeout,
            step_timeout=self.step_timeout,
            base_artifacts_dir=Path(self.artifacts_dir),
        )


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    """文字列を bool に変換する（"true", "1", "yes" → True）。"""
    return value.lower() in ("true", "1", "yes")


def _parse_positive_int(key: str, raw: str, default: int) -> int:
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s の値が不正です: %s", key, raw)
        return default
    if value <= 0:
        logger.warning("%s は正の整数である必要があります: %s", key, raw)
        return default
    return value


def load_config_from_env() -> ServerConfig:
    """環境変数から ServerConfig を生成する。未設定の項目はデフォルト値のまま。"""
    config = ServerConfig()

    for key, field_name in _ENV_FIELDS.items():
        raw = os.environ.get(key)
        if raw is None:
            continue
        if field_name == "headed":
            config.headed = _parse_bool(raw)
        elif field_name in _INT_FIELDS:
            setattr(config, field_name, _parse_positive_int(key, raw, getattr(config, field_name)))
        else:
            setattr(config, field_name, raw)

    logger.info("設定を読み込みました: %s", config)
    return config


def build_cli_parser():
    """CLI 引数パーサーを構築する。

    Returns:
        argparse.ArgumentParser インスタンス
    """
    import argparse

    parser = argparse.ArgumentParser(
        description="pcg MCP Server - record, generate and replay Playwright scenarios",
    )
    parser.add_argument(
        "--headless", action="store_true", default=None,
        help="Run scenarios in headless mode (default)",
    )
    parser.add_argument(
        "--headed", action="store_true", default=None,
        help="Run scenarios with a visible browser window",
    )
    parser.add_argument(
        "--artifacts-dir", type=str, default=None,
        help="Artifacts output directory (default: artifacts)",
    )
    parser.add_argument(
        "--tests-dir", type=str, default=None,
        help="Directory for generated test scripts (default: generated)",
    )
    parser.add_argument(
        "--catalog-dir", type=str, default=None,
        help="Scenario catalog directory (default: catalogs)",
    )
    parser.add_argument(
        "--step-timeout", type=int, default=None,
        help="Per-step wait timeout in ms (default: 30000)",
    )
    parser.add_argument(
        "--test-data", dest="test_data_file", type=str, default=None,
        help="YAML / JSON file with named test data sets for code generation",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", default=False,
        help="Enable debug logging",
    )
    return parser


def apply_cli_args(config: ServerConfig, args: Any) -> ServerConfig:
    """CLI 引数を ServerConfig に適用する。

    指定された引数だけを上書きする。``--headed`` と ``--headless`` の
    両方があれば ``--headed`` を採る。

    Args:
        config: 環境変数から読み込み済みの設定
        args: argparse の解析結果
    """
    if getattr(args, "headed", None):
        config.headed = True
    elif getattr(args, "headless", None):
        config.headed = False

    for field_name in ("artifacts_dir", "tests_dir", "catalog_dir", "test_data_file"):
        value = getattr(args, field_name, None)
        if value is not None:
            setattr(config, field_name, value)

    step_timeout = getattr(args, "step_timeout", None)
    if step_timeout is not None and step_timeout <= 0:
        logger.warning("--step-timeout は正の整数である必要があります: %s", step_timeout)
    elif step_timeout is not None:
        config.step_timeout = step_timeout

    return config
