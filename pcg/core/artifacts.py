"""
ArtifactsManager — 実行成果物とテストスクリプトの保存

シナリオ実行時に生成される成果物（失敗時スクリーンショット）と、
記録停止時に生成されるテストスクリプトの保存を担当する。

主な機能:
  - create_run_dir(): 実行ディレクトリの作成
  - save_failure_screenshot(): 失敗時スクリーンショットの保存
  - write_script(): <シナリオ名>.spec.py の書き出し
  - sanitize_name(): 名前をファイル名に安全な文字列へ変換

成果物の保存失敗は警告ログのみとし、呼び出し元の処理は継続する。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w\-]")
"""ファイル名に使用できない文字を検出する正規表現。"""

_MAX_NAME_LENGTH = 100

SCRIPT_SUFFIX = ".spec.py"


def sanitize_name(name: str) -> str:
    """名前をファイル名に安全な文字列に変換する。

    英数字・ハイフン・アンダースコア以外をハイフンに置換し、連続する
    ハイフンを1つにまとめる。空になった場合は "scenario" を返す。

    Args:
        name: サニタイズ対象の名前

    Returns:
        サニタイズ済みの名前（最大 100 文字）
    """
    sanitized = _UNSAFE_CHARS.sub("-", name.strip())
    sanitized = re.sub(r"-+", "-", sanitized).strip("-")
    return sanitized[:_MAX_NAME_LENGTH] or "scenario"


@dataclass
class ArtifactsManager:
    """シナリオ実行成果物の管理クラス。

    Attributes:
        base_dir: 成果物ベースディレクトリ（デフォルト: artifacts/）
        run_dir: 実行ディレクトリ（create_run_dir() で設定される）
    """

    base_dir: Path = field(default_factory=lambda: Path("artifacts"))
    run_dir: Optional[Path] = field(default=None, init=False)

    def create_run_dir(self, timestamp: Optional[datetime] = None) -> Path:
        """実行ディレクトリを作成する。

        artifacts/run-YYYYMMDD-HHMMSS-ffffff/ 形式のディレクトリと
        screenshots/ サブディレクトリを作成する。

        Args:
            timestamp: ディレクトリ名に使用するタイムスタンプ。
                       None の場合は現在時刻を使用。

        Returns:
            作成された実行ディレクトリのパス
        """
        if timestamp is None:
            timestamp = datetime.now()

        self.run_dir = self.base_dir / f"run-{timestamp.strftime('%Y%m%d-%H%M%S-%f')}"
        (self.run_dir / "screenshots").mkdir(parents=True, exist_ok=True)

        logger.info("実行ディレクトリを作成しました: %s", self.run_dir)
        return self.run_dir

    def screenshot_path(
        self,
        scenario_name: str,
        step_index: Optional[int] = None,
        label: str = "",
    ) -> Path:
        """失敗時スクリーンショットの保存先パスを返す。

        ファイル名は <scenario>_NNNN-<label>.png 形式。step_index が None の
        場合（シナリオ単位の失敗）は <scenario>_scenario-<label>.png。

        Raises:
            RuntimeError: create_run_dir() が未実行の場合
        """
        if self.run_dir is None:
            raise RuntimeError("run_dir が未設定です。create_run_dir() を先に呼び出してください。")

        position = "scenario" if step_index is None else f"{step_index:04d}"
        stem = f"{sanitize_name(scenario_name)}_{position}"
        if label:
            stem = f"{stem}-{sanitize_name(label)}"
        return self.run_dir / "screenshots" / f"{stem}.png"

    async def save_failure_screenshot(
        self,
        page: Page,
        scenario_name: str,
        step_index: Optional[int] = None,
        label: str = "",
    ) -> Optional[Path]:
        """失敗時のスクリーンショットを保存する。

        保存に失敗しても例外は送出せず、警告ログを出して None を返す。

        Args:
            page: Playwright の Page オブジェクト
            scenario_name: シナリオ名
            step_index: 失敗したステップのインデックス（シナリオ単位なら None）
            label: ファイル名に付与するラベル

        Returns:
            保存されたスクリーンショットのパス。失敗時は None
        """
        if self.run_dir is None:
            self.create_run_dir()

        path = self.screenshot_path(scenario_name, step_index, label)
        try:
            await page.screenshot(path=str(path), full_page=True)
        except Exception as exc:
            logger.warning("スクリーンショットの保存に失敗しました: %s", exc)
            return None

        logger.info("スクリーンショットを保存しました: %s", path)
        return path


def script_path(tests_dir: Path, scenario_name: str) -> Path:
    """テストスクリプトの保存先パスを返す。"""
    return Path(tests_dir) / f"{sanitize_name(scenario_name)}{SCRIPT_SUFFIX}"


def write_script(tests_dir: Path, scenario_name: str, script: str) -> Optional[Path]:
    """生成したテストスクリプトを <tests_dir>/<name>.spec.py に書き出す。

    書き出しの失敗は警告ログのみとし、例外は送出しない。

    Args:
        tests_dir: 出力先ディレクトリ
        scenario_name: シナリオ名（ファイル名の元）
        script: スクリプト文字列

    Returns:
        書き出したファイルのパス。失敗時は None
    """
    path = script_path(tests_dir, scenario_name)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(script, encoding="utf-8")
    except OSError as exc:
        logger.warning("テストスクリプトの書き出しに失敗しました: %s (%s)", path, exc)
        return None

    logger.info("テストスクリプトを書き出しました: %s", path)
    return path
