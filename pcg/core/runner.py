"""
Runner — 記録済みシナリオの再実行エンジン

ScenarioRegistry に登録されたシナリオを対象 URL に対して Playwright で
再実行し、ステップ単位の成否を ExecutionResult として返す。

主な機能:
  - RunnerConfig: 実行設定（headed/headless, タイムアウト, リトライ回数）
  - StepResult / ScenarioResult / ExecutionResult: 実行結果データクラス
  - Runner: シナリオ実行エンジン本体

実行ルール:
  - シナリオごとに新しい BrowserContext と Page を生成し、必ず閉じる
  - 遷移は最大3回まで 1 秒間隔でリトライし、使い切るとそのシナリオのみ失敗
  - ステップの失敗は結果に記録し、後続ステップの実行を継続する
  - ステップ外の予期しないエラーはシナリオ単位の失敗として記録し、次のシナリオへ進む

状態遷移:
  NOT_STARTED → NAVIGATING → RUNNING_STEPS → COMPLETED
  NAVIGATING → FAILED（リトライ上限到達）
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Literal, Optional

from ..dsl.schema import (
    CLICK_KINDS,
    DEFAULT_PASSWORD,
    DEFAULT_USERNAME,
    Scenario,
    Step,
    resolve_login_selectors,
)
from .artifacts import ArtifactsManager
from .errors import (
    InvalidInputError,
    NavigationError,
    NoScenariosFoundError,
    ScenarioNotFoundError,
    StepFailure,
)
from .scenarios import ScenarioRegistry, normalize_domain, normalize_url
from .session import DriverSession

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 設定・結果データクラス
# ---------------------------------------------------------------------------

@dataclass
class RunnerConfig:
    """Runner の実行設定。

    Attributes:
        headed: ブラウザを表示するか（True: headed, False: headless）
        workers: 同時に実行するシナリオ数（1 = 逐次実行）
        navigation_attempts: 遷移の最大試行回数
        navigation_retry_delay: 遷移リトライ間の待機秒数
        navigation_timeout: 1回の遷移のタイムアウト（ミリ秒）
        step_timeout: セレクタ待機・期待テキスト待機それぞれのタイムアウト（ミリ秒）
        base_artifacts_dir: 成果物ベースディレクトリ
    """

    headed: bool = False
    workers: int = 1
    navigation_attempts: int = 3
    navigation_retry_delay: float = 1.0
    navigation_timeout: int = 30_000
    step_timeout: int = 30_000
    base_artifacts_dir: Path = field(default_factory=lambda: Path("artifacts"))


@dataclass
class StepResult:
    """単一ステップの実行結果。

    Attributes:
        step_description: ステップの説明
        step_kind: ステップ種別
        step_index: ステップのインデックス（0始まり）
        status: 実行結果（passed / failed）
        duration_ms: 実行時間（ミリ秒）
        error: エラーメッセージ（失敗時のみ）
        screenshot_path: 失敗時スクリーンショットのパス
    """

    step_description: str
    step_kind: str
    step_index: int
    status: Literal["passed", "failed"] = "passed"
    duration_ms: float = 0.0
    error: Optional[str] = None
    screenshot_path: Optional[Path] = None

    def to_wire(self) -> dict[str, Any]:
        """境界レスポンス用の辞書に変換する。"""
        data: dict[str, Any] = {
            "stepDescription": self.step_description,
            "status": self.status,
            "durationMs": round(self.duration_ms, 3),
        }
        if self.error is not None:
            data["error"] = self.error
        if self.screenshot_path is not None:
            data["screenshotRef"] = self.screenshot_path.as_posix()
        return data


class RunState(enum.Enum):
    """単一シナリオ実行の状態。"""

    NOT_STARTED = "not_started"
    NAVIGATING = "navigating"
    RUNNING_STEPS = "running_steps"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ScenarioResult:
    """シナリオ単位の実行結果。

    error はシナリオ単位の失敗（遷移失敗・未登録名・予期しないエラー）の場合のみ設定される。
    """

    scenario_name: str
    status: Literal["passed", "failed"] = "passed"
    steps: list[StepResult] = field(default_factory=list)
    error: Optional[str] = None
    screenshot_path: Optional[Path] = None
    duration_ms: float = 0.0
    state: RunState = RunState.NOT_STARTED
    navigation_attempts: int = 0

    def fail(self, message: str) -> None:
        """シナリオ単位の失敗として記録する。"""
        self.status = "failed"
        self.state = RunState.FAILED
        self.error = message

    def to_wire(self) -> dict[str, Any]:
        """境界レスポンス用の辞書に変換する。"""
        data: dict[str, Any] = {
            "scenarioName": self.scenario_name,
            "status": self.status,
            "steps": [s.to_wire() for s in self.steps],
            "durationMs": round(self.duration_ms, 3),
        }
        if self.error is not None:
            data["error"] = self.error
        if self.screenshot_path is not None:
            data["screenshotRef"] = self.screenshot_path.as_posix()
        return data


@dataclass
class ExecutionResult:
    """1回の実行呼び出しの結果（要求順のシナリオ結果）。"""

    target_url: str
    scenarios: list[ScenarioResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    artifacts_dir: Optional[Path] = None

    @property
    def status(self) -> Literal["passed", "failed"]:
        """全シナリオが成功していれば passed。"""
        if all(s.status == "passed" for s in self.scenarios):
            return "passed"
        return "failed"

    def to_wire(self) -> dict[str, Any]:
        """境界レスポンス用の辞書に変換する。"""
        return {
            "targetUrl": self.target_url,
            "status": self.status,
            "results": [s.to_wire() for s in self.scenarios],
        }


# ---------------------------------------------------------------------------
# Runner 本体
# ---------------------------------------------------------------------------

class Runner:
    """シナリオ再実行エンジン。

    シナリオは読み取るだけで変更しない。

    使用例::

        runner = Runner(registry)
        result = await runner.run_scenarios("https://example.com", ["Login Flow"])
    """

    def __init__(
        self,
        registry: ScenarioRegistry,
        config: Optional[RunnerConfig] = None,
        session_factory: Callable[[], DriverSession] = DriverSession,
    ) -> None:
        """Runner を初期化する。

        Args:
            registry: シナリオの参照元レジストリ
            config: 実行設定。None の場合は既定値
            session_factory: ブラウザセッションの生成関数
        """
        self._registry = registry
        self._config = config or RunnerConfig()
        self._session_factory = session_factory

    @property
    def config(self) -> RunnerConfig:
        """実行設定を返す。"""
        return self._config

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def run_scenarios(
        self,
        target_url: str,
        scenario_names: Optional[Sequence[str]] = None,
        headed: Optional[bool] = None,
    ) -> ExecutionResult:
        """指定シナリオを対象 URL に対して実行する。

        Args:
            target_url: 実行対象 URL（ドメインキーの元）
            scenario_names: 実行するシナリオ名。空の場合はドメインの全シナリオ
            headed: ブラウザ表示の上書き。None の場合は設定値

        Returns:
            要求順のシナリオ結果を持つ ExecutionResult

        Raises:
            InvalidInputError: URL が空、または不正な場合
            NoScenariosFoundError: ドメインにシナリオが1件もない場合
        """
        url = _require_url(target_url)
        domain = normalize_domain(url)

        if not self._registry.has_scenarios(domain):
            raise NoScenariosFoundError(f"ドメイン '{domain}' にシナリオがありません")

        names = [n for n in (scenario_names or []) if n]
        if not names:
            names = [s.name for s in self._registry.latest_by_name(domain)]

        jobs = [(name, partial(self._registry.find_by_name, domain, name)) for name in names]
        return await self._execute(url, domain, jobs, headed)

    async def run_scenario(
        self,
        target_url: Optional[str],
        scenario: Scenario,
        headed: Optional[bool] = None,
    ) -> ExecutionResult:
        """レジストリを経由せず、渡されたシナリオをそのまま実行する。

        Args:
            target_url: 実行対象 URL。空の場合はシナリオの targetUrl
            scenario: 実行するシナリオ
            headed: ブラウザ表示の上書き。None の場合は設定値

        Raises:
            InvalidInputError: URL が決まらない、または不正な場合
        """
        url = _require_url(target_url or scenario.targetUrl)
        return await self._execute(
            url, normalize_domain(url), [(scenario.name, lambda: scenario)], headed,
        )

    async def _execute(
        self,
        url: str,
        domain: str,
        jobs: list[tuple[str, Callable[[], Scenario]]],
        headed: Optional[bool],
    ) -> ExecutionResult:
        config = self._config if headed is None else replace(self._config, headed=headed)
        artifacts = ArtifactsManager(base_dir=config.base_artifacts_dir)
        result = ExecutionResult(target_url=url, started_at=datetime.now())
        logger.info("シナリオ実行を開始します: %s（%d 件）", domain, len(jobs))

        driver = self._session_factory()
        try:
            try:
                await driver.launch(headed=config.headed)
            except Exception as exc:
                # ブラウザ起動失敗は要求された全シナリオの失敗として記録する
                logger.error("ブラウザを起動できないため全シナリオを失敗とします: %s", exc)
                for name, _ in jobs:
                    failed = ScenarioResult(scenario_name=name)
                    failed.fail(str(exc))
                    result.scenarios.append(failed)
            else:
                semaphore = asyncio.Semaphore(max(1, config.workers))

                async def _run_with_semaphore(
                    name: str, resolve: Callable[[], Scenario],
                ) -> ScenarioResult:
                    async with semaphore:
                        return await self._run_one(
                            driver, url, name, resolve, config, artifacts,
                        )

                result.scenarios = list(
                    await asyncio.gather(*(_run_with_semaphore(n, r) for n, r in jobs))
                )
        finally:
            await driver.close()

        result.finished_at = datetime.now()
        result.artifacts_dir = artifacts.run_dir
        logger.info(
            "シナリオ実行が完了しました: %s（%s）", domain, result.status,
        )
        return result

    # -------------------------------------------------------------------
    # シナリオ実行
    # -------------------------------------------------------------------

    async def _run_one(
        self,
        driver: DriverSession,
        url: str,
        name: str,
        resolve: Callable[[], Scenario],
        config: RunnerConfig,
        artifacts: ArtifactsManager,
    ) -> ScenarioResult:
        """1シナリオを専用の Context / Page で実行する。"""
        result = ScenarioResult(scenario_name=name)
        start_time = time.perf_counter()

        try:
            scenario = resolve()
        except ScenarioNotFoundError as exc:
            logger.error("シナリオが見つかりません: %s", name)
            result.fail(str(exc))
            return result

        context: Optional[BrowserContext] = None
        page: Optional[Page] = None
        try:
            context = await driver.new_context()
            page = await context.new_page()

            result.state = RunState.NAVIGATING
            try:
                result.navigation_attempts = await self._navigate(page, url, config)
            except NavigationError as exc:
                result.navigation_attempts = exc.attempts
                logger.error(
                    "遷移に %d 回失敗したためシナリオを中断します: %s (%s)",
                    exc.attempts, name, exc,
                )
                result.fail(str(exc))
                result.screenshot_path = await artifacts.save_failure_screenshot(
                    page, name, label="navigation",
                )
                return result

            result.state = RunState.RUNNING_STEPS
            for idx, step in enumerate(scenario.steps):
                result.steps.append(
                    await self._run_step(page, step, idx, name, config, artifacts)
                )

            result.state = RunState.COMPLETED
            if any(s.status == "failed" for s in result.steps):
                result.status = "failed"

        except Exception as exc:
            logger.exception("シナリオ実行中に予期しないエラーが発生しました: %s", name)
            result.fail(str(exc))
        finally:
            await _close_quietly(page, context)
            result.duration_ms = (time.perf_counter() - start_time) * 1000

        return result

    async def _navigate(self, page: Page, url: str, config: RunnerConfig) -> int:
        """リトライ付きで URL へ遷移し、成功した試行回数を返す。

        Raises:
            NavigationError: 全試行が失敗した場合（最後のエラーを保持）
        """
        attempts = max(1, config.navigation_attempts)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            logger.info("遷移します: %s（%d/%d 回目）", url, attempt, attempts)
            try:
                await page.goto(
                    url,
                    timeout=config.navigation_timeout,
                    wait_until="domcontentloaded",
                )
                return attempt
            except Exception as exc:
                last_error = exc
                logger.warning("遷移に失敗しました（%d/%d 回目）: %s", attempt, attempts, exc)
                if attempt < attempts:
                    await asyncio.sleep(config.navigation_retry_delay)

        assert last_error is not None
        raise NavigationError(url, attempts, last_error)

    # -------------------------------------------------------------------
    # ステップ実行
    # -------------------------------------------------------------------

    async def _run_step(
        self,
        page: Page,
        step: Step,
        step_index: int,
        scenario_name: str,
        config: RunnerConfig,
        artifacts: ArtifactsManager,
    ) -> StepResult:
        """単一ステップを実行する。

        失敗しても例外は送出せず、エラーとスクリーンショットを結果に格納する。
        """
        step_result = StepResult(
            step_description=step.description,
            step_kind=step.kind,
            step_index=step_index,
        )
        start_time = time.perf_counter()

        try:
            await self._execute_step(page, step, config.step_timeout)
            step_result.status = "passed"
        except Exception as exc:
            step_result.status = "failed"
            step_result.error = str(exc)
            logger.error(
                "ステップ '%s' (index=%d) でエラー: %s",
                step.description, step_index, exc,
            )
            step_result.screenshot_path = await artifacts.save_failure_screenshot(
                page, scenario_name, step_index=step_index, label="error",
            )

        step_result.duration_ms = (time.perf_counter() - start_time) * 1000
        return step_result

    async def _execute_step(self, page: Page, step: Step, timeout: int) -> None:
        """ステップ種別に応じた操作を実行し、期待テキストを待機する。"""
        kind = step.kind

        if kind == "login":
            username_sel, password_sel, submit_sel = resolve_login_selectors(step)
            username = step.payload.get("username") or DEFAULT_USERNAME
            password = step.payload.get("password") or DEFAULT_PASSWORD
            await page.wait_for_selector(username_sel, timeout=timeout)
            await page.fill(username_sel, str(username), timeout=timeout)
            await page.wait_for_selector(password_sel, timeout=timeout)
            await page.fill(password_sel, str(password), timeout=timeout)
            await page.wait_for_selector(submit_sel, timeout=timeout)
            await page.click(submit_sel, timeout=timeout)
        elif kind in CLICK_KINDS:
            if step.selector:
                await page.wait_for_selector(step.selector, timeout=timeout)
                await page.click(step.selector, timeout=timeout)
            else:
                await page.goto(
                    step.url or "", timeout=timeout, wait_until="domcontentloaded",
                )
        elif kind == "fill":
            await page.wait_for_selector(step.selector, timeout=timeout)
            await page.fill(step.selector, step.value, timeout=timeout)
        elif kind == "select":
            await page.wait_for_selector(step.selector, timeout=timeout)
            await page.select_option(step.selector, step.value, timeout=timeout)
        elif kind == "check":
            await page.wait_for_selector(step.selector, timeout=timeout)
            await page.check(step.selector, timeout=timeout)
        elif kind == "uncheck":
            await page.wait_for_selector(step.selector, timeout=timeout)
            await page.uncheck(step.selector, timeout=timeout)
        else:
            logger.warning("未知のステップ種別のためスキップします: %s", kind)
            return

        if step.expectedText:
            try:
                await page.get_by_text(step.expectedText).first.wait_for(
                    state="visible", timeout=timeout,
                )
            except Exception as exc:
                raise StepFailure(
                    f"期待テキスト '{step.expectedText}' が {timeout}ms 以内に"
                    f"表示されませんでした: {exc}"
                ) from exc


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

async def _close_quietly(
    page: Optional[Page], context: Optional[BrowserContext],
) -> None:
    """Page と Context を閉じる。終了時のエラーは警告ログのみ。"""
    if page is not None:
        try:
            await page.close()
        except Exception as exc:
            logger.warning("Page の終了に失敗しました: %s", exc)
    if context is not None:
        try:
            await context.close()
        except Exception as exc:
            logger.warning("Context の終了に失敗しました: %s", exc)


def _require_url(target_url: Optional[str]) -> str:
    if not target_url or not target_url.strip():
        raise InvalidInputError("URL は必須です")
    return normalize_url(target_url)
