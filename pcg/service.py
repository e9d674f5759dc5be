"""
RecorderService — 記録・シナリオ・実行・コード生成の境界操作

MCP サーバーと CLI が共有する操作の窓口。入力検証を行い、
記録セッションマネージャー・シナリオレジストリ・Runner・コード生成器を
組み合わせて境界レスポンス用の辞書を返す。

主な操作:
  - start_recording / record_step / get_recording_status / stop_recording
  - list_scenarios / run_scenarios / execute_scenario
  - generate_code / generate_api_code
  - seed_catalog: カタログ YAML からのシナリオ事前登録

入力検証・未登録エラーは PcgError 系の例外として送出し、部分的な状態は残さない。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .codegen import ApiScriptWriter, ScriptWriter
from .core.artifacts import write_script
from .core.errors import InvalidInputError
from .core.runner import ExecutionResult, Runner, RunnerConfig
from .core.scenarios import ScenarioRegistry, normalize_domain, normalize_url
from .dsl.parser import CatalogParser, catalog_path
from .dsl.schema import Scenario, Step
from .dsl.testdata import BUILTIN_DATA_SETS, load_data_sets, select_data_set
from .recorder.capture import PageCapture
from .recorder.session import RecordingSessionManager

logger = logging.getLogger(__name__)


class RecorderService:
    """境界操作をまとめたサービスクラス。

    使用例::

        service = RecorderService(tests_dir=Path("generated"))
        started = await service.start_recording("example.com", "Login Flow")
        service.record_step(started["sessionId"], {"kind": "click", ...})
        stopped = await service.stop_recording(started["sessionId"])
    """

    def __init__(
        self,
        sessions: Optional[RecordingSessionManager] = None,
        registry: Optional[ScenarioRegistry] = None,
        runner_config: Optional[RunnerConfig] = None,
        tests_dir: Path = Path("generated"),
        catalog_dir: Optional[Path] = None,
        capture_factory: Callable[[RecordingSessionManager, str], PageCapture] = PageCapture,
    ) -> None:
        """サービスを初期化する。

        Args:
            sessions: 記録セッションマネージャー。None の場合は新規生成
            registry: シナリオレジストリ。None の場合は新規生成
            runner_config: Runner の実行設定
            tests_dir: 生成スクリプトの出力先
            catalog_dir: 記録したシナリオを追記するカタログディレクトリ（None で無効）
            capture_factory: ブラウザキャプチャの生成関数
        """
        self.sessions = sessions or RecordingSessionManager()
        self.registry = registry or ScenarioRegistry()
        self.runner = Runner(self.registry, config=runner_config)
        self.tests_dir = Path(tests_dir)
        self.catalog_dir = Path(catalog_dir) if catalog_dir is not None else None
        self._capture_factory = capture_factory
        self._captures: dict[str, PageCapture] = {}
        self._script_writer = ScriptWriter()
        self._api_writer = ApiScriptWriter()
        self._catalog_parser = CatalogParser()
        self.data_sets: dict[str, dict[str, Any]] = {
            k: dict(v) for k, v in BUILTIN_DATA_SETS.items()
        }

    # -------------------------------------------------------------------
    # 記録
    # -------------------------------------------------------------------

    async def start_recording(
        self,
        url: str,
        scenario_name: str,
        capture: bool = False,
        headed: bool = True,
    ) -> dict[str, Any]:
        """記録セッションを開始する。

        Args:
            url: 記録対象 URL
            scenario_name: シナリオ名
            capture: True の場合はブラウザを開いて操作を自動記録する
            headed: キャプチャ時にブラウザウィンドウを表示するか

        Returns:
            {"sessionId": ..., "targetUrl": ...}
        """
        session_id = self.sessions.start_recording(url, scenario_name)
        session = self.sessions.get_session(session_id)

        if capture:
            page_capture = self._capture_factory(self.sessions, session_id)
            try:
                await page_capture.start(session.target_url, headed=headed)
            except Exception:
                logger.exception("キャプチャの開始に失敗しました: %s", session_id)
                await page_capture.close()
                self.sessions.stop_recording(session_id)
                raise
            self._captures[session_id] = page_capture

        return {"sessionId": session_id, "targetUrl": session.target_url}

    def record_step(
        self, session_id: str, step: Union[Step, Mapping[str, Any]],
    ) -> dict[str, Any]:
        """記録中のセッションにステップを追加する。

        Raises:
            InvalidInputError: ステップの形式が不正な場合
            SessionNotFoundError: セッションが存在しない場合
            SessionNotActiveError: セッションが停止済みの場合
        """
        if not isinstance(step, Step):
            try:
                step = Step.model_validate(dict(step))
            except PydanticValidationError as e:
                raise InvalidInputError(f"ステップの形式が不正です: {e}") from e
        stored = self.sessions.record_step(session_id, step)
        return {"step": stored.model_dump(mode="json", exclude_none=True)}

    async def wait_for_capture(self, session_id: str) -> None:
        """キャプチャ中のブラウザがユーザーに閉じられるまで待機する。"""
        page_capture = self._captures.get(session_id)
        if page_capture is not None:
            await page_capture.wait_closed()

    def get_recording_status(self, session_id: str) -> dict[str, Any]:
        """記録中のセッションの状態とステップ列を返す。"""
        session = self.sessions.get_session(session_id)
        steps = self.sessions.get_steps(session_id)
        return {
            "sessionId": session.id,
            "scenarioName": session.scenario_name,
            "targetUrl": session.target_url,
            "capturing": session_id in self._captures,
            "steps": [s.model_dump(mode="json", exclude_none=True) for s in steps],
        }

    async def stop_recording(
        self,
        session_id: str,
        scenario_name: Optional[str] = None,
        url: Optional[str] = None,
    ) -> dict[str, Any]:
        """記録を停止し、シナリオを登録してスクリプトを生成する。

        scenario_name / url を指定すると開始時の値を上書きする
        （url はドメインキーの決定にのみ使う）。スクリプトとカタログの
        書き出し失敗はログのみで、呼び出しは成功する。

        Returns:
            {"steps": [...], "generatedScript": ..., "scenario": ...}

        Raises:
            SessionNotFoundError: セッションが存在しない場合
            MalformedUrlError: 上書き URL が不正な場合
        """
        override_domain: Optional[str] = None
        if url and url.strip():
            override_domain = normalize_domain(normalize_url(url))

        page_capture = self._captures.pop(session_id, None)
        if page_capture is not None:
            await page_capture.close()

        scenario = self.sessions.stop_recording(session_id)
        if scenario_name and scenario_name.strip():
            scenario = scenario.model_copy(update={"name": scenario_name.strip()})

        domain = override_domain or normalize_domain(scenario.targetUrl or "")
        self.registry.add_scenario(domain, scenario)

        script = self._script_writer.generate(
            scenario.name, scenario.steps, scenario.targetUrl or f"https://{domain}",
        )
        write_script(self.tests_dir, scenario.name, script)

        if self.catalog_dir is not None:
            path = catalog_path(self.catalog_dir, domain)
            try:
                self._catalog_parser.append_scenario(path, domain, scenario)
            except (OSError, ValueError) as exc:
                logger.warning("カタログへの追記に失敗しました: %s (%s)", path, exc)

        return {
            "steps": [s.model_dump(mode="json", exclude_none=True) for s in scenario.steps],
            "generatedScript": script,
            "scenario": scenario.to_wire(),
        }

    # -------------------------------------------------------------------
    # シナリオ・実行
    # -------------------------------------------------------------------

    def list_scenarios(self, url: Optional[str]) -> list[dict[str, Any]]:
        """URL のドメインに登録されたシナリオを追加順で返す。

        Raises:
            InvalidInputError: URL が空の場合
        """
        if not url or not url.strip():
            raise InvalidInputError("URL は必須です")
        return [s.to_wire() for s in self.registry.list_scenarios(url)]

    async def run_scenarios(
        self,
        url: Optional[str],
        scenario_names: Optional[Sequence[str]] = None,
        headed: Optional[bool] = None,
    ) -> ExecutionResult:
        """登録済みシナリオを実行する。

        Raises:
            InvalidInputError: URL が空の場合
            NoScenariosFoundError: ドメインにシナリオがない場合
        """
        if not url or not url.strip():
            raise InvalidInputError("URL は必須です")
        return await self.runner.run_scenarios(url, scenario_names, headed=headed)

    async def execute_scenario(
        self,
        scenario: Union[Scenario, Mapping[str, Any]],
        url: Optional[str] = None,
        headed: Optional[bool] = None,
    ) -> ExecutionResult:
        """リクエストで渡されたシナリオを登録せずにそのまま実行する。

        Args:
            scenario: シナリオ（モデルまたは辞書）
            url: 実行対象 URL。None の場合はシナリオの targetUrl
            headed: ブラウザ表示の上書き

        Raises:
            InvalidInputError: シナリオの形式が不正、または URL が決まらない場合
        """
        return await self.runner.run_scenario(url, _coerce_scenario(scenario), headed=headed)

    def load_data_sets(self, path: Path) -> list[str]:
        """テストデータファイルのセットを追加し、利用可能なセット名を返す。"""
        self.data_sets.update(load_data_sets(path))
        return sorted(self.data_sets)

    def seed_catalog(self, path: Path) -> int:
        """カタログファイルまたはディレクトリからシナリオを登録する。"""
        path = Path(path)
        if path.is_dir():
            return self._catalog_parser.seed_dir(self.registry, path)
        return self._catalog_parser.seed(self.registry, path)

    # -------------------------------------------------------------------
    # コード生成
    # -------------------------------------------------------------------

    def generate_code(
        self,
        scenario: Union[Scenario, Mapping[str, Any]],
        test_data: Optional[Mapping[str, Any]] = None,
        initial_url: Optional[str] = None,
        data_set: Optional[str] = None,
    ) -> dict[str, Any]:
        """シナリオからテストスクリプトを生成する。

        Args:
            scenario: シナリオ（モデルまたは辞書）
            test_data: login の username / password 上書き値
            initial_url: 開始 URL。None の場合はシナリオの targetUrl
            data_set: 基にするテストデータセット名。test_data の値が優先される

        Raises:
            InvalidInputError: シナリオの形式が不正、開始 URL が決まらない、
                またはデータセットが存在しない場合
        """
        scenario = _coerce_scenario(scenario)
        if data_set is not None:
            test_data = {**select_data_set(self.data_sets, data_set), **(test_data or {})}
        url = initial_url or scenario.targetUrl
        if not url:
            raise InvalidInputError("開始 URL が指定されていません")

        code = self._script_writer.generate(
            scenario.name, scenario.steps, normalize_url(url), test_data,
        )
        return {"code": code}

    def generate_api_code(
        self,
        endpoint: str,
        method: str = "GET",
        request_body: Optional[Any] = None,
        response_schema: Optional[Any] = None,
    ) -> dict[str, Any]:
        """API 呼び出し + 検証スクリプトを生成する。"""
        code = self._api_writer.generate(endpoint, method, request_body, response_schema)
        return {"code": code}


def _coerce_scenario(scenario: Union[Scenario, Mapping[str, Any]]) -> Scenario:
    if isinstance(scenario, Scenario):
        return scenario
    try:
        return Scenario.model_validate(dict(scenario))
    except PydanticValidationError as e:
        raise InvalidInputError(f"シナリオの形式が不正です: {e}") from e
