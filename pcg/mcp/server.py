"""
pcg MCP Server — シナリオ記録・コード生成・再実行サーバー

FastMCP を使用して、RecorderService の境界操作を MCP ツールとして公開する。
各ツールは JSON 文字列を返す。

レスポンス形式:
  - 成功: {"status": "success", ...操作ごとのフィールド}
  - 失敗: {"status": "error", "code": <HTTP 相当のステータス>, "message": ...}

PcgError 系の例外はその status_code を、それ以外の例外は 500 を返す。
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Optional

from fastmcp import FastMCP

from ..core.errors import PcgError
from ..service import RecorderService
from .config import ServerConfig, load_config_from_env

logger = logging.getLogger(__name__)

SERVER_NAME = "pcg-recorder"


# ---------------------------------------------------------------------------
# レスポンス生成
# ---------------------------------------------------------------------------

def success_response(data: Mapping[str, Any]) -> str:
    """成功レスポンスの JSON 文字列を返す。"""
    return json.dumps({"status": "success", **data}, ensure_ascii=False, indent=2)


def error_response(code: int, message: str) -> str:
    """失敗レスポンスの JSON 文字列を返す。"""
    return json.dumps(
        {"status": "error", "code": code, "message": message},
        ensure_ascii=False,
        indent=2,
    )


async def invoke(operation: Callable[[], Any]) -> str:
    """操作を実行し、結果または例外をレスポンス文字列に変換する。

    Args:
        operation: 引数なしで呼び出す操作。辞書またはその awaitable を返す

    Returns:
        JSON レスポンス文字列
    """
    try:
        result = operation()
        if inspect.isawaitable(result):
            result = await result
    except PcgError as exc:
        logger.warning("操作に失敗しました (%d): %s", exc.status_code, exc)
        return error_response(exc.status_code, str(exc))
    except Exception as exc:
        logger.exception("予期しないエラーが発生しました")
        return error_response(500, str(exc))
    return success_response(result)


def build_service(config: ServerConfig) -> RecorderService:
    """設定からサービスを生成し、カタログのシナリオを登録する。"""
    service = RecorderService(
        runner_config=config.runner_config(),
        tests_dir=Path(config.tests_dir),
        catalog_dir=Path(config.catalog_dir),
    )
    try:
        count = service.seed_catalog(Path(config.catalog_dir))
        logger.info("カタログから %d 件のシナリオを登録しました", count)
    except (OSError, ValueError) as exc:
        logger.warning("カタログの読み込みに失敗しました: %s", exc)
    if config.test_data_file:
        try:
            names = service.load_data_sets(Path(config.test_data_file))
            logger.info("テストデータセット: %s", ", ".join(names))
        except (OSError, PcgError) as exc:
            logger.warning("テストデータの読み込みに失敗しました: %s", exc)
    return service


# ---------------------------------------------------------------------------
# サーバー生成
# ---------------------------------------------------------------------------

def create_server(
    config: Optional[ServerConfig] = None,
    service: Optional[RecorderService] = None,
) -> FastMCP:
    """pcg MCP サーバーを生成する。

    Args:
        config: サーバー設定。None の場合は環境変数から読み込む。
        service: 使用するサービス。None の場合は config から生成する。

    Returns:
        設定済みの FastMCP サーバーインスタンス
    """
    if service is None:
        if config is None:
            config = load_config_from_env()
        service = build_service(config)

    mcp = FastMCP(SERVER_NAME)

    # -------------------------------------------------------------------
    # 記録ツール
    # -------------------------------------------------------------------

    @mcp.tool
    async def pcg_start_recording(
        url: str,
        scenario_name: str,
        capture: bool = False,
    ) -> str:
        """Start a recording session for a target URL.

        Args:
            url: Target URL. A missing scheme is completed with https://
            scenario_name: Name of the scenario being recorded
            capture: Open a visible browser and record interactions automatically

        Returns:
            JSON with sessionId and the normalized targetUrl
        """
        return await invoke(
            lambda: service.start_recording(url, scenario_name, capture=capture)
        )

    @mcp.tool
    async def pcg_record_step(
        session_id: str,
        kind: str,
        description: str,
        selector: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
        expected_text: Optional[str] = None,
        timestamp: int = 0,
    ) -> str:
        """Append a step to an active recording session.

        Args:
            session_id: Session id returned by pcg_start_recording
            kind: login, navigation, action, click, fill, select, check or uncheck
            description: Human-readable label of the step
            selector: CSS selector of the target element
            payload: Kind-specific data (username/password, value, url)
            expected_text: Text that must become visible after the step
            timestamp: Ordering key in milliseconds

        Returns:
            JSON with the stored step
        """
        step = {
            "kind": kind,
            "description": description,
            "selector": selector,
            "payload": payload or {},
            "expectedText": expected_text,
            "timestamp": timestamp,
        }
        return await invoke(lambda: service.record_step(session_id, step))

    @mcp.tool
    async def pcg_recording_status(session_id: str) -> str:
        """Return the steps recorded so far in an active session.

        Args:
            session_id: Session id returned by pcg_start_recording

        Returns:
            JSON with the session info and its steps
        """
        return await invoke(lambda: service.get_recording_status(session_id))

    @mcp.tool
    async def pcg_stop_recording(
        session_id: str,
        scenario_name: Optional[str] = None,
        url: Optional[str] = None,
    ) -> str:
        """Stop a recording session, store the scenario and generate its script.

        Args:
            session_id: Session id returned by pcg_start_recording
            scenario_name: Override for the scenario name given at start
            url: Override for the URL used as the scenario's domain key

        Returns:
            JSON with the recorded steps and the generatedScript
        """
        return await invoke(
            lambda: service.stop_recording(session_id, scenario_name, url)
        )

    # -------------------------------------------------------------------
    # シナリオ・実行ツール
    # -------------------------------------------------------------------

    @mcp.tool
    async def pcg_list_scenarios(url: str) -> str:
        """List stored scenarios for the domain of a URL.

        Args:
            url: Any URL of the target site

        Returns:
            JSON with the scenarios in insertion order
        """
        return await invoke(lambda: {"scenarios": service.list_scenarios(url)})

    @mcp.tool
    async def pcg_run_scenarios(
        url: str,
        scenario_names: Optional[list[str]] = None,
        headed: Optional[bool] = None,
    ) -> str:
        """Replay stored scenarios against a URL.

        Args:
            url: Target URL. Its domain selects the scenarios
            scenario_names: Scenarios to run. Empty runs every scenario of the domain
            headed: Show the browser window. None uses server config

        Returns:
            JSON whose result holds per-scenario and per-step outcomes
        """
        async def _run() -> dict[str, Any]:
            result = await service.run_scenarios(url, scenario_names, headed=headed)
            return {"result": result.to_wire()}

        return await invoke(_run)

    @mcp.tool
    async def pcg_execute_scenario(
        scenario: dict[str, Any],
        url: Optional[str] = None,
        headed: Optional[bool] = None,
    ) -> str:
        """Replay a scenario given inline, without storing it.

        Args:
            scenario: Scenario object with name, steps and optional targetUrl
            url: Target URL. None uses the scenario's targetUrl
            headed: Show the browser window. None uses server config

        Returns:
            JSON whose result holds the scenario and per-step outcomes
        """
        async def _execute() -> dict[str, Any]:
            result = await service.execute_scenario(scenario, url, headed=headed)
            return {"result": result.to_wire()}

        return await invoke(_execute)

    # -------------------------------------------------------------------
    # コード生成ツール
    # -------------------------------------------------------------------

    @mcp.tool
    async def pcg_generate_code(
        scenario: dict[str, Any],
        test_data: Optional[dict[str, Any]] = None,
        initial_url: Optional[str] = None,
        data_set: Optional[str] = None,
    ) -> str:
        """Generate a Playwright test script from a scenario.

        Args:
            scenario: Scenario object with name, steps and optional targetUrl
            test_data: Overrides for login username and password
            initial_url: Start URL. None uses the scenario's targetUrl
            data_set: Named test data set (e.g. hardcoded). test_data wins over it

        Returns:
            JSON with the generated code
        """
        return await invoke(
            lambda: service.generate_code(scenario, test_data, initial_url, data_set)
        )

    @mcp.tool
    async def pcg_generate_api_code(
        endpoint: str,
        method: str = "GET",
        request_body: Optional[Any] = None,
        response_schema: Optional[Any] = None,
    ) -> str:
        """Generate an API call-and-assert test script.

        Args:
            endpoint: URL of the API endpoint
            method: HTTP method
            request_body: Request body as an object or a JSON string
            response_schema: Top-level response keys mapped to type names or sample values

        Returns:
            JSON with the generated code
        """
        return await invoke(
            lambda: service.generate_api_code(
                endpoint, method, request_body, response_schema,
            )
        )

    return mcp


# ---------------------------------------------------------------------------
# エントリポイント（直接実行用）
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    from .config import apply_cli_args, build_cli_parser

    parser = build_cli_parser()
    args = parser.parse_args()

    srv_config = load_config_from_env()
    srv_config = apply_cli_args(srv_config, args)

    server = create_server(config=srv_config)
    server.run()
