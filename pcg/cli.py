"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

pcg コマンドとして以下のサブコマンドを提供する:
  - record: ブラウザ操作を記録してシナリオとテストスクリプトを保存
  - generate: カタログのシナリオからテストスクリプトを生成
  - api-code: API 呼び出し + 検証スクリプトを生成
  - list: URL のドメインに登録されたシナリオ一覧
  - run: シナリオ再実行とレポート出力
  - report: 既存の report.json から HTML レポートを再生成
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import typer

from .core.errors import PcgError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "pcg — Playwright シナリオ記録・コード生成・再実行ツール\n\n"
        "基本の流れ:\n"
        "  1. pcg record https://example.com -n \"Login Flow\"  操作を記録\n"
        "  2. pcg run https://example.com                      記録したシナリオを再実行\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを表示する"),
) -> None:
    """ログ出力を設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s - %(message)s",
    )


# ---------------------------------------------------------------------------
# record コマンド
# ---------------------------------------------------------------------------

@app.command()
def record(
    url: str = typer.Argument(..., help="記録対象の URL"),
    name: str = typer.Option(..., "--name", "-n", help="シナリオ名"),
    tests_dir: Path = typer.Option(
        Path("generated"), "--tests-dir", help="生成スクリプトの出力先",
    ),
    catalog_dir: Path = typer.Option(
        Path("catalogs"), "--catalog-dir", help="シナリオを追記するカタログディレクトリ",
    ),
) -> None:
    """ブラウザを開いて操作を記録する。ブラウザを閉じると記録を終了します。"""
    from .service import RecorderService

    service = RecorderService(tests_dir=tests_dir, catalog_dir=catalog_dir)

    async def _record() -> dict[str, Any]:
        started = await service.start_recording(url, name, capture=True, headed=True)
        session_id = started["sessionId"]
        typer.echo(f"記録を開始しました: {started['targetUrl']}")
        typer.echo("ブラウザを閉じると記録を終了します。")
        try:
            await service.wait_for_capture(session_id)
        finally:
            stopped = await service.stop_recording(session_id)
        return stopped

    try:
        stopped = asyncio.run(_record())
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    from .core.artifacts import script_path

    typer.echo(f"記録を終了しました: {len(stopped['steps'])} ステップ")
    typer.echo(f"スクリプト: {script_path(tests_dir, stopped['scenario']['name'])}")


# ---------------------------------------------------------------------------
# generate コマンド
# ---------------------------------------------------------------------------

@app.command()
def generate(
    catalog: Path = typer.Argument(..., help="シナリオカタログ YAML"),
    name: Optional[list[str]] = typer.Option(
        None, "--name", "-n", help="生成するシナリオ名（複数指定可、省略時は全件）",
    ),
    url: Optional[str] = typer.Option(None, "--url", help="開始 URL（省略時はカタログの URL）"),
    test_data: Optional[Path] = typer.Option(
        None, "--test-data", help="login の username / password を上書きする YAML / JSON",
    ),
    data_set: Optional[str] = typer.Option(
        None, "--data-set", help="使用するテストデータセット名（組み込み: hardcoded）",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="出力先ファイル（省略時は標準出力）",
    ),
) -> None:
    """カタログのシナリオから Playwright テストスクリプトを生成する。"""
    from .codegen import ScriptWriter
    from .core.scenarios import normalize_url
    from .dsl.parser import CatalogParser

    try:
        domain, scenarios = CatalogParser().load(catalog)
        if name:
            missing = [n for n in name if n not in {s.name for s in scenarios}]
            if missing:
                typer.echo(f"エラー: シナリオが見つかりません: {', '.join(missing)}", err=True)
                raise typer.Exit(code=1)
            scenarios = [s for s in scenarios if s.name in name]
        if not scenarios:
            typer.echo(f"エラー: カタログにシナリオがありません: {catalog}", err=True)
            raise typer.Exit(code=1)

        initial_url = normalize_url(url or scenarios[0].targetUrl or f"https://{domain}")
        data = _resolve_test_data(test_data, data_set)
        code = ScriptWriter().generate_suite(
            [(s.name, s.steps) for s in scenarios], initial_url, data,
        )
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    _emit(code, output)


# ---------------------------------------------------------------------------
# api-code コマンド
# ---------------------------------------------------------------------------

@app.command("api-code")
def api_code(
    endpoint: str = typer.Argument(..., help="API エンドポイント URL"),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP メソッド"),
    body: Optional[str] = typer.Option(None, "--body", help="リクエストボディ（JSON 文字列）"),
    schema: Optional[str] = typer.Option(
        None, "--schema", help="レスポンススキーマ（JSON 文字列）",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="出力先ファイル（省略時は標準出力）",
    ),
) -> None:
    """API 呼び出しとレスポンス型検証を行うテストスクリプトを生成する。"""
    from .codegen import ApiScriptWriter

    try:
        code = ApiScriptWriter().generate(endpoint, method, body, schema)
    except PcgError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    _emit(code, output)


# ---------------------------------------------------------------------------
# list コマンド
# ---------------------------------------------------------------------------

@app.command("list")
def list_scenarios(
    url: str = typer.Argument(..., help="対象サイトの URL"),
    catalog_dir: Path = typer.Option(
        Path("catalogs"), "--catalog-dir", help="シナリオカタログディレクトリ",
    ),
) -> None:
    """URL のドメインに登録されたシナリオを一覧表示する。"""
    from .service import RecorderService

    service = RecorderService()
    try:
        service.seed_catalog(catalog_dir)
        scenarios = service.list_scenarios(url)
    except (PcgError, ValueError, OSError) as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    if not scenarios:
        typer.echo("シナリオはありません")
        return

    for scenario in scenarios:
        typer.echo(f"{scenario['name']} ({len(scenario['steps'])} ステップ)")


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

@app.command()
def run(
    url: str = typer.Argument(..., help="実行対象の URL"),
    scenario: Optional[list[str]] = typer.Option(
        None, "--scenario", "-s", help="実行するシナリオ名（複数指定可、省略時は全件）",
    ),
    headed: bool = typer.Option(False, "--headed/--headless", help="ブラウザ表示モード"),
    catalog_dir: Path = typer.Option(
        Path("catalogs"), "--catalog-dir", help="シナリオカタログディレクトリ",
    ),
    artifacts_dir: Path = typer.Option(
        Path("artifacts"), "--artifacts-dir", help="成果物ディレクトリ",
    ),
    report_dir: Optional[Path] = typer.Option(
        None, "--report-dir", help="レポート出力先（省略時は実行ディレクトリ）",
    ),
    workers: int = typer.Option(1, "--workers", "-w", help="同時に実行するシナリオ数"),
    step_timeout: int = typer.Option(
        30_000, "--step-timeout", help="各ステップの待機タイムアウト（ミリ秒）",
    ),
) -> None:
    """登録済みシナリオを再実行し、JSON / HTML / JUnit レポートを出力する。"""
    from .core.reporting import Reporter
    from .core.runner import RunnerConfig
    from .service import RecorderService

    config = RunnerConfig(
        headed=headed,
        workers=workers,
        step_timeout=step_timeout,
        base_artifacts_dir=artifacts_dir,
    )
    service = RecorderService(runner_config=config)

    try:
        service.seed_catalog(catalog_dir)
        result = asyncio.run(service.run_scenarios(url, scenario or None, headed=headed))
    except (PcgError, ValueError, OSError) as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    for scenario_result in result.scenarios:
        passed = sum(1 for s in scenario_result.steps if s.status == "passed")
        failed = sum(1 for s in scenario_result.steps if s.status == "failed")
        typer.echo(
            f"{scenario_result.scenario_name}: {scenario_result.status} "
            f"(passed={passed}, failed={failed}, {scenario_result.duration_ms:.0f}ms)"
        )
        if scenario_result.error:
            typer.echo(f"  エラー: {scenario_result.error}")
        for step in scenario_result.steps:
            if step.status == "failed":
                typer.echo(f"  [失敗] {step.step_description}: {step.error}")

    out_dir = report_dir or result.artifacts_dir or artifacts_dir
    for path in Reporter().generate_all(result, out_dir):
        typer.echo(f"レポート: {path}")

    if result.status == "failed":
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# report コマンド
# ---------------------------------------------------------------------------

@app.command()
def report(
    artifacts_dir: Path = typer.Argument(..., help="report.json のあるディレクトリ"),
) -> None:
    """既存の report.json から HTML レポートを再生成する。"""
    from .core.reporting import Reporter

    reporter = Reporter()
    try:
        result = reporter.load_json(artifacts_dir / "report.json")
        html_path = reporter.generate_html(result, artifacts_dir)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"HTML レポートを生成しました: {html_path}")


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def _resolve_test_data(path: Optional[Path], data_set: Optional[str]) -> Optional[dict[str, Any]]:
    """--test-data / --data-set からコード生成用のテストデータを決める。"""
    from .dsl.testdata import BUILTIN_DATA_SETS, load_data_sets, select_data_set

    if path is None and data_set is None:
        return None
    sets = load_data_sets(path) if path is not None else BUILTIN_DATA_SETS
    return select_data_set(sets, data_set)


def _emit(code: str, output: Optional[Path]) -> None:
    if output is None:
        typer.echo(code, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(code, encoding="utf-8")
    typer.echo(f"スクリプトを書き出しました: {output}")


if __name__ == "__main__":
    app()
