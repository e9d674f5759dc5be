"""
Reporter — 実行結果レポートの生成

ExecutionResult を受け取り、JSON / HTML / JUnit XML 形式のレポートを生成する。

主な機能:
  - generate_json(): JSON レポート（report.json）の生成
  - generate_html(): Jinja2 テンプレートを使用した HTML レポート（report.html）の生成
  - generate_junit_xml(): JUnit XML レポート（junit.xml）の生成（CI 統合用）
  - generate_all(): 上記3形式をまとめて生成
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader

from .runner import ExecutionResult, RunState, ScenarioResult, StepResult

logger = logging.getLogger(__name__)

# テンプレートディレクトリのパス
_TEMPLATES_DIR = Path(__file__).parent.parent / "templates"


class Reporter:
    """実行結果レポートの生成クラス。"""

    def generate_all(self, result: ExecutionResult, output_dir: Path) -> list[Path]:
        """JSON / HTML / JUnit XML のレポートをまとめて生成する。"""
        return [
            self.generate_json(result, output_dir),
            self.generate_html(result, output_dir),
            self.generate_junit_xml(result, output_dir),
        ]

    # -------------------------------------------------------------------
    # JSON レポート
    # -------------------------------------------------------------------

    def generate_json(self, result: ExecutionResult, output_dir: Path) -> Path:
        """JSON レポートを生成する。

        シナリオごとのステップ結果とサマリー（total, passed, failed）を含む。

        Args:
            result: 実行結果
            output_dir: 出力先ディレクトリ

        Returns:
            生成された report.json のパス
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        report_data = self.build_report_dict(result)

        output_path = output_dir / "report.json"
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report_data, f, ensure_ascii=False, indent=2)

        logger.info("JSON レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # HTML レポート
    # -------------------------------------------------------------------

    def generate_html(self, result: ExecutionResult, output_dir: Path) -> Path:
        """HTML レポートを生成する。

        Jinja2 テンプレート（templates/report.html.j2）を使用して
        スタンドアロン HTML レポートを生成する。
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        report_data = self.build_report_dict(result)

        env = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            autoescape=True,
        )
        template = env.get_template("report.html.j2")
        html_content = template.render(report=report_data)

        output_path = output_dir / "report.html"
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(html_content)

        logger.info("HTML レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # JUnit XML レポート
    # -------------------------------------------------------------------

    def generate_junit_xml(self, result: ExecutionResult, output_dir: Path) -> Path:
        """JUnit XML レポートを生成する。

        シナリオを testsuite、ステップを testcase として出力する。
        シナリオ単位の失敗はステップを持たない testcase の failure として表す。
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        testsuites = ET.Element("testsuites")
        testsuites.set("name", result.target_url)

        for scenario in result.scenarios:
            summary = _compute_summary(scenario.steps)
            failures = summary["failed"] + (1 if scenario.error else 0)

            testsuite = ET.SubElement(testsuites, "testsuite")
            testsuite.set("name", scenario.scenario_name)
            testsuite.set("tests", str(summary["total"] + (1 if scenario.error else 0)))
            testsuite.set("failures", str(failures))
            testsuite.set("time", f"{scenario.duration_ms / 1000:.3f}")

            if scenario.error:
                testcase = ET.SubElement(testsuite, "testcase")
                testcase.set("name", "scenario")
                testcase.set("classname", scenario.scenario_name)
                failure = ET.SubElement(testcase, "failure")
                failure.set("message", scenario.error)
                failure.text = scenario.error

            for step in scenario.steps:
                testcase = ET.SubElement(testsuite, "testcase")
                testcase.set("name", step.step_description)
                testcase.set("classname", scenario.scenario_name)
                testcase.set("time", f"{step.duration_ms / 1000:.3f}")

                if step.status == "failed":
                    message = step.error or "failed"
                    failure = ET.SubElement(testcase, "failure")
                    failure.set("message", message)
                    failure.text = message

        tree = ET.ElementTree(testsuites)
        output_path = output_dir / "junit.xml"
        ET.indent(tree, space="  ")
        tree.write(
            str(output_path),
            encoding="unicode",
            xml_declaration=True,
        )

        logger.info("JUnit XML レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # 既存レポートの読み込み
    # -------------------------------------------------------------------

    def load_json(self, report_path: Path) -> ExecutionResult:
        """report.json から ExecutionResult を再構築する。

        Raises:
            FileNotFoundError: ファイルが存在しない場合
            ValueError: JSON として解釈できない場合
        """
        report_path = Path(report_path)
        if not report_path.exists():
            raise FileNotFoundError(f"{report_path} が見つかりません")

        try:
            with open(report_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"report.json を解釈できません: {e}") from e

        base_dir = report_path.parent
        scenarios = []
        for raw in data.get("scenarios", []):
            steps = [
                StepResult(
                    step_description=s.get("step_description", ""),
                    step_kind=s.get("step_kind", ""),
                    step_index=s.get("step_index", 0),
                    status=s.get("status", "passed"),
                    duration_ms=s.get("duration_ms", 0.0),
                    error=s.get("error"),
                    screenshot_path=_absolute_path(s.get("screenshot_path"), base_dir),
                )
                for s in raw.get("steps", [])
            ]
            scenarios.append(ScenarioResult(
                scenario_name=raw.get("name", ""),
                status=raw.get("status", "passed"),
                steps=steps,
                error=raw.get("error"),
                screenshot_path=_absolute_path(raw.get("screenshot_path"), base_dir),
                duration_ms=raw.get("duration_ms", 0.0),
                state=RunState(raw.get("state", RunState.COMPLETED.value)),
                navigation_attempts=raw.get("navigation_attempts", 0),
            ))

        return ExecutionResult(
            target_url=data.get("target_url", ""),
            scenarios=scenarios,
            started_at=_parse_datetime(data.get("started_at")),
            finished_at=_parse_datetime(data.get("finished_at")),
            artifacts_dir=base_dir,
        )

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    def build_report_dict(self, result: ExecutionResult) -> dict[str, Any]:
        """ExecutionResult をレポート用辞書に変換する。"""
        scenarios = [
            self._scenario_dict(s, result.artifacts_dir) for s in result.scenarios
        ]
        return {
            "target_url": result.target_url,
            "status": result.status,
            "started_at": (
                result.started_at.isoformat() if result.started_at else None
            ),
            "finished_at": (
                result.finished_at.isoformat() if result.finished_at else None
            ),
            "scenarios": scenarios,
            "summary": {
                "total": len(result.scenarios),
                "passed": sum(1 for s in result.scenarios if s.status == "passed"),
                "failed": sum(1 for s in result.scenarios if s.status == "failed"),
            },
        }

    def _scenario_dict(
        self, scenario: ScenarioResult, artifacts_dir: Optional[Path],
    ) -> dict[str, Any]:
        steps = [
            {
                "step_description": step.step_description,
                "step_kind": step.step_kind,
                "step_index": step.step_index,
                "status": step.status,
                "duration_ms": step.duration_ms,
                "error": step.error,
                "screenshot_path": _relative_path(step.screenshot_path, artifacts_dir),
            }
            for step in scenario.steps
        ]
        return {
            "name": scenario.scenario_name,
            "status": scenario.status,
            "state": scenario.state.value,
            "error": scenario.error,
            "duration_ms": scenario.duration_ms,
            "navigation_attempts": scenario.navigation_attempts,
            "screenshot_path": _relative_path(scenario.screenshot_path, artifacts_dir),
            "steps": steps,
            "summary": _compute_summary(scenario.steps),
        }


def _compute_summary(steps: list[StepResult]) -> dict[str, int]:
    """ステップリストから total / passed / failed を計算する。"""
    return {
        "total": len(steps),
        "passed": sum(1 for s in steps if s.status == "passed"),
        "failed": sum(1 for s in steps if s.status == "failed"),
    }


def _absolute_path(value: Optional[str], base_dir: Path) -> Optional[Path]:
    if not value:
        return None
    path = Path(value)
    return path if path.is_absolute() else base_dir / path


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _relative_path(path: Optional[Path], base_dir: Optional[Path]) -> Optional[str]:
    """パスを base_dir からの相対 POSIX パスに変換する。"""
    if path is None:
        return None
    if base_dir is not None:
        try:
            return path.relative_to(base_dir).as_posix()
        except ValueError:
            pass
    return path.as_posix()
