"""
ScriptWriter — ステップ列を Playwright テストスクリプトに変換

Step 列とシナリオ情報から pytest-playwright 形式の Python テストモジュールを
生成する。同じ入力からは常にバイト単位で同じ出力を返す
（乱数・時刻は埋め込まない）。

出力構成:
  - import とベース URL のヘッダー
  - シナリオごとに1つのテスト関数
  - 関数内のステップは元の順序のまま出力
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional

from ..dsl.schema import (
    CLICK_KINDS,
    DEFAULT_PASSWORD,
    DEFAULT_USERNAME,
    Step,
    resolve_login_selectors,
)

logger = logging.getLogger(__name__)


_INDENT = "    "

# 改行・タブ以外の制御文字（ソースにそのまま埋め込めない）
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


class ScriptWriter:
    """ステップ列を Python テストスクリプトに変換するライター。

    使用例::

        writer = ScriptWriter()
        code = writer.generate("Login Flow", scenario.steps, "https://example.com")
    """

    def generate(
        self,
        scenario_name: str,
        steps: Sequence[Step],
        initial_url: str,
        test_data: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """1シナリオ分のテストスクリプトを生成する。

        Args:
            scenario_name: シナリオ名（テスト関数名の元）
            steps: 順序付きステップ列
            initial_url: テスト開始時に遷移する URL
            test_data: login の username / password 上書き値

        Returns:
            スクリプト文字列
        """
        return self.generate_suite([(scenario_name, steps)], initial_url, test_data)

    def generate_suite(
        self,
        scenarios: Iterable[tuple[str, Sequence[Step]]],
        initial_url: str,
        test_data: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """複数シナリオを1つのテストモジュールにまとめて生成する。

        Args:
            scenarios: (シナリオ名, ステップ列) のリスト
            initial_url: 各テスト開始時に遷移する URL
            test_data: login の username / password 上書き値

        Returns:
            スクリプト文字列
        """
        data = dict(test_data or {})
        lines = self._build_header(initial_url)

        used_names: set[str] = set()
        count = 0
        for scenario_name, steps in scenarios:
            func_name = _unique_name(_test_function_name(scenario_name), used_names)
            lines.extend(["", ""])
            lines.extend(self._build_test(func_name, scenario_name, steps, data))
            count += 1

        logger.debug("テストスクリプトを生成しました（%d シナリオ）", count)
        return "\n".join(lines) + "\n"

    # -------------------------------------------------------------------
    # 構築ヘルパー
    # -------------------------------------------------------------------

    def _build_header(self, initial_url: str) -> list[str]:
        return [
            "# Generated by pcg. Changes will be lost on regeneration.",
            "from playwright.sync_api import Page, expect",
            "",
            f'BASE_URL = "{_escape_string(initial_url)}"',
        ]

    def _build_test(
        self,
        func_name: str,
        scenario_name: str,
        steps: Sequence[Step],
        test_data: Mapping[str, Any],
    ) -> list[str]:
        lines = [
            f"def {func_name}(page: Page) -> None:",
            f'{_INDENT}"""{_escape_docstring(scenario_name)}"""',
            f"{_INDENT}page.goto(BASE_URL)",
        ]
        for step in steps:
            lines.append("")
            lines.extend(_INDENT + line for line in self._step_to_lines(step, test_data))
        return lines

    def _step_to_lines(self, step: Step, test_data: Mapping[str, Any]) -> list[str]:
        """単一ステップを Python コード行に変換する。

        未知の種別は説明コメントのみを出力し、例外は送出しない。
        """
        comment = f"# {_escape_comment(step.description)}"
        kind = step.kind

        if kind == "login":
            return [comment, *self._login_lines(step, test_data)]

        if kind in CLICK_KINDS:
            if step.selector:
                body = [f'page.click("{_escape_string(step.selector)}")']
            else:
                body = [f'page.goto("{_escape_string(step.url or "")}")']
            return [comment, *body, *_wait_for_text(step)]

        if kind == "fill":
            body = [f'page.fill("{_sel(step)}", "{_escape_string(step.value)}")']
        elif kind == "select":
            body = [f'page.select_option("{_sel(step)}", "{_escape_string(step.value)}")']
        elif kind == "check":
            body = [f'page.check("{_sel(step)}")']
        elif kind == "uncheck":
            body = [f'page.uncheck("{_sel(step)}")']
        else:
            return [comment]

        return [comment, *body, *_wait_for_text(step)]

    def _login_lines(self, step: Step, test_data: Mapping[str, Any]) -> list[str]:
        username_sel, password_sel, submit_sel = resolve_login_selectors(step)
        username = _first_present(
            test_data.get("username"), step.payload.get("username"), DEFAULT_USERNAME,
        )
        password = _first_present(
            test_data.get("password"), step.payload.get("password"), DEFAULT_PASSWORD,
        )
        lines = [
            f'page.fill("{_escape_string(username_sel)}", "{_escape_string(username)}")',
            f'page.fill("{_escape_string(password_sel)}", "{_escape_string(password)}")',
            f'page.click("{_escape_string(submit_sel)}")',
        ]
        if step.expectedText:
            lines.append(
                f'expect(page.get_by_text("{_escape_string(step.expectedText)}").first)'
                ".to_be_visible()"
            )
        return lines


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def _wait_for_text(step: Step) -> list[str]:
    if not step.expectedText:
        return []
    return [
        f'page.get_by_text("{_escape_string(step.expectedText)}").first'
        '.wait_for(state="visible")'
    ]


def _sel(step: Step) -> str:
    return _escape_string(step.selector or "")


def _first_present(*values: Any) -> str:
    for value in values:
        if value is not None and value != "":
            return str(value)
    return ""


def _test_function_name(scenario_name: str) -> str:
    """シナリオ名から pytest が収集できる関数名を生成する。"""
    slug = re.sub(r"\W+", "_", scenario_name.lower(), flags=re.ASCII).strip("_")
    return f"test_{slug or 'scenario'}"


def _unique_name(name: str, used: set[str]) -> str:
    candidate = name
    suffix = 2
    while candidate in used:
        candidate = f"{name}_{suffix}"
        suffix += 1
    used.add(candidate)
    return candidate


def _escape_string(s: str) -> str:
    """Python 文字列リテラル（ダブルクォート）用にエスケープする。"""
    escaped = (
        s.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return _CONTROL_CHARS.sub(lambda m: f"\\x{ord(m.group()):02x}", escaped)


def _escape_comment(s: str) -> str:
    return " ".join(_CONTROL_CHARS.sub(" ", s).split())


def _escape_docstring(s: str) -> str:
    return _escape_comment(s).replace("\\", "\\\\").replace('"', '\\"')
