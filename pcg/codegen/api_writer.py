"""
ApiScriptWriter — API 呼び出し + 検証スクリプトの生成

エンドポイント・メソッド・リクエストボディ・レスポンススキーマから、
Playwright の APIRequestContext を使う pytest テストを生成する。
レスポンススキーマのトップレベルキーごとに実行時の型チェックを出力する。

レスポンススキーマの形式:
  - {"id": "integer", "name": "string"} のような型名の辞書
  - {"id": 1, "name": "x"} のようなサンプル値の辞書（値の型から推定）
  - {"type": "object", "properties": {...}} 形式の JSON Schema
"""

from __future__ import annotations

import json
import logging
import pprint
import re
from typing import Any, Optional
from urllib.parse import urlsplit

from ..core.errors import InvalidInputError

logger = logging.getLogger(__name__)

SUPPORTED_METHODS: frozenset[str] = frozenset(
    {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}
)

# 型名 → isinstance 第2引数
_TYPE_NAMES: dict[str, str] = {
    "string": "str",
    "str": "str",
    "number": "(int, float)",
    "float": "(int, float)",
    "integer": "int",
    "int": "int",
    "boolean": "bool",
    "bool": "bool",
    "object": "dict",
    "dict": "dict",
    "array": "list",
    "list": "list",
    "null": "type(None)",
    "none": "type(None)",
}


class ApiScriptWriter:
    """API テストスクリプトを生成するライター。"""

    def generate(
        self,
        endpoint: str,
        method: str = "GET",
        request_body: Optional[Any] = None,
        response_schema: Optional[Any] = None,
    ) -> str:
        """API 呼び出しと検証を行うテストスクリプトを生成する。

        Args:
            endpoint: 呼び出す URL
            method: HTTP メソッド
            request_body: リクエストボディ（dict / list / JSON 文字列）
            response_schema: レスポンスのスキーマ（モジュール docstring 参照）

        Returns:
            スクリプト文字列

        Raises:
            InvalidInputError: endpoint が空、または未対応のメソッドの場合
        """
        if not endpoint or not endpoint.strip():
            raise InvalidInputError("endpoint は必須です")
        verb = (method or "GET").strip().upper()
        if verb not in SUPPORTED_METHODS:
            raise InvalidInputError(f"未対応の HTTP メソッドです: {method}")

        body = _parse_json_like(request_body)
        fields = _schema_fields(_parse_json_like(response_schema))

        lines = [
            "# Generated by pcg. Changes will be lost on regeneration.",
            "import pytest",
            "from playwright.sync_api import APIRequestContext, Playwright",
            "",
            f"ENDPOINT = {_literal(endpoint.strip())}",
        ]
        if body is not None:
            lines.append(f"REQUEST_BODY = {_literal(body)}")

        lines.extend([
            "",
            "",
            "@pytest.fixture",
            "def api_request(playwright: Playwright):",
            "    context = playwright.request.new_context()",
            "    yield context",
            "    context.dispose()",
            "",
            "",
            f"def {_test_function_name(verb, endpoint)}(api_request: APIRequestContext) -> None:",
        ])

        call_args = f"ENDPOINT, method={_literal(verb)}"
        if body is not None:
            call_args += ", data=REQUEST_BODY"
        lines.append(f"    response = api_request.fetch({call_args})")
        lines.append('    assert response.ok, f"unexpected status: {response.status}"')

        if fields:
            lines.append("    body = response.json()")
            for key, type_expr in fields:
                key_lit = _literal(key)
                lines.append(f"    assert {key_lit} in body")
                lines.append(f"    assert isinstance(body[{key_lit}], {type_expr})")

        logger.debug("API テストスクリプトを生成しました: %s %s", verb, endpoint)
        return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def _parse_json_like(value: Any) -> Any:
    """JSON 文字列であればパースし、それ以外はそのまま返す。空文字は None。"""
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _schema_fields(schema: Any) -> list[tuple[str, str]]:
    """レスポンススキーマからトップレベルの (キー, 型式) を取り出す。"""
    if not isinstance(schema, dict):
        return []
    if schema.get("type") == "object" and isinstance(schema.get("properties"), dict):
        schema = schema["properties"]

    fields: list[tuple[str, str]] = []
    for key, spec in schema.items():
        fields.append((str(key), _type_expr(spec)))
    return fields


def _type_expr(spec: Any) -> str:
    if isinstance(spec, dict) and isinstance(spec.get("type"), str):
        spec = spec["type"]
    if isinstance(spec, str) and spec.strip().lower() in _TYPE_NAMES:
        return _TYPE_NAMES[spec.strip().lower()]

    # サンプル値から推定（bool は int より先に判定する）
    if spec is None:
        return "type(None)"
    if isinstance(spec, bool):
        return "bool"
    if isinstance(spec, int):
        return "int"
    if isinstance(spec, float):
        return "(int, float)"
    if isinstance(spec, dict):
        return "dict"
    if isinstance(spec, list):
        return "list"
    return "str"


def _literal(value: Any) -> str:
    """Python リテラル表現を返す（辞書キーはソートされ出力は決定的）。"""
    return pprint.pformat(value, sort_dicts=True, width=88)


def _test_function_name(method: str, endpoint: str) -> str:
    try:
        path = urlsplit(endpoint.strip()).path
    except ValueError:
        path = endpoint
    slug = re.sub(r"\W+", "_", path.lower(), flags=re.ASCII).strip("_")
    return f"test_{method.lower()}_{slug or 'root'}"
