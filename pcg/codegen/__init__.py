"""コード生成 — ステップ列 / API 仕様からテストスクリプトを生成する。"""

from .api_writer import ApiScriptWriter
from .script_writer import ScriptWriter

__all__ = ["ApiScriptWriter", "ScriptWriter"]
