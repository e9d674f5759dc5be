"""
pcg MCP Server パッケージ

シナリオの記録・コード生成・再実行を MCP (Model Context Protocol) ツールとして
公開するサーバーを提供する。

主な構成:
  - server: FastMCP サーバー本体とレスポンス生成
  - config: 環境変数・CLI 引数からの設定読み込み
"""

from __future__ import annotations


def create_server(config=None, service=None):  # type: ignore[no-untyped-def]
    """pcg MCP サーバーを生成する（遅延インポート）。

    `python -m pcg.mcp.server` 実行時の RuntimeWarning を回避するため、
    server モジュールの import をここで遅延させる。

    Args:
        config: ServerConfig インスタンス（None で環境変数から読み込み）
        service: RecorderService インスタンス（None で config から生成）

    Returns:
        設定済みの FastMCP サーバーインスタンス
    """
    from .server import create_server as _create
    return _create(config=config, service=service)


__all__ = [
    "create_server",
]
