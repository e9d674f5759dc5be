"""
pcg MCP Server CLI エントリポイント

python -m pcg.mcp で MCP サーバーを起動する。
CLI 引数と環境変数でサーバー設定を制御できる。

使用例:
  python -m pcg.mcp                            # デフォルト設定で起動
  python -m pcg.mcp --headed                   # シナリオ実行時にブラウザを表示
  python -m pcg.mcp --catalog-dir catalogs     # カタログディレクトリ指定
  python -m pcg.mcp --step-timeout 10000       # ステップ待機を 10 秒に短縮

環境変数:
  PCG_HEADED=true                              # ブラウザ表示
  PCG_TESTS_DIR=tests/generated                # 生成スクリプトの出力先
  PCG_ARTIFACTS_DIR=output                     # 成果物ディレクトリ変更
"""

from __future__ import annotations

import logging

from .config import apply_cli_args, build_cli_parser, load_config_from_env
from .server import create_server

_parser = build_cli_parser()
_args = _parser.parse_args()

logging.basicConfig(
    level=logging.DEBUG if _args.verbose else logging.INFO,
    format="%(name)s - %(message)s",
)

# 環境変数 → CLI 引数の順で設定を構築
_config = load_config_from_env()
_config = apply_cli_args(_config, _args)

# サーバー生成・起動
server = create_server(config=_config)
server.run()
