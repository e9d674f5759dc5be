"""
pcg — Playwright シナリオ記録・コード生成・再実行ツール

ブラウザ操作をステップ列として記録し、スタンドアロンのテストスクリプトへ
コンパイルする。記録済み・定義済みのシナリオを対象サイトに対して再実行し、
成否と失敗時の成果物を収集する。
"""

__version__ = "0.1.0"
