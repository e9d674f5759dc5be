# DSL モジュール
# ステップ / シナリオのスキーマ定義（schema）とカタログ YAML パーサー（parser）を提供

from . import schema  # noqa: F401
