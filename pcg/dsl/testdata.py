"""
テストデータセット — コード生成時に login 資格情報を差し替える名前付きデータ

ファイル形式（YAML / JSON）は2通り:

  # 単一セット（"default" として扱う）
  username: standard_user
  password: secret_sauce

  # 名前付きセット
  sets:
    datatable: {username: standard_user, password: secret_sauce}
    database:  {username: db_user, password: db_pass}

組み込みセット "hardcoded" は常に利用できる。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..core.errors import InvalidInputError

logger = logging.getLogger(__name__)

DEFAULT_SET = "default"

BUILTIN_DATA_SETS: dict[str, dict[str, Any]] = {
    "hardcoded": {"username": "standard_user", "password": "secret_sauce"},
}


def load_data_sets(path: Path) -> dict[str, dict[str, Any]]:
    """テストデータファイルを読み込み、セット名 → データの辞書を返す。

    組み込みセットも含む。ファイル側の同名セットが優先される。

    Raises:
        FileNotFoundError: ファイルが存在しない場合
        InvalidInputError: 構文エラー、またはマッピングでない場合
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"テストデータファイルが見つかりません: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = YAML(typ="safe").load(f)
    except YAMLError as e:
        raise InvalidInputError(f"テストデータの構文エラー: {path}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidInputError(f"テストデータはマッピングである必要があります: {path}")

    sets: dict[str, dict[str, Any]] = {k: dict(v) for k, v in BUILTIN_DATA_SETS.items()}
    named = data.get("sets")
    if named is None:
        sets[DEFAULT_SET] = data
    elif isinstance(named, dict) and all(isinstance(v, dict) for v in named.values()):
        sets.update({str(k): v for k, v in named.items()})
    else:
        raise InvalidInputError(f"sets は名前 → マッピングである必要があります: {path}")

    logger.debug("テストデータセットを読み込みました: %s %s", path, sorted(sets))
    return sets


def select_data_set(
    sets: Mapping[str, Mapping[str, Any]],
    name: Optional[str] = None,
) -> dict[str, Any]:
    """セット名でデータを選ぶ。name 省略時は "default"、なければ空の辞書。

    Raises:
        InvalidInputError: 指定したセットが存在しない場合
    """
    if name is None:
        return dict(sets.get(DEFAULT_SET, {}))
    if name not in sets:
        raise InvalidInputError(
            f"テストデータセット '{name}' がありません（利用可能: {', '.join(sorted(sets))}）"
        )
    return dict(sets[name])
