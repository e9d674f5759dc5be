"""
RecordingSessionManager — 記録セッションのライフサイクル管理

記録中のセッションを ID で保持し、到着順にステップを蓄積する。
停止時にステップ列を凍結して Scenario を返し、セッションは
ライブレジストリから即座に除去される。

状態遷移:
  - ACTIVE → STOPPED のみ。STOPPED は終端

排他制御:
  - セッション辞書の参照・更新はガードロックで保護
  - セッションごとのステップ追加・読み取りはセッション単位のロックで直列化
"""

from __future__ import annotations

import enum
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..core.errors import InvalidInputError, SessionNotActiveError, SessionNotFoundError
from ..core.scenarios import normalize_url
from ..dsl.schema import Scenario, Step

logger = logging.getLogger(__name__)


class RecordingState(enum.Enum):
    """記録セッションの状態。"""

    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass
class RecordingSession:
    """記録中のセッション。

    Attributes:
        id: セッション ID（アクティブなセッション間で一意）
        target_url: 記録開始 URL（正規化済み）
        scenario_name: シナリオ名
        state: セッション状態
        steps: 到着順のステップ列（ACTIVE の間のみ追記される）
    """

    id: str
    target_url: str
    scenario_name: str
    state: RecordingState = RecordingState.ACTIVE
    steps: list[Step] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    last_timestamp: int = 0


def _new_session_id() -> str:
    return uuid.uuid4().hex


class RecordingSessionManager:
    """記録セッションの生成・追記・停止を管理するクラス。

    使用例::

        manager = RecordingSessionManager()
        session_id = manager.start_recording("example.com/login", "Login Flow")
        manager.record_step(session_id, step)
        scenario = manager.stop_recording(session_id)
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None) -> None:
        """マネージャーを初期化する。

        Args:
            id_factory: セッション ID 生成関数。None の場合は uuid4 を使用
        """
        self._guard = threading.Lock()
        self._sessions: dict[str, RecordingSession] = {}
        self._id_factory = id_factory or _new_session_id

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    def start_recording(self, target_url: str, scenario_name: str) -> str:
        """記録セッションを開始し、セッション ID を返す。

        Args:
            target_url: 記録対象 URL（スキーム省略時は https:// を補完）
            scenario_name: シナリオ名

        Returns:
            アクティブなセッション間で一意なセッション ID

        Raises:
            InvalidInputError: URL またはシナリオ名が空の場合
            MalformedUrlError: URL を絶対 http(s) URL に正規化できない場合
        """
        if not target_url or not target_url.strip():
            raise InvalidInputError("URL は必須です")
        if not scenario_name or not scenario_name.strip():
            raise InvalidInputError("シナリオ名は必須です")

        url = normalize_url(target_url)

        with self._guard:
            session_id = self._id_factory()
            while session_id in self._sessions:
                session_id = self._id_factory()
            self._sessions[session_id] = RecordingSession(
                id=session_id,
                target_url=url,
                scenario_name=scenario_name.strip(),
            )

        logger.info("記録を開始しました: %s (%s, %s)", session_id, scenario_name, url)
        return session_id

    def record_step(self, session_id: str, step: Step) -> Step:
        """アクティブなセッションにステップを追記する。

        timestamp が直前のステップ以下の場合は単調増加となるよう補正する。

        Args:
            session_id: セッション ID
            step: 追記するステップ

        Returns:
            実際に格納されたステップ（timestamp 補正後）

        Raises:
            SessionNotFoundError: アクティブなセッションが存在しない場合
            SessionNotActiveError: セッションが既に停止している場合
        """
        session = self._get(session_id)

        with session.lock:
            # 辞書から取得した後に停止された場合
            if session.state is not RecordingState.ACTIVE:
                raise SessionNotActiveError(
                    f"記録セッション '{session_id}' は既に停止しています"
                )

            timestamp = max(step.timestamp, session.last_timestamp + 1)
            if timestamp != step.timestamp:
                step = step.model_copy(update={"timestamp": timestamp})
            session.steps.append(step)
            session.last_timestamp = timestamp
            count = len(session.steps)

        logger.debug("ステップを記録しました: %s #%d %s", session_id, count, step.kind)
        return step

    def stop_recording(self, session_id: str) -> Scenario:
        """記録を停止し、ステップ列を凍結した Scenario を返す。

        停止したセッションは即座に除去されるため、同じ ID で再度
        呼び出すと SessionNotFoundError となる。

        Raises:
            SessionNotFoundError: アクティブなセッションが存在しない場合
        """
        with self._guard:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"記録セッション '{session_id}' が見つかりません")

        with session.lock:
            session.state = RecordingState.STOPPED
            steps = tuple(session.steps)

        logger.info("記録を停止しました: %s（%d ステップ）", session_id, len(steps))
        return Scenario(
            name=session.scenario_name,
            steps=steps,
            targetUrl=session.target_url,
        )

    def get_steps(self, session_id: str) -> tuple[Step, ...]:
        """記録中のステップ列のスナップショットを返す。

        Raises:
            SessionNotFoundError: アクティブなセッションが存在しない場合
        """
        session = self._get(session_id)
        with session.lock:
            return tuple(session.steps)

    def get_session(self, session_id: str) -> RecordingSession:
        """アクティブなセッションを返す。

        Raises:
            SessionNotFoundError: アクティブなセッションが存在しない場合
        """
        return self._get(session_id)

    @property
    def active_ids(self) -> list[str]:
        """アクティブなセッション ID の一覧を返す。"""
        with self._guard:
            return list(self._sessions)

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    def _get(self, session_id: str) -> RecordingSession:
        with self._guard:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"記録セッション '{session_id}' が見つかりません")
        return session
