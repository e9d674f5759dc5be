"""
PageCapture — ブラウザ操作のキャプチャアダプタ

Playwright のページに JavaScript を注入して click / change イベントを
捕捉し、メインフレームの遷移とあわせて Step に正規化したうえで
RecordingSessionManager.record_step() へ送る。

記録セッション側はキャプチャ方式を前提にしない。このモジュールは
record_step() を呼ぶ取り込み口の一実装にすぎない。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from ..core.errors import SessionNotActiveError, SessionNotFoundError
from ..core.session import DriverSession
from ..dsl.schema import Step

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Frame, Page

    from .session import RecordingSessionManager

logger = logging.getLogger(__name__)

# 注入スクリプトのパス
_INJECTED_JS_PATH = Path(__file__).parent / "injected.js"

# ページ側から呼び出す関数名（injected.js と一致させる）
_BINDING_NAME = "__pcg_on_action"

# アクション種別ごとの説明文テンプレート
_DESCRIPTIONS: dict[str, str] = {
    "click": "Click on {selector}",
    "fill": "Fill {selector}",
    "select": "Select '{value}' in {selector}",
    "check": "Check {selector}",
    "uncheck": "Uncheck {selector}",
}


def event_to_step(data: dict[str, Any]) -> Optional[Step]:
    """ページ側から届いたイベント辞書を Step に変換する。

    未対応のアクションやセレクタのないイベントは None を返す。

    Args:
        data: injected.js が送信したイベント辞書

    Returns:
        変換後の Step。変換できない場合は None
    """
    action = str(data.get("action") or "").lower()
    selector = data.get("selector")
    if action not in _DESCRIPTIONS or not selector:
        return None

    payload: dict[str, Any] = {}
    if action in ("fill", "select"):
        value = data.get("value")
        payload["value"] = "" if value is None else str(value)

    timestamp = data.get("timestamp")
    return Step(
        kind=action,
        description=_DESCRIPTIONS[action].format(
            selector=selector, value=payload.get("value", ""),
        ),
        selector=str(selector),
        payload=payload,
        timestamp=timestamp if isinstance(timestamp, int) and timestamp > 0 else 0,
    )


def _same_page(a: str, b: str) -> bool:
    # ブラウザは "https://a.com" を "https://a.com/" として報告する
    return a.rstrip("/") == b.rstrip("/")


def navigation_step(url: str) -> Step:
    """URL 遷移を表す navigation ステップを生成する。"""
    return Step(
        kind="navigation",
        description=f"Navigate to {url}",
        payload={"url": url},
    )


class PageCapture:
    """1つの記録セッションに紐づくブラウザ操作キャプチャ。

    使用例::

        capture = PageCapture(manager, session_id)
        await capture.start("https://example.com", headed=True)
        ...
        await capture.close()
    """

    def __init__(
        self,
        manager: RecordingSessionManager,
        session_id: str,
        driver: Optional[DriverSession] = None,
    ) -> None:
        """キャプチャを初期化する。

        Args:
            manager: 送信先の記録セッションマネージャー
            session_id: 送信先のセッション ID
            driver: 使用するブラウザセッション。None の場合は start() で起動する
        """
        self._manager = manager
        self._session_id = session_id
        self._driver = driver
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._last_url = ""

    @property
    def session_id(self) -> str:
        """送信先のセッション ID を返す。"""
        return self._session_id

    async def start(self, url: str, headed: bool = True) -> None:
        """ブラウザを開き、キャプチャを設定して URL へ遷移する。

        Args:
            url: 記録開始 URL
            headed: True でブラウザウィンドウを表示
        """
        if self._driver is None:
            self._driver = DriverSession()
        if not self._driver.is_active:
            await self._driver.launch(headed=headed)

        self._context = await self._driver.new_context()
        page = await self._context.new_page()

        # 開始 URL 自体は navigation として記録しない
        self._last_url = url
        await self.attach(page)

        await page.goto(url)
        await page.wait_for_load_state("domcontentloaded")
        logger.info("キャプチャを開始しました: %s (%s)", self._session_id, url)

    async def attach(self, page: Page) -> None:
        """既存のページにキャプチャを設定する。

        init script として注入するため、遷移後のページにも自動で再注入される。
        """
        self._page = page
        script = _INJECTED_JS_PATH.read_text(encoding="utf-8")
        await page.expose_function(_BINDING_NAME, self._on_action)
        await page.add_init_script(script=script)
        page.on("framenavigated", self._on_frame_navigated)

    async def wait_closed(self) -> None:
        """ユーザーがページを閉じるまで待機する。"""
        if self._page is not None and not self._page.is_closed():
            await self._page.wait_for_event("close", timeout=0)

    async def close(self) -> None:
        """Context とブラウザを閉じる。"""
        try:
            if self._context is not None:
                await self._context.close()
        except Exception as exc:
            logger.warning("Context の終了に失敗しました: %s", exc)
        finally:
            self._context = None
            self._page = None
            if self._driver is not None:
                await self._driver.close()
        logger.info("キャプチャを終了しました: %s", self._session_id)

    # -------------------------------------------------------------------
    # イベントハンドラ
    # -------------------------------------------------------------------

    def _on_action(self, data_json: str) -> None:
        try:
            data = json.loads(data_json)
        except json.JSONDecodeError:
            logger.warning("不正なアクションデータ: %s", data_json)
            return
        if not isinstance(data, dict):
            logger.warning("不正なアクションデータ: %s", data_json)
            return

        step = event_to_step(data)
        if step is None:
            logger.debug("記録対象外のイベント: %s", data.get("action"))
            return
        self._forward(step)

    def _on_frame_navigated(self, frame: Frame) -> None:
        # サブフレームの遷移は記録しない
        if frame.parent_frame is not None:
            return
        url = frame.url
        if not url or url == "about:blank" or _same_page(url, self._last_url):
            return
        self._last_url = url
        self._forward(navigation_step(url))

    def _forward(self, step: Step) -> None:
        try:
            self._manager.record_step(self._session_id, step)
        except (SessionNotFoundError, SessionNotActiveError):
            logger.debug("記録終了後のイベントを破棄しました: %s", step.description)
