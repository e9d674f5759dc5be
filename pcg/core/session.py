"""
DriverSession — Chromium の起動・終了と Context の払い出し

記録キャプチャと実行エンジンが共有する。ブラウザに渡す起動パラメータは
headed / headless のみで、Context の寿命は払い出した側が持つ。
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Playwright

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    """ドライバの状態。CLOSED からは戻らない。"""

    IDLE = "idle"
    RUNNING = "running"
    CLOSED = "closed"


class DriverSession:
    """1つの Chromium プロセスを保持する。

    ``launch()`` → ``new_context()`` を任意回 → ``close()`` の順で使う。
    """

    def __init__(self) -> None:
        self._state = SessionState.IDLE
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self.headed = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        """Context を払い出せる状態かどうか。"""
        return self._state is SessionState.RUNNING and self._browser is not None

    async def launch(self, headed: bool = False) -> None:
        """Chromium を起動する。

        Raises:
            RuntimeError: 起動済みの場合
            Exception: Playwright の起動エラー（状態は IDLE に戻る）
        """
        if self._state is SessionState.RUNNING:
            raise RuntimeError("ドライバは起動済みです。close() 後に再度起動してください。")

        from playwright.async_api import async_playwright

        logger.info("Chromium 起動: headed=%s", headed)
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=not headed)
        except Exception:
            logger.exception("Chromium の起動に失敗しました")
            await self._release()
            self._state = SessionState.IDLE
            raise

        self.headed = headed
        self._state = SessionState.RUNNING

    async def new_context(self) -> BrowserContext:
        """新しい BrowserContext を返す。閉じるのは呼び出し側。"""
        if not self.is_active:
            raise RuntimeError("ドライバが起動していません。先に launch() を呼んでください。")
        return await self._browser.new_context()  # type: ignore[union-attr]

    async def close(self) -> None:
        """ブラウザと Playwright を停止する。2回目以降は何もしない。"""
        if self._state is SessionState.CLOSED:
            return
        await self._release()
        self._state = SessionState.CLOSED
        logger.info("Chromium を終了しました")

    async def _release(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        try:
            if browser is not None:
                await browser.close()
            if playwright is not None:
                await playwright.stop()
        except Exception:
            logger.exception("ドライバの終了処理でエラーが発生しました")
