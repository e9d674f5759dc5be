"""
DriverSession テスト — ブラウザセッション管理の単体テスト

Playwright ブラウザの起動・Context 払い出し・終了を検証する。
実際のブラウザ起動はモックで代替し、ロジックのみテストする。
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from pcg.core.session import DriverSession, SessionState


def _patch_playwright(mock_pw: AsyncMock):
    # async_playwright() は launch() 内でローカルインポートされる
    starter = AsyncMock()
    starter.start = AsyncMock(return_value=mock_pw)
    return patch("playwright.async_api.async_playwright", return_value=starter)


class TestSessionState:
    """SessionState 列挙型のテスト。"""

    def test_all_states_exist(self):
        """IDLE / RUNNING / CLOSED の3状態であること。"""
        states = {s.value for s in SessionState}
        assert states == {"idle", "running", "closed"}


class TestDriverSession:
    """DriverSession のライフサイクル管理テスト。"""

    def test_initial_state_is_idle(self):
        """初期状態が IDLE であること。"""
        session = DriverSession()
        assert session.state == SessionState.IDLE
        assert session.is_active is False

    @pytest.mark.asyncio
    async def test_launch_headless(self):
        """launch() で RUNNING になり、headless で起動されること。"""
        session = DriverSession()
        mock_pw = AsyncMock()

        with _patch_playwright(mock_pw):
            await session.launch(headed=False)

        assert session.is_active is True
        mock_pw.chromium.launch.assert_awaited_once_with(headless=True)

    @pytest.mark.asyncio
    async def test_launch_headed(self):
        """headed=True で headless=False が渡されること。"""
        session = DriverSession()
        mock_pw = AsyncMock()

        with _patch_playwright(mock_pw):
            await session.launch(headed=True)

        mock_pw.chromium.launch.assert_awaited_once_with(headless=False)

    @pytest.mark.asyncio
    async def test_double_launch_rejected(self):
        """アクティブなセッションで再度 launch() すると RuntimeError。"""
        session = DriverSession()
        with _patch_playwright(AsyncMock()):
            await session.launch()
            with pytest.raises(RuntimeError):
                await session.launch()

    @pytest.mark.asyncio
    async def test_launch_failure_resets_state(self):
        """起動失敗時は例外を再送出し、状態を IDLE に戻すこと。"""
        session = DriverSession()
        mock_pw = AsyncMock()
        mock_pw.chromium.launch.side_effect = RuntimeError("no browser")

        with _patch_playwright(mock_pw):
            with pytest.raises(RuntimeError, match="no browser"):
                await session.launch()

        assert session.state == SessionState.IDLE
        mock_pw.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_context_requires_active(self):
        """非アクティブ時の new_context() は RuntimeError。"""
        with pytest.raises(RuntimeError):
            await DriverSession().new_context()

    @pytest.mark.asyncio
    async def test_new_context_returns_fresh_context(self):
        """new_context() は呼び出しごとにブラウザから Context を生成すること。"""
        session = DriverSession()
        mock_pw = AsyncMock()
        browser = mock_pw.chromium.launch.return_value

        with _patch_playwright(mock_pw):
            await session.launch()
        await session.new_context()
        await session.new_context()

        assert browser.new_context.await_count == 2

    @pytest.mark.asyncio
    async def test_close_releases_resources(self):
        """close() でブラウザと Playwright を終了し CLOSED になること。"""
        session = DriverSession()
        mock_pw = AsyncMock()
        browser = mock_pw.chromium.launch.return_value

        with _patch_playwright(mock_pw):
            await session.launch()
        await session.close()

        assert session.state == SessionState.CLOSED
        browser.close.assert_awaited_once()
        mock_pw.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        """2回目以降の close() は何もしないこと。"""
        session = DriverSession()
        mock_pw = AsyncMock()
        browser = mock_pw.chromium.launch.return_value

        with _patch_playwright(mock_pw):
            await session.launch()
        await session.close()
        await session.close()

        browser.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_swallows_shutdown_errors(self):
        """終了中のエラーはログのみで、状態は CLOSED になること。"""
        session = DriverSession()
        mock_pw = AsyncMock()
        mock_pw.chromium.launch.return_value.close.side_effect = RuntimeError("boom")

        with _patch_playwright(mock_pw):
            await session.launch()
        await session.close()

        assert session.state == SessionState.CLOSED
