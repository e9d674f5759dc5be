"""
recorder パッケージ — 記録セッション管理とブラウザ操作キャプチャ

主な機能:
  - RecordingSessionManager: 記録セッションの開始・追記・停止
  - PageCapture: Playwright ページ上の操作を Step に正規化して記録
"""

from __future__ import annotations

from .capture import PageCapture, event_to_step
from .session import RecordingSession, RecordingSessionManager, RecordingState

__all__ = [
    "PageCapture",
    "RecordingSession",
    "RecordingSessionManager",
    "RecordingState",
    "event_to_step",
]
