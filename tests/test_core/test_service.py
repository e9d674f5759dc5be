"""
RecorderService のユニットテスト

記録・登録・コード生成の境界操作を検証する。ブラウザを使う
キャプチャと Runner はモックで代用する。
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_mock_driver
from pcg.core.errors import (
    InvalidInputError,
    MalformedUrlError,
    NoScenariosFoundError,
    SessionNotFoundError,
)
from pcg.core.runner import Runner, RunnerConfig
from pcg.dsl.parser import CatalogParser
from pcg.service import RecorderService


CLICK = {"kind": "click", "description": "Click login", "selector": "#login"}


@pytest.fixture
def service(tests_dir: Path) -> RecorderService:
    return RecorderService(tests_dir=tests_dir)


class TestRecording:
    """記録操作のテスト。"""

    @pytest.mark.asyncio
    async def test_start_returns_id_and_url(self, service) -> None:
        """開始すると sessionId と正規化済み URL を返す。"""
        started = await service.start_recording("example.com/login", "Login")
        assert started["targetUrl"] == "https://example.com/login"
        assert started["sessionId"] in service.sessions.active_ids

    @pytest.mark.asyncio
    async def test_start_rejects_missing_name(self, service) -> None:
        """シナリオ名が空なら InvalidInputError で、セッションは残らない。"""
        with pytest.raises(InvalidInputError):
            await service.start_recording("example.com", "")
        assert service.sessions.active_ids == []

    @pytest.mark.asyncio
    async def test_record_step_from_mapping(self, service) -> None:
        """辞書形式のステップを検証して記録する。"""
        session_id = (await service.start_recording("example.com", "s"))["sessionId"]
        recorded = service.record_step(session_id, CLICK)
        assert recorded["step"]["selector"] == "#login"
        assert recorded["step"]["timestamp"] == 1

    @pytest.mark.asyncio
    async def test_record_invalid_step(self, service) -> None:
        """形式が不正なステップは InvalidInputError。"""
        session_id = (await service.start_recording("example.com", "s"))["sessionId"]
        with pytest.raises(InvalidInputError):
            service.record_step(session_id, {"kind": "click", "description": "no selector"})
        assert service.sessions.get_steps(session_id) == ()

    @pytest.mark.asyncio
    async def test_recording_status(self, service) -> None:
        """記録中のステップを確認できる。"""
        session_id = (await service.start_recording("example.com", "s"))["sessionId"]
        service.record_step(session_id, CLICK)
        status = service.get_recording_status(session_id)
        assert status["scenarioName"] == "s"
        assert status["capturing"] is False
        assert [s["description"] for s in status["steps"]] == ["Click login"]

    @pytest.mark.asyncio
    async def test_stop_registers_and_writes_script(self, service, tests_dir) -> None:
        """停止するとシナリオを登録し、スクリプトを書き出す。"""
        session_id = (await service.start_recording("www.example.com", "Login Flow"))["sessionId"]
        service.record_step(session_id, CLICK)

        stopped = await service.stop_recording(session_id)

        assert len(stopped["steps"]) == 1
        assert 'page.click("#login")' in stopped["generatedScript"]
        assert stopped["scenario"]["name"] == "Login Flow"
        assert [s["name"] for s in service.list_scenarios("https://example.com")] == ["Login Flow"]
        script = tests_dir / "Login-Flow.spec.py"
        assert script.read_text(encoding="utf-8") == stopped["generatedScript"]

    @pytest.mark.asyncio
    async def test_stop_with_overrides(self, service) -> None:
        """停止時の名前と URL は開始時の値を上書きする。"""
        session_id = (await service.start_recording("example.com", "draft"))["sessionId"]

        stopped = await service.stop_recording(session_id, "Final", "https://shop.example.org/x")

        assert stopped["scenario"]["name"] == "Final"
        assert service.list_scenarios("shop.example.org")[0]["name"] == "Final"
        assert service.list_scenarios("example.com") == []

    @pytest.mark.asyncio
    async def test_stop_with_bad_url_keeps_session(self, service) -> None:
        """上書き URL が不正ならセッションは停止されない。"""
        session_id = (await service.start_recording("example.com", "s"))["sessionId"]
        with pytest.raises(MalformedUrlError):
            await service.stop_recording(session_id, url="ftp://x")
        assert session_id in service.sessions.active_ids

    @pytest.mark.asyncio
    async def test_stop_unknown_session(self, service) -> None:
        """存在しないセッションの停止は SessionNotFoundError。"""
        with pytest.raises(SessionNotFoundError):
            await service.stop_recording("nope")

    @pytest.mark.asyncio
    async def test_stop_appends_to_catalog(self, tmp_path, tests_dir) -> None:
        """catalog_dir 指定時は記録したシナリオをカタログに追記する。"""
        service = RecorderService(tests_dir=tests_dir, catalog_dir=tmp_path / "catalogs")
        session_id = (await service.start_recording("example.com", "s"))["sessionId"]
        service.record_step(session_id, CLICK)
        await service.stop_recording(session_id)

        domain, scenarios = CatalogParser().load(tmp_path / "catalogs" / "example.com.yaml")
        assert domain == "example.com"
        assert scenarios[0].steps[0].selector == "#login"

    @pytest.mark.asyncio
    async def test_capture_lifecycle(self, tests_dir) -> None:
        """capture=True ではキャプチャを起動し、停止時に閉じる。"""
        capture = MagicMock()
        capture.start = AsyncMock()
        capture.close = AsyncMock()
        capture.wait_closed = AsyncMock()
        service = RecorderService(tests_dir=tests_dir, capture_factory=lambda m, sid: capture)

        session_id = (await service.start_recording("example.com", "s", capture=True))["sessionId"]
        capture.start.assert_awaited_once_with("https://example.com", headed=True)
        assert service.get_recording_status(session_id)["capturing"] is True

        await service.wait_for_capture(session_id)
        await service.stop_recording(session_id)

        capture.wait_closed.assert_awaited_once()
        capture.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_capture_start_failure_cleans_up(self, tests_dir) -> None:
        """キャプチャの起動に失敗したらセッションを残さない。"""
        capture = MagicMock()
        capture.start = AsyncMock(side_effect=RuntimeError("no display"))
        capture.close = AsyncMock()
        service = RecorderService(tests_dir=tests_dir, capture_factory=lambda m, sid: capture)

        with pytest.raises(RuntimeError):
            await service.start_recording("example.com", "s", capture=True)

        capture.close.assert_awaited_once()
        assert service.sessions.active_ids == []


class TestScenariosAndRun:
    """シナリオ一覧と実行のテスト。"""

    def test_list_requires_url(self, service) -> None:
        """URL が空なら InvalidInputError。"""
        with pytest.raises(InvalidInputError):
            service.list_scenarios("")

    def test_seed_catalog_file(self, service, tmp_path, sample_catalog_yaml) -> None:
        """カタログファイルからシナリオを登録する。"""
        path = tmp_path / "example.com.yaml"
        path.write_text(sample_catalog_yaml, encoding="utf-8")
        assert service.seed_catalog(path) == 2
        assert len(service.list_scenarios("www.example.com")) == 2

    @pytest.mark.asyncio
    async def test_run_requires_url(self, service) -> None:
        """URL が空なら InvalidInputError。"""
        with pytest.raises(InvalidInputError):
            await service.run_scenarios(None)

    @pytest.mark.asyncio
    async def test_run_unknown_domain(self, service) -> None:
        """シナリオのないドメインは NoScenariosFoundError。"""
        with pytest.raises(NoScenariosFoundError):
            await service.run_scenarios("https://nothing.example")

    @pytest.mark.asyncio
    async def test_run_seeded_scenarios(self, service, tmp_path, sample_catalog_yaml) -> None:
        """登録済みシナリオをモックブラウザで実行する。"""
        path = tmp_path / "example.com.yaml"
        path.write_text(sample_catalog_yaml, encoding="utf-8")
        service.seed_catalog(path)
        driver = make_mock_driver()
        service.runner = Runner(
            service.registry,
            RunnerConfig(base_artifacts_dir=tmp_path / "artifacts"),
            session_factory=lambda: driver,
        )

        result = await service.run_scenarios("https://www.example.com", ["Search"])

        wire = result.to_wire()
        assert wire["status"] == "passed"
        assert [r["scenarioName"] for r in wire["results"]] == ["Search"]
        assert len(wire["results"][0]["steps"]) == 2


    @pytest.mark.asyncio
    async def test_execute_inline_scenario(self, service, tmp_path) -> None:
        """辞書形式のシナリオを登録せずに実行する。"""
        driver = make_mock_driver()
        service.runner = Runner(
            service.registry,
            RunnerConfig(base_artifacts_dir=tmp_path / "artifacts"),
            session_factory=lambda: driver,
        )

        result = await service.execute_scenario(
            {"name": "Inline", "steps": [CLICK]}, "https://www.example.com",
        )

        assert result.status == "passed"
        assert result.scenarios[0].steps[0].step_description == "Click login"
        assert service.list_scenarios("example.com") == []

    @pytest.mark.asyncio
    async def test_execute_invalid_scenario(self, service) -> None:
        """不正なシナリオは InvalidInputError。"""
        with pytest.raises(InvalidInputError):
            await service.execute_scenario({"steps": []}, "https://a.example")

    @pytest.mark.asyncio
    async def test_execute_requires_url(self, service) -> None:
        """URL も targetUrl もなければ InvalidInputError。"""
        with pytest.raises(InvalidInputError):
            await service.execute_scenario({"name": "x", "steps": []})


class TestCodeGeneration:
    """コード生成操作のテスト。"""

    def test_generate_code_from_mapping(self, service) -> None:
        """辞書形式のシナリオからスクリプトを生成する。"""
        result = service.generate_code(
            {"name": "Search", "steps": [CLICK], "targetUrl": "example.com"},
        )
        assert 'BASE_URL = "https://example.com"' in result["code"]
        assert "def test_search(page: Page) -> None:" in result["code"]

    def test_generate_code_initial_url_and_test_data(self, service, shopping_scenario) -> None:
        """initial_url とテストデータを反映する。"""
        result = service.generate_code(
            shopping_scenario, {"password": "hunter2"}, "https://staging.example.com",
        )
        assert 'BASE_URL = "https://staging.example.com"' in result["code"]
        assert '"hunter2"' in result["code"]

    def test_generate_code_requires_url(self, service) -> None:
        """開始 URL が決まらなければ InvalidInputError。"""
        with pytest.raises(InvalidInputError):
            service.generate_code({"name": "x", "steps": []})

    def test_generate_code_invalid_scenario(self, service) -> None:
        """不正なシナリオは InvalidInputError。"""
        with pytest.raises(InvalidInputError):
            service.generate_code({"steps": []}, initial_url="https://a.com")

    def test_generate_api_code(self, service) -> None:
        """API スクリプトを生成する。"""
        result = service.generate_api_code("https://api.example.com/items", "GET", None, {"id": 1})
        assert "assert isinstance(body['id'], int)" in result["code"]

    def test_generate_code_with_data_set(self, service, shopping_scenario, tmp_path) -> None:
        """データセットを基にし、test_data の値で上書きする。"""
        path = tmp_path / "data.yaml"
        path.write_text("sets:\n  qa: {username: qa_user, password: qa_pass}\n", encoding="utf-8")
        assert service.load_data_sets(path) == ["hardcoded", "qa"]

        code = service.generate_code(
            shopping_scenario, {"password": "override"}, "https://a.example", data_set="qa",
        )["code"]

        assert '"qa_user"' in code
        assert '"override"' in code
        assert '"qa_pass"' not in code

    def test_generate_code_unknown_data_set(self, service, shopping_scenario) -> None:
        """存在しないデータセットは InvalidInputError。"""
        with pytest.raises(InvalidInputError):
            service.generate_code(shopping_scenario, initial_url="https://a.example", data_set="x")
