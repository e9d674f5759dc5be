"""
CatalogParser のユニットテスト

カタログ YAML の読み込み・書き出し・レジストリへのシードと、
エラーハンドリングを検証する。
"""

from pathlib import Path

import pytest

from pcg.core.scenarios import ScenarioRegistry
from pcg.dsl.parser import CatalogParser, catalog_path
from pcg.dsl.schema import Scenario, Step


@pytest.fixture
def parser() -> CatalogParser:
    """CatalogParser インスタンスを提供する。"""
    return CatalogParser()


@pytest.fixture
def catalog_file(tmp_path: Path, sample_catalog_yaml: str) -> Path:
    """サンプルカタログを書き出したファイル。"""
    path = tmp_path / "example.com.yaml"
    path.write_text(sample_catalog_yaml, encoding="utf-8")
    return path


class TestLoad:
    """load() のテスト。"""

    def test_load_returns_domain_and_scenarios(self, parser, catalog_file) -> None:
        """ドメインキーとシナリオ一覧を返す。"""
        domain, scenarios = parser.load(catalog_file)
        assert domain == "example.com"
        assert [s.name for s in scenarios] == ["Login Flow", "Search"]
        assert scenarios[0].steps[0].payload["username"] == "alice"

    def test_target_url_defaults_to_catalog_url(self, parser, catalog_file) -> None:
        """シナリオの targetUrl はカタログの url になる。"""
        _, scenarios = parser.load(catalog_file)
        assert all(s.targetUrl == "https://www.example.com" for s in scenarios)

    def test_domain_defaults_to_file_name(self, parser, tmp_path: Path) -> None:
        """domain 省略時はファイル名（.yaml 除く）から決まる。"""
        path = tmp_path / "www.Shop.example.org.yaml"
        path.write_text(
            "scenarios:\n  - name: a\n    steps: []\n", encoding="utf-8",
        )
        domain, scenarios = parser.load(path)
        assert domain == "shop.example.org"
        assert scenarios[0].targetUrl == "https://shop.example.org"

    def test_missing_file(self, parser, tmp_path: Path) -> None:
        """存在しないファイルは FileNotFoundError。"""
        with pytest.raises(FileNotFoundError):
            parser.load(tmp_path / "missing.yaml")

    def test_empty_file(self, parser, tmp_path: Path) -> None:
        """空ファイルは ValueError。"""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ValueError, match="空"):
            parser.load(path)

    def test_syntax_error_has_line(self, parser, tmp_path: Path) -> None:
        """YAML 構文エラーは行番号付きの ValueError。"""
        path = tmp_path / "broken.yaml"
        path.write_text("scenarios:\n  - name: [unclosed\n", encoding="utf-8")
        with pytest.raises(ValueError, match="YAML 構文エラー"):
            parser.load(path)

    def test_schema_error(self, parser, tmp_path: Path) -> None:
        """selector のない click ステップはスキーマ検証エラー。"""
        path = tmp_path / "bad.yaml"
        path.write_text(
            "scenarios:\n"
            "  - name: a\n"
            "    steps:\n"
            "      - kind: click\n"
            "        description: no selector\n",
            encoding="utf-8",
        )
        with pytest.raises(ValueError, match="スキーマ検証エラー"):
            parser.load(path)

    def test_scenarios_must_be_list(self, parser, tmp_path: Path) -> None:
        """scenarios がリストでなければ ValueError。"""
        path = tmp_path / "bad.yaml"
        path.write_text("scenarios: nope\n", encoding="utf-8")
        with pytest.raises(ValueError, match="リスト"):
            parser.load(path)


class TestSeed:
    """seed() / seed_dir() のテスト。"""

    def test_seed_registers_all(self, parser, catalog_file) -> None:
        """カタログの全シナリオがレジストリに登録される。"""
        registry = ScenarioRegistry()
        assert parser.seed(registry, catalog_file) == 2
        assert len(registry.list_scenarios("https://example.com/login")) == 2

    def test_seed_dir_ignores_other_files(self, parser, tmp_path, sample_catalog_yaml) -> None:
        """seed_dir() は .yaml / .yml 以外のファイルを無視する。"""
        (tmp_path / "example.com.yaml").write_text(sample_catalog_yaml, encoding="utf-8")
        (tmp_path / "notes.txt").write_text("not a catalog", encoding="utf-8")
        registry = ScenarioRegistry()
        assert parser.seed_dir(registry, tmp_path) == 2

    def test_seed_dir_missing_directory(self, parser, tmp_path: Path) -> None:
        """存在しないディレクトリは 0 件。"""
        assert parser.seed_dir(ScenarioRegistry(), tmp_path / "nope") == 0

    def test_bundled_catalog_loads(self, parser) -> None:
        """同梱の saucedemo カタログが読み込める。"""
        path = Path(__file__).resolve().parents[2] / "catalogs" / "saucedemo.com.yaml"
        domain, scenarios = parser.load(path)
        assert domain == "saucedemo.com"
        assert [s.name for s in scenarios] == [
            "Login Flow", "Shopping Flow", "Error Handling Flow",
        ]


class TestDump:
    """dump() / append_scenario() のテスト。"""

    def test_dump_then_load(self, parser, tmp_path: Path) -> None:
        """書き出したカタログを読み込むと同じシナリオが得られる。"""
        scenario = Scenario(
            name="Checkout",
            targetUrl="https://example.com",
            steps=(
                Step(kind="click", description="Open cart", selector="#cart"),
                Step(kind="fill", description="Zip", selector="#zip", payload={"value": "100"}),
            ),
        )
        path = tmp_path / "out" / "example.com.yaml"
        parser.dump("example.com", [scenario], path)

        domain, loaded = parser.load(path)
        assert domain == "example.com"
        assert loaded == [scenario]

    def test_dump_omits_defaults(self, parser, tmp_path: Path) -> None:
        """既定値（空 payload, timestamp 0）は書き出さない。"""
        scenario = Scenario(
            name="a", steps=(Step(kind="click", description="c", selector="#a"),),
        )
        path = tmp_path / "a.yaml"
        parser.dump("a.com", [scenario], path)
        text = path.read_text(encoding="utf-8")
        assert "timestamp" not in text
        assert "payload" not in text

    def test_append_scenario_keeps_existing(self, parser, catalog_file) -> None:
        """append_scenario() は既存シナリオと url を保持して末尾に追記する。"""
        new = Scenario(
            name="Logout",
            targetUrl="https://www.example.com",
            steps=(Step(kind="click", description="Logout", selector="#logout"),),
        )
        parser.append_scenario(catalog_file, "example.com", new)

        _, scenarios = parser.load(catalog_file)
        assert [s.name for s in scenarios] == ["Login Flow", "Search", "Logout"]
        assert "url: https://www.example.com" in catalog_file.read_text(encoding="utf-8")

    def test_append_creates_file(self, parser, tmp_path: Path) -> None:
        """カタログがなければ新規作成する。"""
        path = catalog_path(tmp_path, "https://www.new.example/x")
        assert path.name == "new.example.yaml"
        parser.append_scenario(
            path, "new.example", Scenario(name="a", targetUrl="https://new.example"),
        )
        _, scenarios = parser.load(path)
        assert scenarios[0].name == "a"
