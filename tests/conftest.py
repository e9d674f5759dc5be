"""
テスト共通フィクスチャ・Hypothesis ストラテジー定義

全テストモジュールで共有するフィクスチャとデータ生成器を提供する。
Playwright の Page / BrowserContext / DriverSession はモックで代用し、
実際のブラウザは起動しない。
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from hypothesis import strategies as st

from pcg.dsl.schema import Scenario, Step


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def login_step() -> Step:
    """saucedemo 形式の login ステップ。"""
    return Step(
        kind="login",
        description="Login with valid credentials",
        selector="#user-name, #password",
        payload={
            "username": "standard_user",
            "password": "secret_sauce",
            "submitSelector": "#login-button",
        },
        expectedText="Products",
    )


@pytest.fixture
def shopping_scenario(login_step: Step) -> Scenario:
    """login → クリック → 遷移の3ステップからなるシナリオ。"""
    return Scenario(
        name="Shopping Flow",
        targetUrl="https://www.saucedemo.com",
        steps=(
            login_step,
            Step(
                kind="action",
                description="Add first item to cart",
                selector='[data-test="add-to-cart-sauce-labs-backpack"]',
                expectedText="Remove",
            ),
            Step(
                kind="navigation",
                description="Navigate to cart",
                selector='[data-test="shopping-cart-link"]',
                expectedText="Your Cart",
            ),
        ),
    )


@pytest.fixture
def sample_catalog_yaml() -> str:
    """最小構成のカタログ YAML 文字列。"""
    return """\
domain: example.com
url: https://www.example.com
scenarios:
  - name: Login Flow
    steps:
      - kind: login
        description: Login
        selector: "#user, #pass"
        payload:
          username: alice
          password: wonderland
        expectedText: Welcome
  - name: Search
    steps:
      - kind: fill
        description: Type query
        selector: "input[name=q]"
        payload:
          value: playwright
      - kind: click
        description: Submit search
        selector: "button[type=submit]"
"""


def make_mock_page() -> MagicMock:
    """モック Page を生成する。

    get_by_text は同期メソッドのため MagicMock とし、
    返る Locator の first.wait_for のみ AsyncMock にする。
    """
    page = AsyncMock()
    locator = MagicMock()
    locator.first.wait_for = AsyncMock()
    page.get_by_text = MagicMock(return_value=locator)
    page.on = MagicMock()
    page.is_closed = MagicMock(return_value=False)
    return page


def make_mock_driver(page: MagicMock | None = None) -> MagicMock:
    """モック DriverSession を生成する。

    new_context() は呼び出しごとに新しいモック Context を返し、
    生成した Context は driver.contexts に記録される。
    """
    driver = MagicMock()
    driver.launch = AsyncMock()
    driver.close = AsyncMock()
    driver.is_active = False
    driver.contexts = []
    driver.pages = []

    async def _new_context():
        context = MagicMock()
        new_page = page if page is not None else make_mock_page()
        context.new_page = AsyncMock(return_value=new_page)
        context.close = AsyncMock()
        driver.contexts.append(context)
        driver.pages.append(new_page)
        return context

    driver.new_context = AsyncMock(side_effect=_new_context)
    return driver


# ---------------------------------------------------------------------------
# Hypothesis ストラテジー
# ---------------------------------------------------------------------------

_SELECTORS = st.from_regex(r"#[a-z][a-z0-9\-]{0,15}", fullmatch=True)
_TEXT = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)), min_size=1, max_size=40,
).filter(lambda s: s.strip())


def make_step_strategy():
    """既知種別と未知種別を含む Step を生成する Hypothesis ストラテジー。"""
    click_like = st.builds(
        Step,
        kind=st.sampled_from(["navigation", "action", "click", "check", "uncheck"]),
        description=_TEXT,
        selector=_SELECTORS,
        expectedText=st.one_of(st.none(), _TEXT),
    )
    inputs = st.builds(
        Step,
        kind=st.sampled_from(["fill", "select"]),
        description=_TEXT,
        selector=_SELECTORS,
        payload=st.fixed_dictionaries({"value": st.text(max_size=30)}),
    )
    login = st.builds(
        Step,
        kind=st.just("login"),
        description=_TEXT,
        selector=_SELECTORS,
        payload=st.fixed_dictionaries({
            "username": st.text(max_size=20),
            "password": st.text(max_size=20),
        }),
        expectedText=st.one_of(st.none(), _TEXT),
    )
    unknown = st.builds(
        Step,
        kind=st.from_regex(r"custom[a-z]{1,8}", fullmatch=True),
        description=_TEXT,
    )
    return st.one_of(click_like, inputs, login, unknown)


def make_scenario_strategy():
    """Scenario を生成する Hypothesis ストラテジー。"""
    return st.builds(
        Scenario,
        name=_TEXT,
        steps=st.lists(make_step_strategy(), max_size=8).map(tuple),
        targetUrl=st.from_regex(r"https://[a-z]{1,10}\.(com|org|net)", fullmatch=True),
    )


def make_url_strategy():
    """スキーム・www・パス・大文字を混在させた URL を生成するストラテジー。"""
    return st.builds(
        lambda scheme, www, host, tld, path: f"{scheme}{www}{host}.{tld}{path}",
        st.sampled_from(["", "http://", "https://", "HTTPS://"]),
        st.sampled_from(["", "www.", "WWW."]),
        st.from_regex(r"[a-zA-Z][a-zA-Z0-9\-]{0,12}", fullmatch=True).filter(
            lambda host: host.lower() != "www"
        ),
        st.sampled_from(["com", "org", "co.jp", "io"]),
        st.sampled_from(["", "/", "/login", "/a/b?x=1", "#top", ":8080/path"]),
    )


@pytest.fixture
def tests_dir(tmp_path: Path) -> Path:
    """生成スクリプトの出力先ディレクトリ。"""
    return tmp_path / "generated"
