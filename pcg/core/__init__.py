# コアモジュール
# シナリオレジストリ、ブラウザセッション、Runner、成果物管理、レポート生成、例外定義を提供

from .artifacts import ArtifactsManager, sanitize_name, write_script
from .errors import (
    InvalidInputError,
    MalformedUrlError,
    NavigationError,
    NoScenariosFoundError,
    NotFoundError,
    PcgError,
    ScenarioNotFoundError,
    SessionNotActiveError,
    SessionNotFoundError,
    StepFailure,
)
from .reporting import Reporter
from .runner import ExecutionResult, Runner, RunnerConfig, ScenarioResult, StepResult
from .scenarios import ScenarioRegistry, normalize_domain, normalize_url
from .session import DriverSession

__all__ = [
    "ArtifactsManager",
    "DriverSession",
    "ExecutionResult",
    "InvalidInputError",
    "MalformedUrlError",
    "NavigationError",
    "NoScenariosFoundError",
    "NotFoundError",
    "PcgError",
    "Reporter",
    "Runner",
    "RunnerConfig",
    "ScenarioNotFoundError",
    "ScenarioRegistry",
    "ScenarioResult",
    "SessionNotActiveError",
    "SessionNotFoundError",
    "StepFailure",
    "StepResult",
    "normalize_domain",
    "normalize_url",
    "sanitize_name",
    "write_script",
]
