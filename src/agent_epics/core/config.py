"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from ..utils.validators import validate_owner_repo
from .task import AgentProfile, EpicDefinition, TaskStatus

logger = logging.getLogger(__name__)


DEFAULT_BOARD_OPTIONS: Dict[str, str] = {
    TaskStatus.BACKLOG.value: "Backlog",
    TaskStatus.READY.value: "Ready",
    TaskStatus.IN_PROGRESS.value: "In Progress",
    TaskStatus.REVIEW.value: "Review",
    TaskStatus.DONE.value: "Done",
    TaskStatus.BLOCKED.value: "Blocked",
}

# Personas used when no config/agents.yaml exists
DEFAULT_AGENTS: List[AgentProfile] = [
    AgentProfile(
        id="agent-researcher", name="Research Agent", type="researcher",
        skills=["research", "analysis", "documentation", "requirements"],
    ),
    AgentProfile(
        id="agent-architect", name="Architect Agent", type="architect",
        skills=["architecture", "design", "systems", "patterns"],
    ),
    AgentProfile(
        id="agent-coder", name="Coder Agent", type="coder",
        skills=["typescript", "nodejs", "api", "database", "implementation"],
    ),
    AgentProfile(
        id="agent-tester", name="Tester Agent", type="tester",
        skills=["testing", "jest", "integration", "e2e", "tdd"],
    ),
    AgentProfile(
        id="agent-reviewer", name="Reviewer Agent", type="reviewer",
        skills=["code-review", "security", "best-practices", "documentation"],
    ),
]


class GitHubConfig(BaseModel):
    """GitHub configuration."""
    token: Optional[str] = None
    owner: str
    repo: str
    owner_type: Literal["user", "org"] = "user"
    project_number: Optional[int] = None  # Reuse an existing board instead of creating one
    create_project: bool = True
    api_url: str = "https://api.github.com"
    timeout: int = 30

    @model_validator(mode='after')
    def validate_repo(self) -> 'GitHubConfig':
        validate_owner_repo(self.full_name)
        return self

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class StatusSyncConfig(BaseModel):
    """How task statuses are mirrored onto the board and labels."""
    status_field_name: str = "Status"
    board_options: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_BOARD_OPTIONS))
    label_prefix: str = "status:"
    completion_comment: str = "Task completed by {completed_by}. Status: Done."

    @field_validator('board_options')
    @classmethod
    def validate_board_options(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Every status needs a board option; unknown keys are rejected."""
        known = {s.value for s in TaskStatus}
        unknown = set(v) - known
        if unknown:
            raise ValueError(f"Unknown statuses in board_options: {sorted(unknown)}")
        missing = known - set(v)
        if missing:
            raise ValueError(f"board_options missing statuses: {sorted(missing)}")
        return v

    @field_validator('label_prefix')
    @classmethod
    def validate_label_prefix(cls, v: str) -> str:
        if not v:
            raise ValueError("label_prefix cannot be empty")
        return v


class CompletionConfig(BaseModel):
    """File-existence completion detection settings."""
    root_dir: Path = Field(default=Path("."))
    completed_by: str = "agent-epics completion scan"


class EpicsConfig(BaseSettings):
    """Main configuration, passed explicitly to the orchestrator."""
    workspace: Path = Field(default=Path("."))
    state_dir: str = ".agent-epics"
    log_level: str = "INFO"

    status: StatusSyncConfig = Field(default_factory=StatusSyncConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log_level: {v}")
        return v.upper()

    @property
    def epics_dir(self) -> Path:
        return self.workspace / self.state_dir / "epics"

    @property
    def completion_root(self) -> Path:
        """Directory expected paths are checked under; relative roots hang off the workspace."""
        root = self.completion.root_dir
        return root if root.is_absolute() else self.workspace / root

    class Config:
        env_prefix = "EPICS_"
        env_file = ".env"
        extra = "allow"


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _load_config_from_file(config_path: Path) -> EpicsConfig:
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}
    return EpicsConfig(**_expand_env_vars(data))


def load_config(config_path: Path = Path("agent-epics.yaml")) -> EpicsConfig:
    """Load configuration from YAML, falling back to defaults when absent."""
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration."
        )
        return EpicsConfig()

    result = _get_cached_or_load(config_path.resolve(), _load_config_from_file)
    return result if result is not None else EpicsConfig()


def _load_agents_from_file(agents_path: Path) -> List[AgentProfile]:
    with open(agents_path) as f:
        data = yaml.safe_load(f) or {}
    return [AgentProfile(**agent) for agent in data.get("agents", [])]


def load_agents(agents_path: Path = Path("config/agents.yaml")) -> List[AgentProfile]:
    """Load the agent catalog, or the built-in personas when the file is absent."""
    if not agents_path.exists():
        return list(DEFAULT_AGENTS)
    result = _get_cached_or_load(agents_path.resolve(), _load_agents_from_file)
    return result if result is not None else list(DEFAULT_AGENTS)


def _load_github_config_from_file(github_path: Path) -> GitHubConfig:
    with open(github_path) as f:
        data = yaml.safe_load(f) or {}
    data = _expand_env_vars(data)
    return GitHubConfig(**data.get("github", {}))


def load_github_config(github_path: Path = Path("config/github.yaml")) -> Optional[GitHubConfig]:
    """Load GitHub configuration; None when the file doesn't exist."""
    if not github_path.exists():
        return None
    return _get_cached_or_load(github_path.resolve(), _load_github_config_from_file)


def load_epic_definition(path: Path) -> EpicDefinition:
    """Load an epic plan from YAML (top-level ``epic`` key or bare mapping)."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    data = data.get("epic", data)
    return EpicDefinition(**data)


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` string values from the environment.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "github.token")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data
