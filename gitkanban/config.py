# gitkanban - configuration
# Override repository, branch and limits via config.yaml or GITKANBAN_CONFIG.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import ConfigError

CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"


@dataclass
class Config:
    """Runtime configuration for the board store."""

    # GitHub repository used as the backing store
    api_url: str = "https://api.github.com"
    repo_owner: str = ""
    repo_name: str = ""
    branch: str = "main"
    content_root: str = "content/kanban"

    # Credentials: the token itself is never stored in the file
    token_env: str = "GITHUB_PAT"
    api_version: str = "2022-11-28"
    user_agent: str = "gitkanban"

    # Timing
    request_timeout: float = 10.0      # per HTTP call
    transaction_timeout: float = 30.0  # whole save/create transaction

    # Policy
    create_attempts: int = 2
    max_columns: int = 10
    allowed_boards: List[str] = field(default_factory=list)  # empty = any valid id

    # Downstream rebuild trigger (empty string disables it)
    dispatch_event: str = "precompile-content"

    def token(self) -> str:
        """Resolve the GitHub token from the environment."""
        value = os.environ.get(self.token_env, "").strip()
        if not value:
            raise ConfigError(
                f"Environment variable {self.token_env} is not set.\n"
                f"Set it:  export {self.token_env}=<personal access token>"
            )
        return value

    def validate(self) -> None:
        if not self.repo_owner or not self.repo_name:
            raise ConfigError("repo_owner and repo_name must be configured")
        if self.create_attempts < 1:
            raise ConfigError(f"create_attempts must be >= 1, got {self.create_attempts}")
        if self.max_columns < 1:
            raise ConfigError(f"max_columns must be >= 1, got {self.max_columns}")
        self.content_root = self.content_root.strip("/")

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        path = path or os.environ.get("GITKANBAN_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        else:
            cfg = cls()
        cfg.validate()
        return cfg
