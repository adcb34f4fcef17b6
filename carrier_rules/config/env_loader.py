"""Locate and load the `.env` file used by the CLI and embedding services."""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from carrier_rules.config.logging_config import get_logger

logger = get_logger(__name__)


def find_env_file(project_dir: Optional[Path] = None) -> Optional[Path]:
    """Return the `.env` file next to the project, preferring the parent directory.

    Args:
        project_dir: Project root directory. If None, derived from this file.

    Returns:
        Path of the first existing `.env`, or None
    """
    if project_dir is None:
        # carrier_rules/config/env_loader.py -> project root
        project_dir = Path(__file__).parent.parent.parent

    for candidate in (project_dir.parent / ".env", project_dir / ".env"):
        if candidate.exists():
            return candidate
    return None


def load_environment_variables(project_dir: Optional[Path] = None) -> Optional[Path]:
    """Load rule engine settings (RULES_DIR, LOG_LEVEL, ...) from a `.env` file.

    Already exported variables win over the file.

    Returns:
        The loaded file, or None when there is none
    """
    env_file = find_env_file(project_dir)
    if env_file is not None:
        load_dotenv(env_file, override=False)
        logger.debug(f"Loaded environment from {env_file}")
    return env_file
