"""
Configuration handling for ado_contrib_sync.

Defines the saved-credential schema and the locations the tool reads and
writes relative to the working directory.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

# Saved configs live next to where the tool is run
CONFIG_DIR_NAME = ".ado-contrib-sync"
CONTRIBUTIONS_DIR_NAME = "contributions"


class SavedConfig(BaseModel):
    """Credentials and search settings persisted per organization."""

    organization: str = Field(..., description="Azure DevOps organization name")
    token: str = Field(..., description="Personal access token (PAT)")
    emails: list[str] = Field(
        default_factory=list,
        description="Author email addresses to search for",
    )

    @field_validator("organization", "token")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("emails")
    @classmethod
    def _clean_emails(cls, emails: list[str]) -> list[str]:
        return parse_emails(emails)

    @classmethod
    def load(cls, path: Path) -> "SavedConfig | None":
        """
        Load a saved config from a JSON file.

        Returns None if the file does not exist. Raises ConfigError if the
        file exists but cannot be read or does not match the schema.
        """
        if not path.exists():
            return None
        try:
            with open(path) as f:
                data = json.load(f)
            return cls.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(path, str(e)) from e

    def save(self, path: Path) -> None:
        """Save config to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)


def config_path_for(organization: str, base_dir: Path | None = None) -> Path:
    """Get the saved-config path for an organization."""
    base = base_dir if base_dir is not None else Path.cwd()
    return base / CONFIG_DIR_NAME / f"{organization}.json"


def contributions_path_for(organization: str, root: Path | None = None) -> Path:
    """Get the local contributions repository path for an organization."""
    base = root if root is not None else Path.cwd() / CONTRIBUTIONS_DIR_NAME
    return base / organization


def load_saved_config(organization: str, base_dir: Path | None = None) -> SavedConfig | None:
    """
    Load the saved config for an organization, tolerating bad files.

    A malformed config is reported as a warning and treated as absent.
    """
    path = config_path_for(organization, base_dir)
    try:
        return SavedConfig.load(path)
    except ConfigError as e:
        logger.warning("Ignoring saved config: %s", e)
        return None


def parse_emails(values: list[str] | tuple[str, ...]) -> list[str]:
    """Split comma-separated entries, strip whitespace and drop duplicates/blanks."""
    emails: list[str] = []
    for value in values:
        for part in value.split(","):
            email = part.strip()
            if email and email not in emails:
                emails.append(email)
    return emails
