"""YAML manifest parser."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from pydantic import ValidationError

from .models import ManifestConfig
from ..provisioners.base import Resource
from ..utils.errors import ConfigurationError


def format_location(loc: Sequence[Any]) -> str:
    """Render a pydantic error location as ``parameter_groups[0].name``."""
    path = ''
    for part in loc:
        if isinstance(part, int):
            path += f'[{part}]'
        else:
            path += f'.{part}' if path else str(part)
    return path or '<manifest>'


class ConfigValidationError(ConfigurationError):
    """The manifest could not be parsed or failed validation.

    ``errors`` holds one ``{"loc": [...], "msg": "..."}`` entry per problem.
    """

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self) -> str:
        problems = [f"  - {format_location(e.get('loc', []))}: {e.get('msg', 'invalid')}" for e in self.errors]
        return "\n".join([self.message, *problems]) if problems else self.message


class Config:
    """A desired-state manifest loaded from YAML."""

    def __init__(self, config_path: str):
        self.config_path = Path(config_path)
        self.data: Dict = {}
        self.manifest: Optional[ManifestConfig] = None

    def load(self) -> "Config":
        """Read and validate the manifest; returns self.

        Raises:
            FileNotFoundError: The manifest does not exist
            ConfigValidationError: The YAML is malformed or the manifest is invalid
        """
        if not self.config_path.is_file():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            data = yaml.safe_load(self.config_path.read_text(encoding='utf-8'))
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML in {self.config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigValidationError(
                "Invalid manifest",
                [{"loc": [], "msg": "Top level of the manifest must be a mapping"}],
            )
        self.data = data

        try:
            self.manifest = ManifestConfig.model_validate(data)
        except ValidationError as e:
            problems = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
            raise ConfigValidationError(
                f"Invalid manifest {self.config_path} ({len(problems)} error(s))",
                problems,
            ) from e

        return self

    @property
    def region(self) -> Optional[str]:
        return self.manifest.region if self.manifest else None

    def resources(self) -> List[Resource]:
        """Desired resources in creation order."""
        if self.manifest is None:
            raise ConfigurationError("Configuration has not been loaded")
        return self.manifest.resources()
