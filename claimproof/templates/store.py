"""
Template storage.

``FileTemplateStore`` keeps one template per file in a directory, as
``<name>.yaml`` (preferred on save) or ``<name>.json``. Templates are
structurally validated on load.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Protocol, Union

import yaml

from ..exceptions import TemplateError
from ..types import Template
from .validation import ensure_valid_template, validate_template

logger = logging.getLogger(__name__)

_SUFFIXES = (".yaml", ".yml", ".json")


class TemplateStore(Protocol):
    def load(self, name: str) -> Template: ...

    def save(self, template: Template) -> None: ...

    def delete(self, name: str) -> bool: ...

    def list(self) -> List[str]: ...


def load_template_file(path: Union[str, Path]) -> Template:
    """
    Read and validate a single template file.

    Raises:
        TemplateError: If the file cannot be parsed or fails validation.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateError(f"Cannot read template file {path}: {exc}") from exc
    try:
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise TemplateError(f"Cannot parse template file {path}: {exc}") from exc
    return ensure_valid_template(data)


class FileTemplateStore:
    """Directory-backed ``TemplateStore``."""

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)

    def _find(self, name: str) -> Path:
        for suffix in _SUFFIXES:
            path = self.directory / f"{name}{suffix}"
            if path.is_file():
                return path
        raise TemplateError(f"Template not found: {name}")

    def load(self, name: str) -> Template:
        template = load_template_file(self._find(name))
        logger.debug("Loaded template %s from %s", name, self.directory)
        return template

    def save(self, template: Template) -> None:
        errors = validate_template(template)
        if errors:
            raise TemplateError(f"Refusing to save invalid template {template.name}", errors)
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{template.name}.yaml"
        with path.open("w", encoding="utf-8") as fh:
            yaml.safe_dump(template.to_dict(), fh, sort_keys=False, allow_unicode=True)
        logger.info("Saved template %s to %s", template.name, path)

    def delete(self, name: str) -> bool:
        removed = False
        for suffix in _SUFFIXES:
            path = self.directory / f"{name}{suffix}"
            if path.exists():
                path.unlink()
                removed = True
        return removed

    def list(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        names = {p.stem for p in self.directory.iterdir() if p.suffix in _SUFFIXES}
        return sorted(names)
