"""
Structural validation for templates and the data extracted with them.

Both validators return the full list of problems found; callers decide
whether to raise.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Mapping, Union

from ..exceptions import TemplateError
from ..types import ExtractedData, Template
from .extractors import is_valid_extractor

logger = logging.getLogger(__name__)

_VERSION = re.compile(r"^\d+\.\d+\.\d+$")
_DOMAIN = re.compile(
    r"^[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?"
    r"(?:\.[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?)+$"
)
_SELECTOR_START = re.compile(r"^[a-zA-Z.#\[*]")


def validate_selector(selector: str) -> bool:
    """Accept XPath expressions and CSS selectors with a sane first token."""
    if not selector or not selector.strip():
        return False
    if selector.startswith("/"):
        return True
    if selector[0].isdigit() or not _SELECTOR_START.match(selector):
        return False
    return "no-selector" not in selector


def validate_domain(domain: str) -> bool:
    if not domain or not domain.strip():
        return False
    if domain.startswith((".", "http://", "https://")) or domain.endswith("."):
        return False
    if " " in domain or "!" in domain or "." not in domain:
        return False
    return bool(_DOMAIN.match(domain))


def validate_version(version: str) -> bool:
    return bool(_VERSION.match(version))


def _string_map_errors(data: Mapping[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, Mapping):
        return [f"{key} must be an object"]

    errors: List[str] = []
    label = "Selector" if key == "selectors" else "Extractor"
    for name, entry in value.items():
        if not isinstance(entry, str):
            errors.append(f"{label} {name} must be a string")
        elif key == "selectors" and not validate_selector(entry):
            errors.append(f'Invalid selector "{name}": {entry}')
        elif key == "extractors" and not is_valid_extractor(entry):
            errors.append(f'Invalid extractor "{name}": Syntax error')
    return errors


def validate_template(template: Union[Template, Mapping[str, Any]]) -> List[str]:
    """
    Check a template (or its wire mapping) for structural problems.

    Returns:
        Every error found; empty when the template is valid.
    """
    data = template.to_dict() if isinstance(template, Template) else template
    if not isinstance(data, Mapping):
        return ["Template must be an object"]

    errors: List[str] = []
    if not data.get("domain"):
        errors.append("Missing required field: domain")
    if not data.get("name"):
        errors.append("Missing required field: name")

    errors.extend(_string_map_errors(data, "selectors"))
    errors.extend(_string_map_errors(data, "extractors"))

    domain = data.get("domain")
    if domain and not (isinstance(domain, str) and validate_domain(domain)):
        errors.append(f"Invalid domain format: {domain}")

    version = data.get("version")
    if version and not (isinstance(version, str) and validate_version(version)):
        errors.append(f"Invalid version format: {version}")

    return errors


def ensure_valid_template(data: Mapping[str, Any]) -> Template:
    """
    Validate a template mapping and build the ``Template``.

    Raises:
        TemplateError: If the mapping is structurally invalid.
    """
    errors = validate_template(data)
    if errors:
        raise TemplateError("Invalid template", errors)
    try:
        return Template.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise TemplateError("Invalid template", [str(exc)]) from exc


def validate_extracted_data(data: ExtractedData, template: Template) -> List[str]:
    """Check captured data against the template's validation block and domain."""
    errors: List[str] = []
    validation = template.validation

    if validation is not None:
        for name in validation.required_fields:
            value = data.raw.get(name)
            if value is None or not str(value).strip():
                errors.append(f"Required field '{name}' is missing or empty")

        if validation.max_data_size:
            size = len(json.dumps(data.to_dict(), separators=(",", ":")))
            if size > validation.max_data_size:
                errors.append(f"Data size {size} exceeds maximum {validation.max_data_size}")

        if validation.allowed_domains and data.domain not in validation.allowed_domains:
            errors.append(f"Domain {data.domain} is not in the allowed domains")

    expected = template.domain.replace("www.", "", 1)
    if not template.domain or expected not in data.domain:
        errors.append(f"Domain mismatch: expected {template.domain}, got {data.domain}")

    if errors:
        logger.warning("Extracted data validation failed: %s", "; ".join(errors))
    return errors
