"""Outbound payload rendering from Jinja2 templates."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, TemplateError as JinjaTemplateError

from .errors import TemplateError

logger = logging.getLogger(__name__)


def load_fields(path: Optional[str]) -> dict[str, Any]:
    """Load template fields from a JSON document, or no fields at all."""
    if not path:
        return {}
    try:
        data = json.loads(Path(path).read_text(encoding='utf-8'))
    except OSError as e:
        raise TemplateError(f"cannot read fields file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise TemplateError(f"invalid JSON in fields file {path}: {e}") from e
    if not isinstance(data, dict):
        raise TemplateError(f"fields file {path} must contain a JSON object")
    return data


def _environment_for(source: str) -> Environment:
    """Environment whose line endings follow the template.

    Jinja2 rewrites every line ending to newline_sequence, so a template
    containing any CRLF renders with CRLF throughout.
    """
    newline = "\r\n" if "\r\n" in source else "\n"
    return Environment(keep_trailing_newline=True, autoescape=False, newline_sequence=newline)


def to_crlf(text: str) -> str:
    """Terminate every line with CRLF."""
    return re.sub(r"\r?\n", "\r\n", text)


def render_template(source: str, fields: dict[str, Any], crlf: bool = False) -> bytes:
    """Render template source with fields into the payload to send."""
    try:
        text = _environment_for(source).from_string(source).render(**fields)
    except (JinjaTemplateError, ArithmeticError, TypeError, ValueError) as e:
        raise TemplateError(f"cannot render template: {e}") from e
    if crlf:
        text = to_crlf(text)
    return text.encode('utf-8')


def render_payload(template_path: Optional[str], fields_path: Optional[str] = None, crlf: bool = False) -> bytes:
    """Read the template and fields files and render the payload."""
    if not template_path:
        raise TemplateError("missing data template file ('-t' or '--template' parameter must be provided)")
    try:
        source = Path(template_path).read_text(encoding='utf-8')
    except OSError as e:
        raise TemplateError(f"cannot read template file {template_path}: {e}") from e

    fields = load_fields(fields_path)
    logger.debug(f"Rendering {template_path} with {len(fields)} fields")
    return render_template(source, fields, crlf=crlf)
