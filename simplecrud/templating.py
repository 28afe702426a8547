# File: simplecrud/templating.py
"""
SimpleCRUD - Page Templates
============================
Wraps the HTML fragments produced by the renderer and the form compiler
in a page.  The host application may plug in its own ``TemplateRenderer``;
the default is a small built-in Jinja2 layout, and
``JinjaTemplateRenderer`` adds a template directory so a ``CrudSpec`` can
name its own template.

Variables passed to every template:
    title     page heading
    content   ``markupsafe.Markup`` fragment (list, form, record, message)
    crud      the ``CrudSpec`` being served (None on the index page)
    message   optional status text shown above the content
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional, Protocol, Union, runtime_checkable

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound

from simplecrud.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.templating")

_LAYOUT_SOURCE: str = """\
<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
</head>
<body>
<h1>{{ title }}</h1>
{% if message %}
<p class="simplecrud-message">{{ message }}</p>
{% endif %}
{{ content }}
</body>
</html>
"""


@runtime_checkable
class TemplateRenderer(Protocol):
    """Anything that turns a template name and variables into HTML."""

    def render(self, template_name: Optional[str], variables: Mapping[str, Any]) -> str: ...


@runtime_checkable
class TemplateCatalog(Protocol):
    """A renderer that can tell, before any request, whether a template exists."""

    def has_template(self, template_name: str) -> bool: ...


class LayoutRenderer:
    """Built-in single-layout renderer; ignores template names."""

    def __init__(self) -> None:
        self._env: Environment = Environment(
            autoescape=True, trim_blocks=True, lstrip_blocks=True
        )
        self._layout = self._env.from_string(_LAYOUT_SOURCE)

    def render(self, template_name: Optional[str], variables: Mapping[str, Any]) -> str:
        return self._layout.render(**variables)


class JinjaTemplateRenderer(LayoutRenderer):
    """
    Renders named templates from *directory*, falling back to the built-in
    layout when a CRUD names no template.
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        super().__init__()
        self.directory: Path = Path(directory)
        self._files: Environment = Environment(
            loader=FileSystemLoader(str(self.directory)),
            autoescape=True,
        )

    def has_template(self, template_name: str) -> bool:
        """
        True when *template_name* loads from the directory.

        Raises:
            ConfigurationError: the template exists but does not compile.
        """
        try:
            self._files.get_template(template_name)
        except TemplateNotFound:
            return False
        except TemplateError as exc:
            raise ConfigurationError(
                f"Template '{template_name}' in {self.directory} is broken: {exc}"
            ) from exc
        return True

    def render(self, template_name: Optional[str], variables: Mapping[str, Any]) -> str:
        if not template_name:
            return super().render(template_name, variables)
        try:
            template = self._files.get_template(template_name)
        except TemplateNotFound as exc:
            logger.error("Template '%s' not found in %s.", template_name, self.directory)
            raise ConfigurationError(
                f"Template '{template_name}' not found in {self.directory}."
            ) from exc
        try:
            return template.render(**variables)
        except TemplateError as exc:
            logger.error("Template '%s' failed to render: %s", template_name, exc)
            raise ConfigurationError(
                f"Template '{template_name}' failed to render: {exc}"
            ) from exc


__all__: List[str] = [
    "JinjaTemplateRenderer",
    "LayoutRenderer",
    "TemplateCatalog",
    "TemplateRenderer",
]
