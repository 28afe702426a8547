# File: simplecrud/app.py
"""
SimpleCRUD - Application Factory
=================================
Builds a standalone FastAPI application serving one or more CRUDs.  Host
applications that already have a FastAPI app normally use ``SimpleCRUD``
directly and ``include_router`` its router instead.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from markupsafe import Markup, escape
from sqlalchemy.engine import Engine

from simplecrud import __version__
from simplecrud.auth import AuthProvider
from simplecrud.config import AppConfig, CrudSettings
from simplecrud.database import Database
from simplecrud.errors import ConfigurationError
from simplecrud.models import CrudSpec
from simplecrud.routes import SimpleCRUD
from simplecrud.templating import JinjaTemplateRenderer, LayoutRenderer, TemplateRenderer
from simplecrud.utils import to_title_human

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.app")


def create_app(
    database: Union[Database, Engine, str],
    specs: Iterable[Union[CrudSpec, Dict[str, Any]]],
    templates: Optional[TemplateRenderer] = None,
    auth: Optional[AuthProvider] = None,
    title: str = "SimpleCRUD",
    login_url: str = "/login",
) -> FastAPI:
    """
    FastAPI application with every spec registered and an index page at ``/``.

    Raises:
        ConfigurationError: any spec is invalid for the connected database.
    """
    renderer: TemplateRenderer = templates or LayoutRenderer()
    crud = SimpleCRUD(database, templates=renderer, auth=auth, login_url=login_url)
    for spec in specs:
        crud.register(spec)

    app = FastAPI(title=title, version=__version__)
    app.state.simplecrud = crud

    async def index() -> HTMLResponse:
        items: List[str] = [
            f'<li><a href="{escape(s.prefix)}">{escape(to_title_human(s.table))}</a></li>'
            for s in crud.specs
        ]
        content = Markup("<ul>\n" + "\n".join(items) + "\n</ul>")
        return HTMLResponse(
            renderer.render(None, {"title": title, "content": content, "crud": None})
        )

    app.add_api_route("/", index, methods=["GET"], include_in_schema=False)
    app.include_router(crud.router)
    logger.info("Application '%s' ready with %d CRUD(s).", title, len(crud.specs))
    return app


def create_app_from_config(
    config: AppConfig,
    settings: Optional[CrudSettings] = None,
    database_url: Optional[str] = None,
    auth: Optional[AuthProvider] = None,
) -> FastAPI:
    """Build the application described by *config*; explicit arguments win."""
    settings = settings or CrudSettings()
    url: Optional[str] = database_url or settings.database_url or config.database_url
    if not url:
        raise ConfigurationError(
            "No database URL: pass --database-url, set SIMPLECRUD_DATABASE_URL, "
            "or add database_url to the configuration file."
        )
    template_dir: Optional[str] = settings.template_dir or config.template_dir
    templates: TemplateRenderer = (
        JinjaTemplateRenderer(template_dir) if template_dir else LayoutRenderer()
    )
    return create_app(
        Database(url),
        config.cruds,
        templates=templates,
        auth=auth,
        title=config.title,
        login_url=settings.login_url or config.login_url,
    )


__all__: List[str] = ["create_app", "create_app_from_config"]
