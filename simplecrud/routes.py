# File: simplecrud/routes.py
"""
SimpleCRUD - Route Table Builder
=================================
Registers the list, add, edit, view and delete routes of a ``CrudSpec``
on a FastAPI ``APIRouter``.

For prefix ``/p``:

    GET       /p                  list, search, sort, paginate, download  (view)
    GET|POST  /p/add              create form / submit                    (edit)
    GET|POST  /p/edit/{id}        update form / submit                    (edit)
    GET       /p/view             "need id" message                       (view)
    GET       /p/view/{id}        read-only record                        (view)
    GET       /p/delete/{id}      delete confirmation                     (edit)
    POST      /p/delete           perform delete                          (edit)

``/add`` exists only when the CrudSpec is addable and editable, ``/edit`` only
when editable, the delete routes only when deletable.

Handlers are module-level coroutines receiving a per-CRUD ``CrudContext``.
Every database round trip runs in Starlette's thread pool.  Library
errors are converted to responses at the endpoint boundary, so nothing
escapes a single request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from markupsafe import Markup
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from simplecrud.auth import EDIT, VIEW, AuthGate, AuthProvider
from simplecrud.database import Database
from simplecrud.errors import (
    AuthorizationError,
    ConfigurationError,
    CrudError,
    NotFoundError,
    ValidationError,
    WriteError,
)
from simplecrud.exporters import ExportSerializer, build_filename_stem
from simplecrud.forms import FieldValueSource, FormCompiler
from simplecrud.introspect import SchemaIntrospector
from simplecrud.models import CrudSpec, RequestState
from simplecrud.query import QueryCompiler, QueryPlan
from simplecrud.render import ResultRenderer
from simplecrud.templating import LayoutRenderer, TemplateCatalog, TemplateRenderer
from simplecrud.utils import Timer, is_numeric_id, sanitize_token, to_title_human
from simplecrud.validators import build_spec, validate_spec

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.routes")


# ---------------------------------------------------------------------------
# Per-CRUD context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CrudContext:
    """Everything a handler needs for one registered CRUD; shared read-only."""

    spec: CrudSpec
    gate: AuthGate
    database: Database
    compiler: QueryCompiler
    renderer: ResultRenderer
    forms: FormCompiler
    exporter: ExportSerializer
    templates: TemplateRenderer

    def base_path(self, request: Request) -> str:
        return str(request.scope.get("root_path", "")).rstrip("/") + self.spec.prefix

    @property
    def title(self) -> str:
        return to_title_human(self.spec.table)

    def page(
        self,
        request: Request,
        title: str,
        content: Markup,
        status_code: int = 200,
        message: Optional[str] = None,
    ) -> HTMLResponse:
        html: str = self.templates.render(
            self.spec.template,
            {
                "title": title,
                "content": content,
                "crud": self.spec,
                "message": message,
                "request": request,
            },
        )
        return HTMLResponse(html, status_code=status_code)

    def notice(
        self, request: Request, title: str, text: str, status_code: int = 200
    ) -> HTMLResponse:
        """A one-message page; plain HTML when the page template itself fails."""
        try:
            return self.page(request, title, _message(text), status_code=status_code)
        except CrudError as exc:
            logger.error(
                "Could not render '%s' page for %s: %s", title, self.spec.prefix, exc.message
            )
            return HTMLResponse(str(_message(text)), status_code=status_code)


Handler = Callable[[CrudContext, Request], Awaitable[Response]]


def _message(text: str) -> Markup:
    return Markup("<p>{}</p>").format(text)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def handle_list(ctx: CrudContext, request: Request) -> Response:
    spec: CrudSpec = ctx.spec
    state: RequestState = RequestState.from_query(request.query_params)
    base: str = ctx.base_path(request)
    can_edit: bool = spec.editable and ctx.gate.allowed(EDIT, request)

    plan: QueryPlan = await run_in_threadpool(ctx.compiler.compile, spec, state, request)

    if state.download_format is not None and spec.downloadable:
        stem: str = build_filename_stem(spec.table, plan.applied_state())
        result = await run_in_threadpool(
            lambda: ctx.exporter.serialize(
                ctx.compiler.run(plan), plan.data_names, state.download_format or "", stem
            )
        )
        headers: Dict[str, str] = {}
        if result.content_disposition is not None:
            headers["Content-Disposition"] = result.content_disposition
        return Response(
            content=result.body,
            media_type=result.content_type,
            headers=headers,
            status_code=200,
        )

    with Timer(f"list {spec.prefix}"):
        content: Markup = await run_in_threadpool(
            ctx.renderer.render_list, plan, spec, base, can_edit
        )
    return ctx.page(request, ctx.title, content)


async def handle_add(ctx: CrudContext, request: Request) -> Response:
    return await _form_request(ctx, request, record_id=None)


async def handle_edit(ctx: CrudContext, request: Request) -> Response:
    return await _form_request(ctx, request, record_id=request.path_params["record_id"])


async def _form_request(
    ctx: CrudContext, request: Request, record_id: Optional[str]
) -> Response:
    spec: CrudSpec = ctx.spec
    base: str = ctx.base_path(request)
    if record_id is None:
        action: str = f"{base}/add"
        title: str = f"Add a new {spec.record_title}"
    else:
        action = f"{base}/edit/{record_id}"
        title = f"Edit {spec.record_title}"

    if request.method != "POST":
        form: Markup = await run_in_threadpool(
            ctx.forms.build_form, spec, record_id, None, action
        )
        return ctx.page(request, title, form)

    key_value: Any = None
    if record_id is not None:
        record: Dict[str, Any] = await run_in_threadpool(
            ctx.forms.load_record, spec, record_id
        )
        key_value = record[spec.key_column]

    submitted: FieldValueSource = FieldValueSource.from_form(await request.form())
    try:
        await run_in_threadpool(ctx.forms.save, spec, submitted, key_value)
    except ValidationError as exc:
        form = await run_in_threadpool(
            ctx.forms.build_form, spec, record_id, submitted, action, exc.field_errors
        )
        return ctx.page(request, title, form, message="Please correct the errors below.")
    except WriteError as exc:
        form = await run_in_threadpool(
            ctx.forms.build_form, spec, record_id, submitted, action, None, exc.message
        )
        return ctx.page(request, title, form, message=exc.message)
    return RedirectResponse(base, status_code=302)


async def handle_view_missing(ctx: CrudContext, request: Request) -> Response:
    return ctx.page(
        request,
        f"View {ctx.spec.record_title}",
        _message(f"You need to say which {ctx.spec.record_title} to view (need id)."),
    )


async def handle_view(ctx: CrudContext, request: Request) -> Response:
    spec: CrudSpec = ctx.spec
    record_id: str = request.path_params["record_id"]
    columns = await run_in_threadpool(ctx.compiler.introspector.column_map, spec.table)
    key = columns.get(spec.key_column)
    if key is not None and key.is_numeric and not is_numeric_id(record_id):
        raise NotFoundError(f"No such {spec.record_title}: {record_id}")

    plan: QueryPlan = await run_in_threadpool(
        ctx.compiler.compile_record, spec, record_id, request
    )
    content: Optional[Markup] = await run_in_threadpool(
        ctx.renderer.render_record, plan, spec
    )
    if content is None:
        raise NotFoundError(f"No such {spec.record_title}: {record_id}")
    return ctx.page(request, f"View {spec.record_title} {record_id}", content)


async def handle_delete_confirm(ctx: CrudContext, request: Request) -> Response:
    spec: CrudSpec = ctx.spec
    record_id: str = request.path_params["record_id"]
    await run_in_threadpool(ctx.forms.load_record, spec, record_id)
    content: Markup = ctx.renderer.render_delete_confirmation(
        spec, record_id, ctx.base_path(request)
    )
    return ctx.page(request, f"Delete {spec.record_title}", content)


async def handle_delete(ctx: CrudContext, request: Request) -> Response:
    spec: CrudSpec = ctx.spec
    form = await request.form()
    record_id: Any = form.get("record_id")
    deleted: bool = False
    if record_id:
        deleted = await run_in_threadpool(
            ctx.database.delete, spec.table, {spec.key_column: record_id}
        )
    if not deleted:
        return ctx.page(
            request,
            f"Delete {spec.record_title}",
            _message(f"Failed to delete {spec.record_title} {record_id or ''}".rstrip()),
        )
    logger.info("Deleted %s %s from '%s'.", spec.record_title, record_id, spec.table)
    return RedirectResponse(ctx.base_path(request), status_code=302)


# ---------------------------------------------------------------------------
# Endpoint wrapping
# ---------------------------------------------------------------------------


def _endpoint(
    ctx: CrudContext, handler: Handler, action: str
) -> Callable[[Request], Awaitable[Response]]:
    """Wrap *handler* with the authorization gate and error conversion."""

    async def endpoint(request: Request) -> Response:
        try:
            ctx.gate.check(action, request, return_url=str(request.url))
            return await handler(ctx, request)
        except AuthorizationError as exc:
            if exc.login_required:
                return RedirectResponse(exc.login_url or ctx.gate.login_url, status_code=302)
            return ctx.notice(request, "Access denied", exc.message, status_code=403)
        except NotFoundError as exc:
            return ctx.notice(request, "Not found", exc.message, status_code=404)
        except WriteError as exc:
            return ctx.notice(request, ctx.title, exc.message)
        except CrudError as exc:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            return HTMLResponse(
                str(_message(f"An error occurred: {exc.message}")),
                status_code=exc.status_code,
            )

    endpoint.__name__ = f"{handler.__name__}_{sanitize_token(ctx.spec.prefix)}"
    return endpoint


def route_table(spec: CrudSpec) -> List[Tuple[str, List[str], Handler, str, str]]:
    """``(path, methods, handler, action, name)`` for every route of *spec*."""
    p: str = spec.prefix
    routes: List[Tuple[str, List[str], Handler, str, str]] = [
        (p, ["GET"], handle_list, VIEW, "list"),
    ]
    if spec.can_add:
        routes.append((f"{p}/add", ["GET", "POST"], handle_add, EDIT, "add"))
    if spec.editable:
        routes.append((f"{p}/edit/{{record_id}}", ["GET", "POST"], handle_edit, EDIT, "edit"))
    routes.append((f"{p}/view", ["GET"], handle_view_missing, VIEW, "view_missing"))
    routes.append((f"{p}/view/{{record_id}}", ["GET"], handle_view, VIEW, "view"))
    if spec.deletable:
        routes.append(
            (f"{p}/delete/{{record_id}}", ["GET"], handle_delete_confirm, EDIT, "delete_confirm")
        )
        routes.append((f"{p}/delete", ["POST"], handle_delete, EDIT, "delete"))
    return routes


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class SimpleCRUD:
    """
    Registers CRUD endpoint sets on a FastAPI router.

    Usage:
        crud = SimpleCRUD(engine)
        crud.register({"prefix": "/users", "db_table": "users", "editable": True})
        app.include_router(crud.router)
    """

    def __init__(
        self,
        database: Union[Database, Engine, str],
        router: Optional[APIRouter] = None,
        templates: Optional[TemplateRenderer] = None,
        auth: Optional[AuthProvider] = None,
        login_url: str = "/login",
        validate_on_register: bool = True,
    ) -> None:
        self.database: Database = (
            database if isinstance(database, Database) else Database(database)
        )
        self.router: APIRouter = router if router is not None else APIRouter()
        self.templates: TemplateRenderer = templates or LayoutRenderer()
        self.auth: Optional[AuthProvider] = auth
        self.login_url: str = login_url
        self.validate_on_register: bool = validate_on_register

        self.introspector = SchemaIntrospector(self.database)
        self.compiler = QueryCompiler(self.database, self.introspector)
        self.renderer = ResultRenderer(self.compiler)
        self.forms = FormCompiler(self.database, self.introspector)
        self.exporter = ExportSerializer()
        self._specs: Dict[str, CrudSpec] = {}

    @property
    def specs(self) -> List[CrudSpec]:
        return list(self._specs.values())

    def register(self, spec: Union[CrudSpec, Dict[str, Any]]) -> CrudSpec:
        """
        Validate *spec* against the live schema and attach its routes.

        Raises:
            ConfigurationError: the CrudSpec is malformed, refers to unknown
                tables/columns or templates, or reuses a registered prefix.
        """
        crud: CrudSpec = build_spec(spec)
        if crud.prefix in self._specs:
            raise ConfigurationError(f"Prefix '{crud.prefix}' is already registered.")

        if self.validate_on_register:
            result = validate_spec(crud, self.introspector.column_map)
            if result.has_errors:
                raise ConfigurationError(
                    f"Invalid CRUD configuration for '{crud.prefix}':\n"
                    + result.format_report()
                )
        if (
            crud.template
            and isinstance(self.templates, TemplateCatalog)
            and not self.templates.has_template(crud.template)
        ):
            raise ConfigurationError(
                f"Template '{crud.template}' for '{crud.prefix}' does not exist."
            )

        ctx = CrudContext(
            spec=crud,
            gate=AuthGate(crud.auth, self.auth, self.login_url),
            database=self.database,
            compiler=self.compiler,
            renderer=self.renderer,
            forms=self.forms,
            exporter=self.exporter,
            templates=self.templates,
        )
        routes = route_table(crud)
        for path, methods, handler, action, name in routes:
            self.router.add_api_route(
                path,
                _endpoint(ctx, handler, action),
                methods=methods,
                name=f"{sanitize_token(crud.prefix)}_{name}",
                response_class=HTMLResponse,
                response_model=None,
                include_in_schema=False,
            )
        self._specs[crud.prefix] = crud
        logger.info(
            "Registered CRUD %s -> '%s' (%d routes).", crud.prefix, crud.table, len(routes)
        )
        return crud


__all__: List[str] = [
    "CrudContext",
    "SimpleCRUD",
    "handle_add",
    "handle_delete",
    "handle_delete_confirm",
    "handle_edit",
    "handle_list",
    "handle_view",
    "handle_view_missing",
    "route_table",
]
