import logging
import re
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from snippetbox.config import ConfigError, load_env
from snippetbox.db import get_db, make_session_factory, open_db
from snippetbox.models import NoRecordError
from snippetbox.schemas import SnippetCreate
from snippetbox.store import SnippetModel, bootstrap

logger = logging.getLogger(__name__)

LATEST_LIMIT = 20
# Largest id a 64-bit signed primary key can hold.
MAX_SNIPPET_ID = 2**63 - 1
_ID_PATTERN = re.compile(r"[+-]?[0-9]+")
DEFAULT_EXPIRY_DAYS = 365
EXPIRY_CHOICES = [(365, "One Year"), (7, "One Week"), (1, "One Day")]

UI_DIR = Path(__file__).resolve().parent.parent / "ui" / "html"


def human_date(value: Optional[datetime]) -> str:
    """Format a timestamp as '02 Jan 2006 at 15:04' in UTC."""
    if value is None:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%d %b %Y at %H:%M")


templates = Jinja2Templates(directory=str(UI_DIR))
templates.env.filters["human_date"] = human_date


def _empty_form() -> Dict[str, str]:
    return {"title": "", "content": "", "expires": str(DEFAULT_EXPIRY_DAYS)}


def _render(request: Request, name: str, context: Dict[str, Any], status_code: int = status.HTTP_200_OK) -> HTMLResponse:
    context.setdefault("form", _empty_form())
    context.setdefault("errors", {})
    context.setdefault("expiry_choices", EXPIRY_CHOICES)
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def _server_error(request: Request, exc: Exception) -> PlainTextResponse:
    logger.error(
        "Server error on %s %s",
        request.method,
        request.url.path,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return PlainTextResponse(HTTPStatus.INTERNAL_SERVER_ERROR.phrase, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


# PUBLIC_INTERFACE
def get_snippets(request: Request) -> SnippetModel:
    """FastAPI dependency returning the store bound to the application's engine."""
    return request.app.state.snippets


# PUBLIC_INTERFACE
def create_app(engine: Optional[Engine] = None) -> FastAPI:
    """
    Build the web application.

    When no engine is given, one is opened from the environment at startup and
    disposed at shutdown. Missing configuration, an unreachable database or a
    failed table creation abort startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_engine = engine is None
        db_engine = engine
        if db_engine is None:
            db_engine = open_db(load_env().dsn)
        try:
            snippets = SnippetModel(db_engine)
            bootstrap(snippets)
            app.state.snippets = snippets
            app.state.session_factory = make_session_factory(db_engine)
            logger.info("Database ready (%s)", db_engine.url.get_backend_name())
            yield
        finally:
            if owns_engine:
                db_engine.dispose()

    app = FastAPI(
        title="Snippetbox",
        description="Create and share short-lived text snippets.",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
        """Status phrase only; headers such as Allow are passed through."""
        return PlainTextResponse(
            HTTPStatus(exc.status_code).phrase,
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
        """Log unexpected errors and hide their details from the client."""
        return _server_error(request, exc)

    # PUBLIC_INTERFACE
    @app.get("/", response_class=HTMLResponse, summary="Latest snippets")
    def home(request: Request, snippets: SnippetModel = Depends(get_snippets)) -> Response:
        """Render the most recent unexpired snippets."""
        try:
            latest = snippets.latest(LATEST_LIMIT)
        except SQLAlchemyError as exc:
            return _server_error(request, exc)
        return _render(request, "pages/home.html", {"snippets": latest})

    # PUBLIC_INTERFACE
    @app.get("/snippet/view", response_class=HTMLResponse, summary="View snippet")
    def snippet_view(
        request: Request,
        raw_id: Optional[str] = Query(None, alias="id"),
        snippets: SnippetModel = Depends(get_snippets),
    ) -> Response:
        """Render one snippet. Bad ids and expired snippets are both a plain 404."""
        if raw_id is None or not _ID_PATTERN.fullmatch(raw_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        snippet_id = int(raw_id)
        if snippet_id < 1 or snippet_id > MAX_SNIPPET_ID:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)

        try:
            snippet = snippets.get(snippet_id)
        except NoRecordError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        except SQLAlchemyError as exc:
            return _server_error(request, exc)

        return _render(request, "pages/view.html", {"snippet": snippet})

    # PUBLIC_INTERFACE
    @app.post("/snippet/create", summary="Create snippet")
    def snippet_create(
        request: Request,
        title: str = Form(""),
        content: str = Form(""),
        expires: str = Form(""),
        snippets: SnippetModel = Depends(get_snippets),
    ) -> Response:
        """Insert a snippet from the submitted form and redirect to it (303)."""
        try:
            payload = SnippetCreate(title=title, content=content, expires=expires)
        except ValidationError as exc:
            errors = {str(err["loc"][0]): err["msg"] for err in exc.errors() if err["loc"]}
            form = {"title": title, "content": content, "expires": expires}
            return _render(
                request,
                "pages/create.html",
                {"form": form, "errors": errors},
                status_code=422,
            )

        try:
            snippet_id = snippets.insert(payload.title, payload.content, payload.expires)
        except SQLAlchemyError as exc:
            return _server_error(request, exc)

        logger.info("Created snippet id=%s expires_in_days=%s", snippet_id, payload.expires)
        return RedirectResponse(url=f"/snippet/view?id={snippet_id}", status_code=status.HTTP_303_SEE_OTHER)

    # PUBLIC_INTERFACE
    @app.get("/health/db", summary="Database health check")
    def health_check_db(db: Session = Depends(get_db)) -> Dict[str, str]:
        """Database readiness endpoint (SELECT 1)."""
        try:
            db.execute(text("SELECT 1")).scalar_one()
        except SQLAlchemyError:
            logger.exception("Database health check failed")
            return {"status": "down"}
        return {"status": "up"}

    return app


app = create_app()


def main() -> None:
    """Console entry point: configure logging, read HOST/PORT and serve."""
    import uvicorn

    try:
        env = load_env()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("%s", exc)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if env.is_dev else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(filename)s:%(lineno)d %(message)s",
    )
    logger.info("Start on %s:%s", env.host, env.port)
    uvicorn.run(app, host=env.host, port=env.port, log_level="debug" if env.is_dev else "info")


if __name__ == "__main__":
    main()
