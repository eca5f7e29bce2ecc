"""FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formulaforge import __version__
from formulaforge.api.automation import create_automation_router
from formulaforge.api.errors import install_error_handlers
from formulaforge.api.formulas import create_formulas_router
from formulaforge.api.queries import create_queries_router
from formulaforge.automation import AutomationLoader, DecisionTableExecutor, RuleExecutor
from formulaforge.config import EngineSettings, resolve_base_path
from formulaforge.formulas import FormulaService, ParseCache, register_all_builtins
from formulaforge.formulas.catalog import FunctionCatalog
from formulaforge.metadata.validator import CATALOG_FILE, validate_metadata_dir
from formulaforge.persistence import DatabaseConfig, QueryStore

logger = logging.getLogger(__name__)


# Global instances (initialized on startup)
settings: EngineSettings | None = None
formula_service: FormulaService | None = None
automation_loader: AutomationLoader | None = None
rule_executor: RuleExecutor | None = None
table_executor: DecisionTableExecutor | None = None
query_store: QueryStore | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    global settings, formula_service, automation_loader
    global rule_executor, table_executor, query_store

    register_all_builtins()

    base_path = resolve_base_path()
    settings = EngineSettings.from_env(base_path)
    metadata_path = settings.metadata_path

    # Validate metadata YAML files (warn on errors, don't block startup)
    issues = validate_metadata_dir(metadata_path)
    if issues:
        error_count = sum(1 for i in issues if i.severity == "error")
        warn_count = sum(1 for i in issues if i.severity == "warning")
        for issue in issues:
            if issue.severity == "error":
                logger.error("Metadata error: %s", issue)
            else:
                logger.warning("Metadata warning: %s", issue)
        logger.warning(
            "Metadata validation: %d error(s), %d warning(s). "
            "Run 'formulaforge metadata validate' for details.",
            error_count,
            warn_count,
        )

    catalog = FunctionCatalog(metadata_path / CATALOG_FILE)
    catalog.load()

    formula_service = FormulaService(
        cache=ParseCache(maxsize=settings.cache_size),
        budget=settings.budget,
        catalog=catalog,
    )
    rule_executor = RuleExecutor(formula_service)
    table_executor = DecisionTableExecutor(formula_service)

    automation_loader = AutomationLoader(metadata_path)
    automation_loader.load_all()

    # Initialize database (supports DATABASE_URL or FORMULAFORGE_DB_PATH env vars)
    db_config = DatabaseConfig.from_env(base_path)
    if db_config.sqlite_path is not None:
        db_config.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    query_store = QueryStore(db_config.sqlalchemy_url)

    logger.info("FormulaForge API ready (metadata: %s)", metadata_path)

    yield

    if query_store:
        query_store.close()


app = FastAPI(title="FormulaForge API", version=__version__, lifespan=lifespan)

# CORS for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

app.include_router(create_formulas_router(get_service=lambda: formula_service))
app.include_router(
    create_automation_router(
        get_service=lambda: formula_service,
        get_loader=lambda: automation_loader,
        get_rule_executor=lambda: rule_executor,
        get_table_executor=lambda: table_executor,
    )
)
app.include_router(
    create_queries_router(
        get_store=lambda: query_store,
        get_service=lambda: formula_service,
    )
)


@app.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}
