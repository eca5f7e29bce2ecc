"""Tests for FormulaService, ParseCache and engine settings."""

from pathlib import Path

import pytest

from formulaforge.config import EngineSettings, resolve_base_path
from formulaforge.formulas import (
    ErrorKind,
    EvaluationError,
    ExecutionBudget,
    FormulaService,
    ParseCache,
    ParseError,
    error_payload,
)
from formulaforge.persistence import DatabaseConfig


class TestParseCache:
    def test_reuses_parsed_ast(self):
        cache = ParseCache()

        first = cache.get("1 + 2")
        second = cache.get("1 + 2")

        assert first is second
        assert (cache.hits, cache.misses) == (1, 1)
        assert "1 + 2" in cache

    def test_parse_errors_are_not_cached(self):
        cache = ParseCache()

        for _ in range(2):
            with pytest.raises(ParseError):
                cache.get("1 +")

        assert len(cache) == 0

    def test_evicts_least_recently_used(self):
        cache = ParseCache(maxsize=2)

        cache.get("1")
        cache.get("2")
        cache.get("1")
        cache.get("3")

        assert "1" in cache
        assert "2" not in cache
        assert len(cache) == 2

    def test_zero_maxsize_is_unbounded(self):
        cache = ParseCache(maxsize=0)

        for i in range(50):
            cache.get(str(i))

        assert len(cache) == 50

    def test_clear(self):
        cache = ParseCache()
        cache.get("1")

        cache.clear()

        assert len(cache) == 0
        assert cache.hits == 0


class TestFormulaService:
    @pytest.fixture
    def service(self):
        return FormulaService()

    def test_evaluate(self, service):
        data = service.evaluate("price * qty", {"price": 2.5, "qty": 4})
        assert data == {"formula": "price * qty", "result": 10, "type": "number"}

    def test_evaluate_with_collections_and_variables(self, service):
        data = service.evaluate(
            "Sum(orders.amount) + bonus",
            collections={"orders": [{"amount": 1}, {"amount": 2}]},
            variables={"bonus": 10},
        )
        assert data["result"] == 13

    def test_caller_collections_are_not_modified(self, service):
        collections = {"cart": [1]}

        data = service.evaluate("Collect(cart, 2)", collections=collections)

        assert data["result"] == [1, 2]
        assert collections == {"cart": [1]}

    def test_evaluate_raises(self, service):
        with pytest.raises(EvaluationError):
            service.evaluate("1 / 0")
        with pytest.raises(ParseError):
            service.evaluate("(1")

    def test_batch(self, service):
        data = service.evaluate_batch(
            [
                {"id": "total", "formula": "a + b"},
                {"id": "bad", "formula": "a / 0"},
                {"id": "broken", "formula": "a +"},
                {"id": "label", "formula": 'Upper("x")'},
            ],
            {"a": 1, "b": 2},
        )

        assert data["results"] == {"total": 3, "label": "X"}
        assert set(data["errors"]) == {"bad", "broken"}

    def test_batch_without_errors_has_no_errors_key(self, service):
        data = service.evaluate_batch([{"id": 1, "formula": "1"}])
        assert data == {"results": {"1": 1}}

    def test_validate(self, service):
        assert service.validate("If(a, 1, 2)").valid is True

        result = service.validate("If(a, 1")
        assert result.valid is False
        assert result.error.kind == ErrorKind.PARSE_ERROR

    def test_validate_never_evaluates(self, service):
        assert service.validate("1 / 0").valid is True
        assert service.validate("undefinedName").valid is True

    def test_list_functions(self, service):
        data = service.list_functions()

        assert data["count"] == len(data["functions"])
        assert any(f["name"] == "Filter" for f in data["functions"])

    def test_list_functions_by_category(self, service):
        data = service.list_functions("Math")

        assert data["count"] > 0
        assert {f["category"] for f in data["functions"]} == {"math"}

    def test_list_functions_unknown_category(self, service):
        with pytest.raises(ValueError):
            service.list_functions("astrology")

    def test_budget_is_applied(self):
        service = FormulaService(budget=ExecutionBudget(max_nodes=5))

        with pytest.raises(EvaluationError) as exc_info:
            service.evaluate("1 + 2 + 3 + 4 + 5")
        assert exc_info.value.kind == ErrorKind.TIMEOUT


class TestErrorPayload:
    def test_parse_error(self):
        with pytest.raises(ParseError) as exc_info:
            FormulaService().evaluate("1 + ")

        payload = error_payload(exc_info.value)

        assert payload["success"] is False
        assert payload["error"] == "PARSE_ERROR"
        assert payload["position"] == 4

    def test_unexpected_exception(self):
        payload = error_payload(RuntimeError("boom"))

        assert payload["success"] is False
        assert payload["error"] == "INTERNAL_ERROR"


class TestEngineSettings:
    def test_defaults(self, monkeypatch):
        for name in (
            "FORMULAFORGE_METADATA_PATH",
            "FORMULAFORGE_MAX_NODES",
            "FORMULAFORGE_MAX_MILLIS",
            "FORMULAFORGE_CACHE_SIZE",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = EngineSettings.from_env(Path("/srv/app"))

        assert settings.metadata_path == Path("/srv/app/metadata")
        assert settings.budget == ExecutionBudget(max_nodes=100_000, max_millis=1000)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("FORMULAFORGE_METADATA_PATH", "/etc/ff")
        monkeypatch.setenv("FORMULAFORGE_MAX_NODES", "500")
        monkeypatch.setenv("FORMULAFORGE_CACHE_SIZE", "0")

        settings = EngineSettings.from_env()

        assert settings.metadata_path == Path("/etc/ff")
        assert settings.max_nodes == 500
        assert settings.cache_size == 0

    def test_invalid_values(self, monkeypatch):
        monkeypatch.setenv("FORMULAFORGE_MAX_NODES", "lots")
        with pytest.raises(ValueError, match="FORMULAFORGE_MAX_NODES"):
            EngineSettings.from_env()

        monkeypatch.setenv("FORMULAFORGE_MAX_NODES", "0")
        with pytest.raises(ValueError):
            EngineSettings.from_env()

    def test_resolve_base_path(self):
        assert resolve_base_path(Path("/repo/backend")) == Path("/repo")
        assert resolve_base_path(Path("/repo")) == Path("/repo")


class TestDatabaseConfig:
    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/ff")
        monkeypatch.setenv("FORMULAFORGE_DB_PATH", "/tmp/x.db")

        config = DatabaseConfig.from_env()

        assert config.is_postgresql
        assert config.sqlalchemy_url == "postgresql+psycopg://u:p@db/ff"
        assert config.sqlite_path is None

    def test_db_path(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("FORMULAFORGE_DB_PATH", "/tmp/x.db")

        config = DatabaseConfig.from_env()

        assert config.url == "sqlite:////tmp/x.db"
        assert config.sqlite_path == Path("/tmp/x.db")

    def test_default_under_base_path(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("FORMULAFORGE_DB_PATH", raising=False)

        config = DatabaseConfig.from_env(Path("/srv/app"))

        assert config.sqlite_path == Path("/srv/app/data/formulaforge.db")

    def test_memory_database_has_no_path(self):
        assert DatabaseConfig(url="sqlite:///:memory:").sqlite_path is None
