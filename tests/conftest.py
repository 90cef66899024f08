"""
Pytest configuration and fixtures for dynamo-migrate tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import gzip
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from dynamo_migrate.profiles.pictures.parse import PictureRow


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Skips the requesting tests when Docker is not available.

    Yields:
        PostgresContainer instance with the picture schema installed
    """
    container = PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_migrate",
        password="test_password",
        dbname="test_cms",
        driver=None,
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        init_sql_path = os.path.join(os.path.dirname(__file__), "fixtures", "init-db.sql")
        with open(init_sql_path, "r") as f:
            init_sql = f.read()

        with psycopg.connect(container.get_connection_url()) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield container
    finally:
        container.stop()


@pytest.fixture(scope="function")
def clean_db(postgres_container) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a connection to a database with an empty picture table

    Yields:
        psycopg Connection object
    """
    with psycopg.connect(postgres_container.get_connection_url()) as conn:
        with conn.cursor() as cur:
            cur.execute("TRUNCATE TABLE picture")
            cur.execute("SELECT setval('picture_id_seq', 1, false)")
        conn.commit()
        yield conn
        conn.rollback()


# =======================
# PICTURE FIXTURES
# =======================

@pytest.fixture
def make_item() -> Callable[..., dict[str, Any]]:
    """
    Factory for plain (unmarshalled) picture export items

    Returns:
        Callable accepting field overrides
    """
    def _make(**overrides: Any) -> dict[str, Any]:
        item = {
            "id": f"{overrides.get('pictureId', 42)}-0-{overrides.get('formatId', 85)}",
            "pictureId": 42,
            "languageId": 0,
            "url": "/img/2013/07/11/alpha.jpg",
            "caption": "A picture",
            "agencyId": 3,
            "formatId": 85,
            "formatPictureId": 1001,
            "originalWidth": 4000,
            "originalHeight": 3000,
        }
        item.update(overrides)
        return item

    return _make


@pytest.fixture
def make_row(make_item) -> Callable[..., PictureRow]:
    """Factory for validated picture rows"""
    def _make(**overrides: Any) -> PictureRow:
        return PictureRow.model_validate(make_item(**overrides))

    return _make


def to_export_line(item: dict[str, Any]) -> str:
    """Encode a plain item as a DynamoDB export line"""
    typed: dict[str, Any] = {}
    for key, value in item.items():
        if value is None:
            typed[key] = {"NULL": True}
        elif isinstance(value, bool):
            typed[key] = {"BOOL": value}
        elif isinstance(value, (int, float)):
            typed[key] = {"N": str(value)}
        else:
            typed[key] = {"S": str(value)}
    return json.dumps({"Item": typed})


@pytest.fixture
def write_export_file() -> Callable[[Path, list[dict[str, Any]]], Path]:
    """
    Write plain items as a gzipped export file

    Returns:
        Callable (path, items) -> path
    """
    def _write(path: Path, items: list[dict[str, Any]], extra_lines: list[str] = ()) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [to_export_line(item) for item in items] + list(extra_lines)
        with gzip.open(path, "wt", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        return path

    return _write
