"""Shared test fixtures."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from protoguard.schema import SchemaRegistry, clear_cache
from protoguard.validators import Validator

FIXTURES = Path(__file__).parent / "fixtures"

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _fresh_schema_cache():
    """Each test loads schema files from disk."""
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def now() -> datetime:
    """Fixed clock for rules that read ``now``."""
    return NOW


@pytest.fixture
def acme_registry() -> SchemaRegistry:
    return SchemaRegistry.from_files(FIXTURES / "acme.yaml")


@pytest.fixture
def validator(acme_registry: SchemaRegistry) -> Validator:
    """Validator that collects faults instead of raising."""
    return Validator(acme_registry, fault_policy="collect", eager=False)


@pytest.fixture
def valid_user() -> dict:
    """A User that satisfies every attached rule."""
    return {
        "email": "ada@example.com",
        "age": 36,
        "nickname": "ada",
        "status": 1,
        "address": {"city": "London", "postcode": "12345"},
        "items": [{"x": 1, "label": "A"}, {"x": 2, "label": "B"}],
        "settings": {"timeout": {"value": "30s"}},
        "tags": ["math", "engines"],
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }


@pytest.fixture
def make_validator():
    """Factory for a validator over an inline schema in package ``test``.

    Usage:
        v = make_validator({"name": "M", "fields": [...]})
        v.validate({...}, "test.M")
    """

    def build(*messages: dict, enums: tuple = (), **kwargs) -> Validator:
        kwargs.setdefault("fault_policy", "collect")
        kwargs.setdefault("eager", False)
        document = {"package": "test", "messages": list(messages), "enums": list(enums)}
        return Validator(SchemaRegistry.from_dicts(document), **kwargs)

    return build
