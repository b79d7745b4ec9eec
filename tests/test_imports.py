"""
Tests that every module imports and its annotations resolve.

Annotations are evaluated here explicitly, so a name in a class body
shadowing a builtin used in a signature shows up as a failure.
"""

import importlib
import typing

import pytest

from ahorro.repository import ReceiptRepository


MODULES = [
    "ahorro",
    "ahorro.analytics",
    "ahorro.audit",
    "ahorro.config",
    "ahorro.ingestion",
    "ahorro.models",
    "ahorro.orchestrator",
    "ahorro.queries",
    "ahorro.repository",
    "ahorro.services",
    "ahorro.services.extraction",
    "ahorro.services.image",
    "ahorro.services.storage",
    "ahorro.utils",
]


@pytest.mark.parametrize("name", MODULES)
def test_module_imports(name):
    assert importlib.import_module(name) is not None


class TestRepositoryAnnotations:
    """Tests for the repository, whose ``list`` method shares a builtin's name."""

    @pytest.mark.parametrize("method", ["by_category", "reconcile_attachments", "_delete_blobs"])
    def test_list_return_types_are_the_builtin(self, method):
        hints = typing.get_type_hints(getattr(ReceiptRepository, method))
        assert typing.get_origin(hints["return"]) is list

    def test_list_method_returns_a_tuple(self):
        hints = typing.get_type_hints(ReceiptRepository.list)
        assert typing.get_origin(hints["return"]) is tuple
