r"""Unit tests for package initialization and metadata."""

from __future__ import annotations

import amulti


def test_package_version_is_string() -> None:
    """Test that __version__ is a string."""
    assert isinstance(amulti.__version__, str)


def test_package_version_format() -> None:
    """Test that __version__ follows semantic versioning."""
    assert "." in amulti.__version__


def test_all_exports_defined() -> None:
    """Test that all items in __all__ are defined in the module."""
    for name in amulti.__all__:
        assert hasattr(amulti, name), f"{name} is in __all__ but not defined in module"


def test_constants_are_immutable_types() -> None:
    assert isinstance(amulti.DEFAULT_CONCURRENCY, int)
    assert isinstance(amulti.DEFAULT_TIMEOUT, float)


def test_exception_class_is_callable() -> None:
    """Test that HttpTransferError can be instantiated."""
    exc = amulti.HttpTransferError(method="GET", url="http://test.com", message="test")
    assert isinstance(exc, Exception)
