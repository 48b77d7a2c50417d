"""Shared pytest fixtures for metastage tests."""

from pathlib import Path
from textwrap import dedent

import pytest

from metastage.codegen import ClosureFactory, CodeSynthesizer
from metastage.meta import MetaobjectProtocol
from metastage.modules import InMemoryResolver, ModuleLoader
from metastage.runtime import PhaseScheduler
from metastage.symbols import SymbolRegistry


def pytest_configure(config):
    """Register markers for pytest."""
    config.addinivalue_line("markers", "slow: mark test as slow running")


class CountingResolver(InMemoryResolver):
    """In-memory resolver that records every source fetch."""

    def __init__(self, sources=None):
        super().__init__(sources)
        self.fetches = []

    def resolve(self, namespace_path):
        self.fetches.append(namespace_path)
        return super().resolve(namespace_path)


@pytest.fixture
def registry():
    return SymbolRegistry()


@pytest.fixture
def scheduler():
    return PhaseScheduler()


@pytest.fixture
def closures():
    return ClosureFactory()


@pytest.fixture
def synthesizer(registry):
    return CodeSynthesizer(registry)


@pytest.fixture
def protocol(registry, scheduler, closures):
    return MetaobjectProtocol(registry, namespace="main", closures=closures, scheduler=scheduler)


@pytest.fixture
def resolver():
    return CountingResolver()


@pytest.fixture
def loader(resolver, registry, scheduler):
    return ModuleLoader(resolver, registry=registry, scheduler=scheduler)


@pytest.fixture
def add_unit(resolver):
    """Register dedented unit source under a namespace path."""

    def _add(namespace_path, source):
        resolver.add(namespace_path, dedent(source))

    return _add


@pytest.fixture
def unit_tree(tmp_path):
    """Write unit files under ``tmp_path`` following the dotted path layout."""

    def _write(namespace_path, source, extension=".py") -> Path:
        *directories, stem = namespace_path.split(".")
        directory = tmp_path.joinpath(*directories)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{stem}{extension}"
        path.write_text(dedent(source), encoding="utf-8")
        return path

    return _write
