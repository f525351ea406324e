import pytest

from domlens.dom.geometry import GeometryCache


@pytest.fixture
def cache():
    """A geometry cache scoped to one test, as it would be to one build."""
    with GeometryCache() as geometry_cache:
        yield geometry_cache
