"""Pytest fixtures for geojoin tests."""

import ast
import re
from pathlib import Path

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import Polygon

from geojoin import PointFeature, PolygonFeature


# Test modules go through the package root (and the CLI), never internals
PUBLIC_MODULES = re.compile(r"^geojoin(\.cli(\.\w+)*)?$")


def _internal_imports(tree: ast.AST) -> list[tuple[int, str]]:
    """(line, module) for each geojoin import that bypasses the public API."""
    found = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            modules = [alias.name for alias in node.names]
        elif isinstance(node, ast.ImportFrom) and node.module:
            modules = [node.module]
        else:
            continue
        for module in modules:
            if module.split(".")[0] == "geojoin" and not PUBLIC_MODULES.match(module):
                found.append((node.lineno, module))
    return found


def pytest_collect_file(parent, file_path: Path):
    if file_path.suffix != ".py" or not file_path.name.startswith("test_"):
        return None
    found = _internal_imports(ast.parse(file_path.read_text(), filename=str(file_path)))
    if found:
        lines = "\n".join(f"  {file_path}:{line}: {module}" for line, module in found)
        pytest.fail(f"Tests must import from 'geojoin' or 'geojoin.cli':\n{lines}")
    return None


def square(x0: float, y0: float, x1: float, y1: float) -> list[tuple[float, float]]:
    """Closed rectangular ring."""
    return [(x0, y0), (x1, y0), (x1, y1), (x0, y1), (x0, y0)]


@pytest.fixture
def parks():
    """Two non-overlapping parks."""
    return [
        PolygonFeature.from_rings(
            "Joe's Park", square(0, 0, 3, 3.5), attributes={"acres": 12.0, "district": "north"}
        ),
        PolygonFeature.from_rings(
            "Memorial Park", square(3.5, 3.5, 6, 6), attributes={"acres": 8.5, "district": "south"}
        ),
    ]


@pytest.fixture
def park_points():
    """Three points in parks and one outside both."""
    return [
        PointFeature("P1", 1, 2, {"visitors": 40, "name": "fountain"}),
        PointFeature("P2", 2, 3, {"visitors": 75, "name": "playground"}),
        PointFeature("P3", 4, 4, {"visitors": 20, "name": "memorial"}),
        PointFeature("P4", 9, 9, {"visitors": 5, "name": "parking"}),
    ]


@pytest.fixture
def sample_blocks():
    """Three blocks tiling a 100x100 square; the third spans the top half."""
    return [
        PolygonFeature.from_rings("block-1", square(0, 0, 50, 50)),
        PolygonFeature.from_rings("block-2", square(50, 0, 100, 50)),
        PolygonFeature.from_rings("block-3", square(0, 50, 100, 100)),
    ]


@pytest.fixture
def l_shaped_block():
    """Concave L-shaped polygon; (2.5, 2.5) is in its bbox but not in it."""
    return PolygonFeature.from_rings(
        "l-block",
        [(0, 0), (3, 0), (3, 1), (1, 1), (1, 3), (0, 3), (0, 0)],
    )


@pytest.fixture
def parks_gdf():
    """Park polygons as a GeoDataFrame in a projected CRS."""
    return gpd.GeoDataFrame(
        {
            "name": ["Joe's Park", "Memorial Park"],
            "acres": [12.0, 8.5],
            "geometry": [
                Polygon(square(0, 0, 3, 3.5)),
                Polygon(square(3.5, 3.5, 6, 6)),
            ],
        },
        crs="EPSG:3857",
    )


@pytest.fixture
def points_df():
    """Park points as a plain DataFrame with coordinate columns."""
    return pd.DataFrame(
        {
            "point_id": ["P1", "P2", "P3", "P4"],
            "x": [1.0, 2.0, 4.0, 9.0],
            "y": [2.0, 3.0, 4.0, 9.0],
            "visitors": [40, 75, 20, 5],
        }
    )
