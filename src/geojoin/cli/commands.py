"""CLI commands for geojoin."""

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

import click
import geopandas as gpd
import pandas as pd

from geojoin import (
    GeoJoinError,
    Reducer,
    SpatialJoin,
    TieBreak,
    sort_records,
)


@click.group()
@click.version_option(package_name="geojoin")
@click.option("--verbose", "-V", is_flag=True, help="Log skipped records and progress details")
def cli(verbose: bool):
    """Geojoin: Assign points to the polygons containing them."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _read_points(
    path: Path,
    x_column: str,
    y_column: str,
) -> Union[pd.DataFrame, gpd.GeoDataFrame]:
    """Read points from CSV (coordinate columns) or any file geopandas reads."""
    if path.suffix == ".csv":
        df = pd.read_csv(path)
        for column in (x_column, y_column):
            if column not in df.columns:
                raise click.ClickException(f"Column '{column}' not found in {path.name}")
        return df
    return gpd.read_file(path)


def _read_polygons(path: Path) -> gpd.GeoDataFrame:
    if path.suffix == ".csv":
        raise click.ClickException("Polygons must be a GeoJSON, shapefile or other vector file")
    return gpd.read_file(path)


def _load(
    points_file: str,
    polygons_file: str,
    x_column: str,
    y_column: str,
) -> Tuple[Union[pd.DataFrame, gpd.GeoDataFrame], gpd.GeoDataFrame]:
    points = _read_points(Path(points_file), x_column, y_column)
    polygons = _read_polygons(Path(polygons_file))

    # The join compares raw coordinates, so both sides must share a CRS
    if isinstance(points, gpd.GeoDataFrame) and points.crs and polygons.crs:
        if points.crs != polygons.crs:
            points = points.to_crs(polygons.crs)
    return points, polygons


def _write(df: pd.DataFrame, output_file: str) -> None:
    output_path = Path(output_file)
    if output_path.suffix == ".json":
        df.to_json(output_path, orient="records", indent=2)
    else:
        df.to_csv(output_path, index=False)


_shared_options = [
    click.argument("points_file", type=click.Path(exists=True)),
    click.argument("polygons_file", type=click.Path(exists=True)),
    click.argument("output_file", type=click.Path()),
    click.option("--point-id", default=None, help="Column holding point ids (default: row number)"),
    click.option(
        "--polygon-id", default=None, help="Column holding polygon ids (default: row number)"
    ),
    click.option("--x", "x_column", default="x", help="X column for CSV points"),
    click.option("--y", "y_column", default="y", help="Y column for CSV points"),
    click.option(
        "--tie-break",
        "-t",
        default=TieBreak.FIRST_MATCH.value,
        type=click.Choice([t.value for t in TieBreak]),
        help="Which polygon wins when several contain a point",
    ),
    click.option("--workers", "-w", default=1, type=click.IntRange(min=1), help="Worker threads"),
]


def shared_options(func):
    for option in reversed(_shared_options):
        func = option(func)
    return func


@cli.command("join")
@shared_options
@click.option(
    "--polygon-attribute",
    "-p",
    "polygon_attributes",
    multiple=True,
    help="Polygon attribute to copy onto each row (can be specified multiple times)",
)
def join_command(
    points_file: str,
    polygons_file: str,
    output_file: str,
    point_id: Optional[str],
    polygon_id: Optional[str],
    x_column: str,
    y_column: str,
    tie_break: str,
    workers: int,
    polygon_attributes: Tuple[str, ...],
):
    """Write one row per point with the polygon containing it."""
    points, polygons = _load(points_file, polygons_file, x_column, y_column)

    try:
        engine = SpatialJoin(
            tie_break=tie_break,
            polygon_attributes=list(polygon_attributes) or None,
            point_id_column=point_id,
            polygon_id_column=polygon_id,
            x_column=x_column,
            y_column=y_column,
            workers=workers,
            progress=True,
        )
        result = engine.join(points, polygons)
    except (GeoJoinError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    _write(result.to_dataframe(), output_file)

    total = len(result)
    matched = len(result.matched)
    click.echo(f"Joined {total} points -> {output_file}")
    if total:
        click.echo(f"Matched: {matched}/{total} ({100 * matched / total:.1f}%)")
    if result.skipped:
        click.echo(f"Skipped: {len(result.skipped)} records (see --verbose)")


@cli.command("aggregate")
@shared_options
@click.option("--sum", "sum_attributes", multiple=True, help="Point attribute to sum per polygon")
@click.option(
    "--max-by", "max_attributes", multiple=True, help="Point attribute to track the max of"
)
@click.option("--collect-ids", is_flag=True, help="List matched point ids per polygon")
@click.option("--sort-by", default="count", help="Field or reducer name to sort by")
@click.option("--descending/--ascending", default=True, help="Sort direction")
@click.option("--include-empty", is_flag=True, help="Include polygons with no points")
def aggregate_command(
    points_file: str,
    polygons_file: str,
    output_file: str,
    point_id: Optional[str],
    polygon_id: Optional[str],
    x_column: str,
    y_column: str,
    tie_break: str,
    workers: int,
    sum_attributes: Tuple[str, ...],
    max_attributes: Tuple[str, ...],
    collect_ids: bool,
    sort_by: str,
    descending: bool,
    include_empty: bool,
):
    """Write per-polygon point counts and attribute summaries."""
    points, polygons = _load(points_file, polygons_file, x_column, y_column)

    reducers: List[Reducer] = [Reducer.sum(f"sum_{a}", a) for a in sum_attributes]
    reducers += [Reducer.max_by(f"max_{a}", a) for a in max_attributes]
    if collect_ids:
        reducers.append(Reducer.collect("point_ids"))

    try:
        engine = SpatialJoin(
            tie_break=tie_break,
            reducers=reducers,
            point_id_column=point_id,
            polygon_id_column=polygon_id,
            x_column=x_column,
            y_column=y_column,
            workers=workers,
            progress=True,
        )
        _, report = engine.run(points, polygons, include_empty=include_empty)
        records = sort_records(report, sort_by, descending=descending)
    except KeyError as e:
        raise click.ClickException(f"Unknown sort key: {sort_by}") from e
    except (GeoJoinError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    _write(pd.DataFrame([record.to_dict() for record in records]), output_file)

    click.echo(f"Aggregated {report.total} points into {len(records)} polygons -> {output_file}")
    click.echo(f"Unmatched: {report.unmatched}")
    if report.skipped:
        click.echo(f"Skipped: {len(report.skipped)} records (see --verbose)")
