"""Example of joining a DataFrame of points and summarizing per polygon."""

import random

import pandas as pd
from geojoin import PolygonFeature, Reducer, SpatialJoin, sort_records

# Create a 3x3 grid of districts
districts = [
    PolygonFeature.from_rings(
        f"district-{row}{col}",
        [
            (col * 100, row * 100),
            ((col + 1) * 100, row * 100),
            ((col + 1) * 100, (row + 1) * 100),
            (col * 100, (row + 1) * 100),
            (col * 100, row * 100),
        ],
    )
    for row in range(3)
    for col in range(3)
]

# Create sample data, some of it outside the grid
rng = random.Random(0)
df = pd.DataFrame(
    {
        "sensor": [f"s{i:04d}" for i in range(10_000)],
        "x": [rng.uniform(-20, 320) for _ in range(10_000)],
        "y": [rng.uniform(-20, 320) for _ in range(10_000)],
        "reading": [rng.randint(0, 100) for _ in range(10_000)],
    }
)

print("Input DataFrame:")
print(df.head())
print()

engine = SpatialJoin(
    reducers=[
        Reducer.sum("total_reading", "reading"),
        Reducer.max_by("peak", "reading"),
    ],
    point_id_column="sensor",
    workers=4,
    progress=True,
)

# Join and aggregate
print("Processing points...")
result, report = engine.run(df, districts, include_empty=True)

print("\nBusiest districts:")
for record in sort_records(report, "count", descending=True)[:3]:
    peak, sensor = record.values["peak"]
    print(f"  {record.polygon_id}: {record.count} sensors, peak {peak} at {sensor}")

# Summary statistics
print(f"\nMatch rate: {report.matched}/{report.total} ({100*report.matched/report.total:.1f}%)")

# Save to file
# result.to_dataframe().to_csv("joined.csv", index=False)
# report.to_dataframe().to_csv("districts.csv", index=False)
