"""Basic example of using geojoin."""

from geojoin import PointFeature, PolygonFeature, SpatialJoin, TieBreak

# Two parks in a local projected grid (units are metres)
parks = [
    PolygonFeature.from_rings(
        "Joe's Park",
        [(0, 0), (300, 0), (300, 350), (0, 350), (0, 0)],
        attributes={"acres": 12.0},
    ),
    PolygonFeature.from_rings(
        "Memorial Park",
        [(350, 350), (600, 350), (600, 600), (350, 600), (350, 350)],
        attributes={"acres": 8.5},
    ),
]

points = [
    PointFeature("P1", 100, 200, {"visitors": 40}),
    PointFeature("P2", 200, 300, {"visitors": 75}),
    PointFeature("P3", 400, 400, {"visitors": 20}),
    PointFeature("P4", 900, 900, {"visitors": 5}),
]

# Initialize the engine
# - tie_break: which polygon wins when several contain a point
# - polygon_attributes: polygon attributes copied onto each row
engine = SpatialJoin(
    tie_break=TieBreak.SMALLEST_AREA,
    point_attributes=["visitors"],
    polygon_attributes=["acres"],
)

print("=" * 60)
print("Point Join")
print("=" * 60)

result = engine.join(points, parks)

for row in result:
    if row.is_matched:
        print(f"{row.point_id}: ({row.x}, {row.y}) -> {row.polygon_id}")
        print(f"  Park acres: {row.polygon_attributes['acres']}")
    else:
        print(f"{row.point_id}: ({row.x}, {row.y}) -> no park ({row.match_type})")

# Single point lookup against a prebuilt index
print("\n" + "=" * 60)
print("Single Lookup")
print("=" * 60)

index = engine.index(parks)
park = index.lookup((450, 500))
print(f"(450, 500) is in: {park.id if park else 'no park'}")
