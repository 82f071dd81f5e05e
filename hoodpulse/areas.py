"""Static registry of supported areas, boroughs and landmark aliases."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Area:
    """A named neighborhood the service recommends within."""

    name: str
    lat: float
    lng: float
    radius_km: float
    borough: str
    aliases: tuple[str, ...] = ()


def _area(name: str, lat: float, lng: float, radius_km: float, borough: str, *aliases: str) -> Area:
    return Area(name=name, lat=lat, lng=lng, radius_km=radius_km, borough=borough, aliases=aliases)


_AREA_LIST = [
    # Manhattan
    _area("East Village", 40.7264, -73.9818, 0.8, "manhattan", "east village", "ev", "e village", "e.v.", "e.v"),
    _area("West Village", 40.7336, -73.9999, 0.7, "manhattan", "west village", "wv", "w village", "the village"),
    _area("Lower East Side", 40.7150, -73.9843, 0.8, "manhattan",
          "lower east side", "les", "lower east", "chinatown", "little italy"),
    _area("Chelsea", 40.7465, -74.0014, 0.8, "manhattan", "chelsea", "meatpacking", "meatpacking district"),
    _area("SoHo", 40.7233, -73.9985, 0.6, "manhattan", "soho", "so ho", "nolita"),
    _area("NoHo", 40.7290, -73.9937, 0.4, "manhattan", "noho", "no ho"),
    _area("Tribeca", 40.7163, -74.0086, 0.6, "manhattan", "tribeca", "tri beca"),
    _area("Midtown", 40.7549, -73.9840, 1.5, "manhattan",
          "midtown", "midtown manhattan", "times square", "herald square", "murray hill", "kips bay"),
    _area("Upper West Side", 40.7870, -73.9754, 1.5, "manhattan", "upper west side", "uws", "upper west"),
    _area("Upper East Side", 40.7736, -73.9566, 1.5, "manhattan", "upper east side", "ues", "upper east"),
    _area("Harlem", 40.8116, -73.9465, 1.5, "manhattan", "harlem"),
    _area("Hell's Kitchen", 40.7638, -73.9918, 0.8, "manhattan", "hell's kitchen", "hells kitchen", "hk", "clinton"),
    _area("Greenwich Village", 40.7308, -73.9973, 0.7, "manhattan", "greenwich village", "greenwich"),
    _area("Flatiron", 40.7395, -73.9903, 0.6, "manhattan", "flatiron", "gramercy", "union square", "union sq"),
    _area("Financial District", 40.7075, -74.0089, 0.8, "manhattan",
          "financial district", "fidi", "wall street", "downtown manhattan"),
    _area("East Harlem", 40.7957, -73.9389, 1.2, "manhattan", "east harlem", "el barrio", "spanish harlem"),
    _area("Washington Heights", 40.8417, -73.9393, 1.5, "manhattan",
          "washington heights", "wash heights", "the heights", "inwood"),
    # Brooklyn
    _area("Williamsburg", 40.7081, -73.9571, 1.2, "brooklyn", "williamsburg", "wburg", "billyburg"),
    _area("Bushwick", 40.6944, -73.9213, 1.0, "brooklyn",
          "bushwick", "east williamsburg", "east wburg", "ridgewood"),
    _area("Greenpoint", 40.7274, -73.9514, 0.8, "brooklyn", "greenpoint", "gpoint"),
    _area("Park Slope", 40.6710, -73.9814, 1.0, "brooklyn", "park slope", "south slope"),
    _area("Downtown Brooklyn", 40.6934, -73.9867, 0.8, "brooklyn", "downtown brooklyn", "downtown bk"),
    _area("DUMBO", 40.7033, -73.9890, 0.5, "brooklyn", "dumbo"),
    _area("Crown Heights", 40.6694, -73.9422, 1.2, "brooklyn", "crown heights"),
    _area("Bed-Stuy", 40.6872, -73.9418, 1.2, "brooklyn", "bed-stuy", "bed stuy", "bedford stuyvesant", "bedstuy"),
    _area("Fort Greene", 40.6892, -73.9742, 0.8, "brooklyn", "fort greene", "clinton hill"),
    _area("Prospect Heights", 40.6775, -73.9692, 0.8, "brooklyn", "prospect heights"),
    _area("Cobble Hill", 40.6860, -73.9957, 0.8, "brooklyn", "cobble hill", "boerum hill", "carroll gardens"),
    _area("Gowanus", 40.6734, -73.9880, 0.8, "brooklyn", "gowanus"),
    _area("Red Hook", 40.6734, -74.0080, 0.8, "brooklyn", "red hook"),
    _area("Sunset Park", 40.6514, -74.0027, 1.2, "brooklyn", "sunset park", "industry city"),
    # Queens
    _area("Astoria", 40.7723, -73.9301, 1.2, "queens", "astoria"),
    _area("Long Island City", 40.7425, -73.9561, 1.0, "queens", "long island city", "lic"),
    _area("Jackson Heights", 40.7557, -73.8831, 1.2, "queens", "jackson heights"),
    _area("Flushing", 40.7580, -73.8317, 1.5, "queens", "flushing", "downtown flushing"),
]

AREAS: dict[str, Area] = {a.name: a for a in _AREA_LIST}
AREA_NAMES: tuple[str, ...] = tuple(AREAS)

BOROUGHS: dict[str, tuple[str, ...]] = {}
for _a in _AREA_LIST:
    BOROUGHS.setdefault(_a.borough, ())
    BOROUGHS[_a.borough] += (_a.name,)

# Free-text references to a whole borough (answered with "which neighborhood?")
BOROUGH_ALIASES: dict[str, str] = {
    "brooklyn": "brooklyn",
    "bk": "brooklyn",
    "bklyn": "brooklyn",
    "queens": "queens",
    "qns": "queens",
    "manhattan": "manhattan",
    "nyc": "manhattan",
    "the city": "manhattan",
}

# Landmarks and subway stops that pin down a specific area
LANDMARKS: dict[str, str] = {
    "prospect park": "Park Slope",
    "central park": "Midtown",
    "washington square": "Greenwich Village",
    "wash sq": "Greenwich Village",
    "bryant park": "Midtown",
    "mccarren park": "Williamsburg",
    "mccarren": "Williamsburg",
    "tompkins square": "East Village",
    "tompkins": "East Village",
    "domino park": "Williamsburg",
    "brooklyn bridge": "DUMBO",
    "highline": "Chelsea",
    "high line": "Chelsea",
    "hudson yards": "Chelsea",
    "barclays": "Downtown Brooklyn",
    "barclays center": "Downtown Brooklyn",
    "msg": "Midtown",
    "madison square garden": "Midtown",
    "rockefeller": "Midtown",
    "rock center": "Midtown",
    "lincoln center": "Upper West Side",
    "carnegie hall": "Midtown",
    # Subway stops
    "bedford ave": "Williamsburg",
    "bedford stop": "Williamsburg",
    "1st ave": "East Village",
    "first ave": "East Village",
    "14th street": "Flatiron",
    "14th st": "Flatiron",
    "grand central": "Midtown",
    "atlantic ave": "Downtown Brooklyn",
    "atlantic terminal": "Downtown Brooklyn",
    "dekalb": "Downtown Brooklyn",
}
