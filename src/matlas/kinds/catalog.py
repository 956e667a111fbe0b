"""Static Atlas catalog: providers, regions, instance sizes."""

from typing import Dict, FrozenSet, Optional

PROVIDERS = ("AWS", "GCP", "AZURE")

REGIONS: Dict[str, FrozenSet[str]] = {
    "AWS": frozenset({
        "US_EAST_1", "US_EAST_2", "US_WEST_1", "US_WEST_2", "US_GOV_WEST_1", "US_GOV_EAST_1",
        "CA_CENTRAL_1", "CA_WEST_1", "SA_EAST_1", "MX_CENTRAL_1",
        "EU_WEST_1", "EU_WEST_2", "EU_WEST_3", "EU_CENTRAL_1", "EU_CENTRAL_2",
        "EU_NORTH_1", "EU_SOUTH_1", "EU_SOUTH_2",
        "AP_EAST_1", "AP_SOUTH_1", "AP_SOUTH_2", "AP_SOUTHEAST_1", "AP_SOUTHEAST_2",
        "AP_SOUTHEAST_3", "AP_SOUTHEAST_4", "AP_SOUTHEAST_5", "AP_SOUTHEAST_7",
        "AP_NORTHEAST_1", "AP_NORTHEAST_2", "AP_NORTHEAST_3",
        "ME_SOUTH_1", "ME_CENTRAL_1", "AF_SOUTH_1", "IL_CENTRAL_1",
    }),
    "GCP": frozenset({
        "CENTRAL_US", "EASTERN_US", "US_EAST_4", "US_EAST_5", "WESTERN_US", "US_WEST_2",
        "US_WEST_3", "US_WEST_4", "US_SOUTH_1", "NORTH_AMERICA_NORTHEAST_1",
        "NORTH_AMERICA_NORTHEAST_2", "NORTH_AMERICA_SOUTH_1", "SOUTH_AMERICA_EAST_1",
        "SOUTH_AMERICA_WEST_1", "WESTERN_EUROPE", "EUROPE_NORTH_1", "EUROPE_WEST_2",
        "EUROPE_WEST_3", "EUROPE_WEST_4", "EUROPE_WEST_6", "EUROPE_WEST_8", "EUROPE_WEST_9",
        "EUROPE_WEST_10", "EUROPE_WEST_12", "EUROPE_SOUTHWEST_1", "EUROPE_CENTRAL_2",
        "MIDDLE_EAST_CENTRAL_1", "MIDDLE_EAST_CENTRAL_2", "MIDDLE_EAST_WEST_1",
        "AUSTRALIA_SOUTHEAST_1", "AUSTRALIA_SOUTHEAST_2", "AFRICA_SOUTH_1",
        "EASTERN_ASIA_PACIFIC", "NORTHEASTERN_ASIA_PACIFIC", "SOUTHEASTERN_ASIA_PACIFIC",
        "ASIA_EAST_2", "ASIA_NORTHEAST_2", "ASIA_NORTHEAST_3", "ASIA_SOUTH_1",
        "ASIA_SOUTH_2", "ASIA_SOUTHEAST_2",
    }),
    "AZURE": frozenset({
        "US_CENTRAL", "US_EAST", "US_EAST_2", "US_NORTH_CENTRAL", "US_WEST", "US_WEST_2",
        "US_WEST_3", "US_SOUTH_CENTRAL", "US_WEST_CENTRAL", "CANADA_EAST", "CANADA_CENTRAL",
        "BRAZIL_SOUTH", "BRAZIL_SOUTHEAST", "MEXICO_CENTRAL", "EUROPE_NORTH", "EUROPE_WEST",
        "UK_SOUTH", "UK_WEST", "FRANCE_CENTRAL", "FRANCE_SOUTH", "GERMANY_WEST_CENTRAL",
        "GERMANY_NORTH", "SWITZERLAND_NORTH", "SWITZERLAND_WEST", "NORWAY_EAST", "NORWAY_WEST",
        "SWEDEN_CENTRAL", "SWEDEN_SOUTH", "ITALY_NORTH", "POLAND_CENTRAL", "SPAIN_CENTRAL",
        "ASIA_EAST", "ASIA_SOUTH_EAST", "AUSTRALIA_CENTRAL", "AUSTRALIA_CENTRAL_2",
        "AUSTRALIA_EAST", "AUSTRALIA_SOUTH_EAST", "INDIA_CENTRAL", "INDIA_SOUTH", "INDIA_WEST",
        "JAPAN_EAST", "JAPAN_WEST", "KOREA_CENTRAL", "KOREA_SOUTH", "SOUTH_AFRICA_NORTH",
        "SOUTH_AFRICA_WEST", "UAE_CENTRAL", "UAE_NORTH", "QATAR_CENTRAL", "ISRAEL_CENTRAL",
    }),
}

# Cloud-native spellings accepted in manifests.
REGION_ALIASES: Dict[str, str] = {
    "US_CENTRAL1": "CENTRAL_US",
    "US_EAST1": "EASTERN_US",
    "US_WEST1": "WESTERN_US",
    "EUROPE_WEST1": "WESTERN_EUROPE",
    "ASIA_SOUTHEAST1": "SOUTHEASTERN_ASIA_PACIFIC",
    "ASIA_EAST1": "EASTERN_ASIA_PACIFIC",
    "ASIA_NORTHEAST1": "NORTHEASTERN_ASIA_PACIFIC",
    "EASTUS": "US_EAST",
    "EASTUS2": "US_EAST_2",
    "WESTUS": "US_WEST",
    "WESTEUROPE": "EUROPE_WEST",
    "NORTHEUROPE": "EUROPE_NORTH",
    "SOUTHEASTASIA": "ASIA_SOUTH_EAST",
}

INSTANCE_SIZES = (
    "M0", "M2", "M5", "M10", "M20", "M30", "M40", "M50", "M60", "M80",
    "M140", "M200", "M300", "M400", "M700",
    "R40", "R50", "R60", "R80", "R200", "R300", "R400", "R700",
)

TENANT_SIZES = frozenset({"M0", "M2", "M5"})

# provider -> region -> sizes not offered there
RESTRICTED_SIZES: Dict[str, Dict[str, FrozenSet[str]]] = {
    "AWS": {
        "AP_SOUTHEAST_1": frozenset({"M700", "R700"}),
    },
}

BUILTIN_ROLES = frozenset({
    "read", "readWrite", "dbAdmin", "dbOwner", "userAdmin", "clusterAdmin",
    "clusterManager", "clusterMonitor", "hostManager", "backup", "restore",
    "readAnyDatabase", "readWriteAnyDatabase", "userAdminAnyDatabase",
    "dbAdminAnyDatabase", "root", "enableSharding", "atlasAdmin",
})

# Built-in roles that span every database of the cluster.
ANY_DATABASE_ROLES = frozenset({
    "readAnyDatabase", "readWriteAnyDatabase", "userAdminAnyDatabase",
    "dbAdminAnyDatabase", "root", "atlasAdmin", "clusterAdmin",
})


def canonical_region(region: Optional[str]) -> str:
    """Atlas spelling of a region: upper case, underscores, aliases resolved."""
    if not region:
        return ""
    value = str(region).strip().upper().replace("-", "_")
    return REGION_ALIASES.get(value, value)


def region_supported(provider: str, region: str) -> bool:
    regions = REGIONS.get(str(provider).upper())
    if regions is None:
        return False
    return canonical_region(region) in regions


def size_available(provider: str, region: str, instance_size: str) -> bool:
    restricted = RESTRICTED_SIZES.get(str(provider).upper(), {}).get(canonical_region(region), frozenset())
    return str(instance_size).upper() not in restricted
