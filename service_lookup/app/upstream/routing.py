"""
Realm (platform id) to Riot API host routing.

Only known platform ids are routed; anything else is rejected before a host
name is built from it.
"""

from typing import Dict, FrozenSet

from shared.errors import ValidationError

ACCOUNT_REGIONS: Dict[str, FrozenSet[str]] = {
    "americas": frozenset({"na1", "br1", "la1", "la2", "oc1"}),
    "europe": frozenset({"eun1", "euw1", "tr1", "ru"}),
    "asia": frozenset({"kr", "jp1"}),
    "sea": frozenset({"ph2", "sg2", "th2", "tw2", "vn2"}),
}

# Oceania moved to the European match cluster; account lookups still route via americas.
MATCH_REGIONS: Dict[str, FrozenSet[str]] = {
    "americas": frozenset({"na1", "br1", "la1", "la2"}),
    "europe": frozenset({"eun1", "euw1", "tr1", "ru", "oc1"}),
    "asia": frozenset({"kr", "jp1"}),
    "sea": frozenset({"ph2", "sg2", "th2", "tw2", "vn2"}),
}

PLATFORMS: FrozenSet[str] = frozenset().union(*ACCOUNT_REGIONS.values(), *MATCH_REGIONS.values())


def normalize_realm(realm: str) -> str:
    """Lower-cased platform id; ValidationError for anything unknown."""
    platform = realm.strip().lower()
    if platform not in PLATFORMS:
        raise ValidationError(f"Unsupported realm '{realm}'", details={"realm": realm})
    return platform


def _lookup(table: Dict[str, FrozenSet[str]], realm: str) -> str:
    platform = normalize_realm(realm)
    for region, platforms in table.items():
        if platform in platforms:
            return region
    raise ValidationError(f"Unsupported realm '{realm}'", details={"realm": realm})


def account_region(realm: str) -> str:
    """Regional route used by account-v1."""
    return _lookup(ACCOUNT_REGIONS, realm)


def match_region(realm: str) -> str:
    """Regional route used by match-v5."""
    return _lookup(MATCH_REGIONS, realm)


def platform_host(realm: str) -> str:
    return f"https://{normalize_realm(realm)}.api.riotgames.com"


def regional_host(region: str) -> str:
    return f"https://{region}.api.riotgames.com"
