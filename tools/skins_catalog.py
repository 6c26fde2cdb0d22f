"""
SKINDROP — Skins Catalog

Display metadata (name, weapon, image) for the 14 tiles. Pulled from the
public qwkdev/csapi dataset; anything that goes wrong falls back to a built-in
list so the board always has 14 faces.

Usage:
    from tools.skins_catalog import SkinCatalog
    catalog = SkinCatalog()
    catalog.refresh()
    catalog.skins()  # → [{"id": ..., "name": "AWP | Dragon Lore", ...}, ...]
"""

import logging
import re
import threading
from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import quote_plus

from config.settings import DEFAULT_SKINS_SOURCES, TILE_COUNT

logger = logging.getLogger("skindrop.skins")

STEAM_CDN = "https://steamcommunity-a.akamaihd.net/economy/image/"
PLACEHOLDER_URL = "https://placehold.co/256x192/1a1a2e/f5a623?text={text}"

PREFERRED_SKINS = [
    ("AWP", "Dragon Lore"),
    ("M4A4", "Howl"),
    ("AK-47", "Fire Serpent"),
    ("M4A1-S", "Printstream"),
    ("Desert Eagle", "Blaze"),
    ("USP-S", "Kill Confirmed"),
    ("Glock-18", "Fade"),
    ("Butterfly Knife", "Fade"),
    ("MAC-10", "Neon Rider"),
    ("P90", "Death by Kitty"),
    ("AK-47", "Case Hardened"),
    ("AK-47", "Vulcan"),
    ("M4A4", "Neo-Noir"),
    ("AWP", "Gungnir"),
]


@dataclass
class Skin:
    id: str
    name: str
    weapon: str
    image: str
    rarity: str = "covert"

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_name(name: str) -> str:
    """Lowercase, minus StatTrak/Souvenir prefixes, wear suffix and stars."""
    name = name.lower()
    name = re.sub(r"stattrak™?\s*", "", name)
    name = re.sub(r"souvenir\s*", "", name)
    name = re.sub(r"\s*\(.*?\)\s*", "", name)
    return name.replace("★", "").strip()


def _placeholder(text: str) -> str:
    return PLACEHOLDER_URL.format(text=quote_plus(text))


def fallback_skins() -> list[dict]:
    return [
        Skin(id=f"fallback-{i}", name=f"{weapon} | {skin}", weapon=weapon,
             image=_placeholder(weapon)).to_dict()
        for i, (weapon, skin) in enumerate(PREFERRED_SKINS)
    ][:TILE_COUNT]


def _item_name(item: dict) -> str:
    return item.get("name") or item.get("market_hash_name") or ""


def _image_url(item: dict, weapon: str) -> str:
    img = item.get("image") or item.get("icon_url") or item.get("icon_url_large") or ""
    if img and not str(img).startswith("http"):
        img = STEAM_CDN + img
    return img or _placeholder(weapon)


def select_skins(items: list) -> list[dict]:
    """Pick one dataset item per preferred weapon/skin pair, padded to the board size."""
    items = [i for i in items if isinstance(i, dict)]
    selected = []
    for weapon, skin in PREFERRED_SKINS:
        weapon_n, skin_n = normalize_name(weapon), normalize_name(skin)
        found = next((i for i in items
                      if weapon_n in normalize_name(_item_name(i))
                      and skin_n in normalize_name(_item_name(i))), None)
        if found is None:
            found = next((i for i in items if skin_n in normalize_name(_item_name(i))), None)

        if found is None:
            selected.append(Skin(id=f"fallback-{len(selected)}", name=f"{weapon} | {skin}",
                                 weapon=weapon, image=_placeholder(weapon)))
            continue
        selected.append(Skin(
            id=str(found.get("id") or found.get("classid") or f"skin-{len(selected)}"),
            name=_item_name(found) or f"{weapon} | {skin}",
            weapon=weapon,
            image=_image_url(found, weapon),
            rarity=found.get("rarity") or "covert",
        ))

    while len(selected) < TILE_COUNT:
        n = len(selected)
        selected.append(Skin(id=f"extra-{n}", name=f"Skin {n + 1}", weapon="Unknown",
                             image=_placeholder(f"Skin {n + 1}"), rarity="classified"))
    return [s.to_dict() for s in selected[:TILE_COUNT]]


class SkinCatalog:

    def __init__(self, sources: Optional[list] = None, timeout: float = 10.0):
        self.sources = list(sources) if sources is not None else list(DEFAULT_SKINS_SOURCES)
        self.timeout = timeout
        self._lock = threading.Lock()
        self._skins: list[dict] = []

    def skins(self) -> list[dict]:
        """Cached list; empty until the first refresh()."""
        with self._lock:
            return list(self._skins)

    def _fetch(self) -> list:
        import httpx
        for url in self.sources:
            try:
                logger.info(f"Fetching skins from {url}")
                resp = httpx.get(url, timeout=self.timeout, follow_redirects=True)
                resp.raise_for_status()
                data = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Skins fetch failed for {url}: {e}")
                continue
            if isinstance(data, dict):
                data = list(data.values())
            if isinstance(data, list) and data:
                logger.info(f"Fetched {len(data)} skin items")
                return data
        return []

    def refresh(self) -> list[dict]:
        items = self._fetch()
        if items:
            skins = select_skins(items)
        else:
            logger.error("Skins unavailable from every source, using built-in list")
            skins = fallback_skins()
        with self._lock:
            self._skins = skins
        return list(skins)
