"""
Curated Metro Manila places.

Serves two roles:
- an offline search collaborator (radius + place-type lookup), used when no
  live places API is wired in;
- the static fallback list handed out when discovery fails outright.
"""
from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from .models import Candidate, FilterSpec, LatLng, PriceBounds

_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
_CURATED_CSV = _DATA_DIR / "curated_places.csv"

_curated: CuratedPlaces | None = None


def _split(value: object) -> list[str]:
    if not isinstance(value, str):
        return []
    return [v.strip().lower() for v in value.split(";") if v.strip()]


def _load(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path)

    df["types_list"] = df["types"].apply(_split)
    df["tags_list"] = df["tags"].apply(_split)
    df["category_lower"] = df["category"].fillna("").str.lower()
    for col in ("rating", "review_count", "price_level", "mood_score", "lat", "lng"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["has_opening_hours"] = df["has_opening_hours"].astype(str).str.lower() == "true"

    return df


def _opt(value: object, cast: type) -> object:
    return cast(value) if pd.notna(value) else None


def _row_to_record(row: pd.Series) -> dict:
    location = None
    if pd.notna(row["lat"]) and pd.notna(row["lng"]):
        location = {"lat": float(row["lat"]), "lng": float(row["lng"])}
    return {
        "id": str(row["id"]),
        "name": row["name"],
        "rating": _opt(row["rating"], float),
        "review_count": _opt(row["review_count"], int),
        "price_level": _opt(row["price_level"], int),
        "mood_score": _opt(row["mood_score"], float),
        # Place types double as tags so scoring can match on them.
        "tags": sorted(set(row["types_list"]) | set(row["tags_list"])),
        "location": location,
        "address": row["address"] if pd.notna(row["address"]) else None,
        "has_opening_hours": bool(row["has_opening_hours"]),
    }


class CuratedPlaces:
    def __init__(self, df: pd.DataFrame) -> None:
        self.df = df

    @classmethod
    def from_csv(cls, path: Path | str = _CURATED_CSV) -> CuratedPlaces:
        return cls(_load(Path(path)))

    def __len__(self) -> int:
        return len(self.df)

    def _distances_m(self, center: LatLng) -> np.ndarray:
        lat1, lng1 = np.radians(center.lat), np.radians(center.lng)
        lat2 = np.radians(self.df["lat"].to_numpy(dtype=float))
        lng2 = np.radians(self.df["lng"].to_numpy(dtype=float))
        h = np.sin((lat2 - lat1) / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin((lng2 - lng1) / 2) ** 2
        return 2 * 6371000.0 * np.arcsin(np.sqrt(h))

    async def search(
        self,
        center: LatLng,
        radius_m: int,
        category_types: list[str],
        price_bounds: PriceBounds | None = None,
    ) -> list[dict]:
        """Places within *radius_m* of *center* carrying any of *category_types*."""
        df = self.df
        wanted = {t.lower() for t in category_types}

        mask = pd.Series(self._distances_m(center) <= radius_m, index=df.index)
        mask = mask & df["types_list"].apply(lambda types: bool(wanted & set(types)))
        if price_bounds is not None:
            price = df["price_level"]
            mask = mask & (price.isna() | price.between(price_bounds.min, price_bounds.max))

        return [_row_to_record(row) for _, row in df.loc[mask].iterrows()]

    def fallback(self, filters: FilterSpec) -> list[Candidate]:
        """Best-rated curated places for the query's category."""
        df = self.df
        rows = df.loc[df["category_lower"] == filters.category.value]
        rows = rows.sort_values(["rating", "review_count"], ascending=False)
        return [Candidate.model_validate(_row_to_record(row)) for _, row in rows.iterrows()]


def get_curated_places() -> CuratedPlaces:
    """Return the bundled curated list, loading it on first call."""
    global _curated
    if _curated is None:
        _curated = CuratedPlaces.from_csv()
    return _curated
