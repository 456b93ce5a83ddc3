"""Load simulation routes from local CSV files."""

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from .models import Coordinates, Route, Station

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("name", "code", "latitude", "longitude")


def _text(value, default: str) -> str:
    if pd.isna(value) or str(value).strip() == "":
        return default
    return str(value).strip()


def load_route_csv(path: Union[str, Path], train_number: Optional[str] = None) -> Route:
    """
    Build a Route from a stations CSV.

    Expected columns: name, code, latitude, longitude and optionally arrival,
    departure. Rows are taken in file order. Blank or non-numeric coordinates
    become stations without coordinates.

    Args:
        path: Path to the CSV file.
        train_number: Identifier for the route; defaults to the file stem.

    Raises:
        ValueError: If a required column is missing or the file has no rows.
    """
    path = Path(path)
    logger.info(f"Loading route from {path}")
    df = pd.read_csv(path, dtype={"name": str, "code": str})

    missing = [column for column in REQUIRED_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Route file {path} is missing columns: {', '.join(missing)}")
    if df.empty:
        raise ValueError(f"Route file {path} has no stations")

    df["latitude"] = pd.to_numeric(df["latitude"], errors="coerce")
    df["longitude"] = pd.to_numeric(df["longitude"], errors="coerce")

    stations = []
    for index, row in enumerate(df.itertuples(index=False)):
        has_coords = not (pd.isna(row.latitude) or pd.isna(row.longitude))
        stations.append(Station(
            name=_text(row.name, "Unknown Station"),
            code=_text(row.code, "???"),
            sequence_index=index,
            coordinates=Coordinates(float(row.latitude), float(row.longitude)) if has_coords else None,
            scheduled_arrival=_text(getattr(row, "arrival", None), "N/A"),
            scheduled_departure=_text(getattr(row, "departure", None), "N/A"),
        ))

    gaps = sum(1 for s in stations if not s.has_coordinates)
    if gaps:
        logger.warning(f"{gaps} of {len(stations)} stations in {path} have no coordinates")

    route = Route(train_number=train_number or path.stem, stations=stations)
    route.validate()
    return route
