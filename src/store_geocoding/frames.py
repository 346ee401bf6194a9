"""Conversion between pandas DataFrames and geocoding rows/results."""

from __future__ import annotations

from typing import Iterable, List, Optional

import pandas as pd

from .models import GeocodeResult, ImportRow, RowResult

ROW_COLUMNS = ["id", "address", "city", "postcode", "country", "latitude", "longitude"]


def _text(value) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def _number(value) -> Optional[float]:
    if value is None:
        return None
    number = pd.to_numeric(value, errors="coerce")
    if pd.isna(number):
        return None
    return float(number)


def rows_from_frame(df: pd.DataFrame, id_column: str = "id") -> List[ImportRow]:
    """
    Build ImportRows from a frame with the standard column names.

    Missing optional columns are treated as empty. When `id_column` is
    absent the frame index is used as the row id.
    """
    if "country" not in df.columns:
        raise KeyError("frame must have a 'country' column")

    rows = []
    for index, record in df.iterrows():
        row_id = record[id_column] if id_column in df.columns else index
        rows.append(ImportRow(
            id=str(row_id),
            country=_text(record.get("country")) or "",
            address=_text(record.get("address")),
            city=_text(record.get("city")),
            postcode=_text(record.get("postcode")),
            latitude=_number(record.get("latitude")),
            longitude=_number(record.get("longitude")),
        ))
    return rows


def results_to_frame(results: Iterable[RowResult]) -> pd.DataFrame:
    """One record per row: input columns plus lat/lng/precision/provider/error."""
    records = []
    for item in results:
        row, result = item.row, item.result
        record = {
            "id": row.id,
            "address": row.address,
            "city": row.city,
            "postcode": row.postcode,
            "country": row.country,
        }
        if isinstance(result, GeocodeResult):
            record.update(result.to_dict())
            record.update(error=None, retryable=None)
        else:
            record.update(
                lat=None,
                lng=None,
                precision=None,
                provider=result.provider.value if result.provider else None,
                error=result.error,
                retryable=result.retryable,
            )
        records.append(record)

    columns = ["id", "address", "city", "postcode", "country",
               "lat", "lng", "precision", "provider", "error", "retryable"]
    return pd.DataFrame.from_records(records, columns=columns)
