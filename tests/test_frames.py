from __future__ import annotations

import math

import pandas as pd
import pytest

from store_geocoding.frames import results_to_frame, rows_from_frame
from store_geocoding.models import (
    GeocodeErrorDetails,
    GeocodeResult,
    ImportRow,
    Precision,
    ProviderName,
    RowResult,
)


def test_rows_from_frame_handles_missing_values():
    frame = pd.DataFrame([
        {"id": "s1", "address": "Main St 1", "city": "Berlin", "postcode": None, "country": "DE",
         "latitude": None, "longitude": None},
        {"id": "s2", "address": None, "city": " Paris ", "postcode": "75001", "country": "FR",
         "latitude": 48.86, "longitude": 2.35},
    ])

    rows = rows_from_frame(frame)

    assert rows[0] == ImportRow(id="s1", country="DE", address="Main St 1", city="Berlin")
    assert rows[1].city == "Paris"
    assert rows[1].has_coordinates()
    assert not rows[0].has_coordinates()


def test_rows_from_frame_uses_index_without_id_column():
    frame = pd.DataFrame({"city": ["Berlin"], "country": ["DE"]}, index=[42])

    [row] = rows_from_frame(frame)

    assert row.id == "42"
    assert row.address is None


def test_rows_from_frame_requires_country():
    with pytest.raises(KeyError):
        rows_from_frame(pd.DataFrame({"city": ["Berlin"]}))


def test_results_to_frame():
    ok_row = ImportRow(id="1", country="DE", city="Berlin")
    bad_row = ImportRow(id="2", country="DE", city="Nowhere")
    frame = results_to_frame([
        RowResult(ok_row, GeocodeResult(52.52, 13.405, Precision.CITY, ProviderName.NOMINATIM)),
        RowResult(bad_row, GeocodeErrorDetails("No results", retryable=False, provider=ProviderName.GOOGLE)),
    ])

    assert list(frame["id"]) == ["1", "2"]
    assert frame.loc[0, "precision"] == "city"
    assert frame.loc[0, "lat"] == 52.52
    assert frame.loc[1, "error"] == "No results"
    assert frame.loc[1, "provider"] == "google"
    assert math.isnan(frame.loc[1, "lat"])
