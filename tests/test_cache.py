"""Tests para la caché de último valor."""

import dataclasses
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from scale_bridge.cache import ReadingCache
from scale_bridge.models import WeightReading


@pytest.fixture
def reading():
    """Lectura de 12.345 kg con 1 kg de tara."""
    return WeightReading(
        gross=Decimal("12.345"),
        tare=Decimal("1.000"),
        unit="kg",
        captured_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )


class TestReadingCache:
    """Tests para ReadingCache."""

    def test_initial_snapshot(self):
        """Test del snapshot vacío."""
        snapshot = ReadingCache().get()

        assert snapshot.reading is None
        assert snapshot.connected is False
        assert snapshot.to_dict() == {
            "display": "No data",
            "grossValue": None,
            "tareValue": None,
            "netValue": None,
            "unit": None,
            "connected": False,
            "timestamp": None,
        }

    def test_update_reading(self, reading):
        """Test que una lectura nueva aparece en el snapshot."""
        cache = ReadingCache()
        cache.update_reading(reading)
        cache.set_connected(True)

        data = cache.get().to_dict()
        assert data["display"] == "12.345 kg"
        assert data["grossValue"] == 12.345
        assert data["netValue"] == 11.345
        assert data["connected"] is True
        assert data["timestamp"] == 1714564800000

    def test_snapshot_is_point_in_time(self, reading):
        """Test que un snapshot no cambia con escrituras posteriores."""
        cache = ReadingCache()
        before = cache.get()

        cache.update_reading(reading)
        cache.mark_response(10.0)

        assert before.reading is None
        assert before.last_response_at is None
        assert cache.last_response_at == 10.0

    def test_snapshot_is_immutable(self):
        """Test que el snapshot no se puede modificar."""
        snapshot = ReadingCache().get()
        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.connected = True

    def test_same_weight_ignores_timestamp(self, reading):
        """Test que same_weight compara bruto, tara y unidad."""
        later = dataclasses.replace(
            reading, captured_at=datetime(2024, 5, 2, tzinfo=timezone.utc)
        )
        assert reading.same_weight(later)
        assert not reading.same_weight(None)
        assert not reading.same_weight(
            dataclasses.replace(reading, tare=Decimal("2.000"))
        )
