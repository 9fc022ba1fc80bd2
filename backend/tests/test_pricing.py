"""
Parcel pricing tests.
"""

import pytest
from backend.app.domain.parcels.pricing import calculate_parcel_price
from backend.app.models.parcel_enums import ParcelType, TransportMode


def test_boxed_package_standard():
    # 200 + 150 + 2*20 + 10*10
    assert calculate_parcel_price(ParcelType.BOXED_PACKAGE, 2, 10, TransportMode.STANDARD) == 490


def test_boxed_package_express():
    assert calculate_parcel_price(ParcelType.BOXED_PACKAGE, 2, 10, TransportMode.EXPRESS) == 735


@pytest.mark.parametrize("parcel_type,expected", [
    (ParcelType.ENVELOPE, 250),
    (ParcelType.BAG, 300),
    (ParcelType.BOXED_PACKAGE, 350),
    (ParcelType.SUITCASE, 400),
])
def test_type_surcharges(parcel_type, expected):
    assert calculate_parcel_price(parcel_type, 0, 0, TransportMode.STANDARD) == expected


def test_half_values_round_up():
    # 200 + 50 + 0.5 = 250.5; round() would give 250
    assert calculate_parcel_price(ParcelType.ENVELOPE, 0.025, 0, TransportMode.STANDARD) == 251


def test_express_half_rounds_up():
    # (200 + 50 + 0.05*20) * 1.5 = 376.5
    assert calculate_parcel_price(ParcelType.ENVELOPE, 0.05, 0, TransportMode.EXPRESS) == 377


def test_accepts_raw_enum_values():
    assert calculate_parcel_price("SUITCASE", 1, 1, "EXPRESS") == 645
