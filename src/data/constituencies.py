"""Static catalogue of the 300 parliamentary constituencies.

Seats are numbered sequentially by division, then district, in the
order of :data:`DISTRICT_SEATS`.  Registered-voter counts vary by up to
+/-20% around the national average; the variance is derived from a hash
of the seat name so re-seeding always produces identical records.
"""

from __future__ import annotations

import hashlib
import re

from src.models.election import ConstituencyRecord, ConstituencyStatus

DISTRICT_SEATS: dict[str, dict[str, int]] = {
    "Dhaka": {
        "Dhaka": 20, "Tangail": 8, "Gazipur": 5, "Kishoreganj": 6, "Narsingdi": 5,
        "Narayanganj": 5, "Faridpur": 4, "Gopalganj": 3, "Manikganj": 3,
        "Munshiganj": 3, "Madaripur": 3, "Shariatpur": 3, "Rajbari": 2,
    },
    "Chattogram": {
        "Chattogram": 16, "Cumilla": 11, "Brahmanbaria": 6, "Chandpur": 6,
        "Noakhali": 5, "Cox's Bazar": 4, "Feni": 3, "Lakshmipur": 3,
        "Khagrachhari": 2, "Rangamati": 1, "Bandarban": 1,
    },
    "Rajshahi": {
        "Bogura": 7, "Rajshahi": 6, "Naogaon": 6, "Sirajganj": 6, "Pabna": 5,
        "Natore": 3, "Chapainawabganj": 3, "Joypurhat": 3,
    },
    "Khulna": {
        "Kushtia": 6, "Jashore": 6, "Khulna": 6, "Satkhira": 4, "Jhenaidah": 4,
        "Chuadanga": 2, "Magura": 2, "Narail": 2, "Meherpur": 2, "Bagerhat": 2,
    },
    "Rangpur": {
        "Rangpur": 6, "Dinajpur": 6, "Gaibandha": 5, "Kurigram": 4,
        "Nilphamari": 4, "Thakurgaon": 3, "Lalmonirhat": 3, "Panchagarh": 2,
    },
    "Mymensingh": {
        "Mymensingh": 11, "Jamalpur": 5, "Netrokona": 5, "Sherpur": 3,
    },
    "Barishal": {
        "Barishal": 6, "Bhola": 4, "Patuakhali": 4, "Pirojpur": 3,
        "Barguna": 2, "Jhalokathi": 2,
    },
    "Sylhet": {
        "Sylhet": 6, "Sunamganj": 5, "Habiganj": 4, "Moulvibazar": 4,
    },
}

TOTAL_SEATS = 300

# ~127.6M registered voters / 300 seats
_AVG_REGISTERED = 425_333
_POSTPONED = frozenset({"Sherpur-3"})

_SLUG_RE = re.compile(r"['\s]+")


def constituency_slug(name: str) -> str:
    """Stable document id for a seat name (``"Cox's Bazar-1"`` -> ``"cox-s-bazar-1"``)."""
    return _SLUG_RE.sub("-", name.strip().lower())


def _registered_voters(name: str) -> int:
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    variance = 0.8 + (int.from_bytes(digest[:4], "big") / 0xFFFFFFFF) * 0.4
    return round(_AVG_REGISTERED * variance)


def build_constituencies() -> list[ConstituencyRecord]:
    """Return fresh, zeroed records for every seat, ordered by seat number."""
    records: list[ConstituencyRecord] = []
    number = 1
    for division, districts in DISTRICT_SEATS.items():
        for district, seat_count in districts.items():
            for i in range(1, seat_count + 1):
                name = f"{district}-{i}"
                records.append(
                    ConstituencyRecord(
                        id=constituency_slug(name),
                        number=number,
                        name=name,
                        division=division,
                        district=district,
                        status=(
                            ConstituencyStatus.POSTPONED
                            if name in _POSTPONED
                            else ConstituencyStatus.NOT_STARTED
                        ),
                        total_registered=_registered_voters(name),
                    )
                )
                number += 1
    return records
