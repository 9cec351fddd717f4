"""Party catalogue for the 13th Jatiya Sangsad election.

The order of :data:`PARTIES` is significant: it is the stable ordering
used to break ties when picking the leading party in the summary.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Party:
    id: str
    name: str
    short_name: str
    color: str
    alliance: str


PARTIES: tuple[Party, ...] = (
    Party("bnp", "Bangladesh Nationalist Party", "BNP", "#E8403A", "bnp_alliance"),
    Party("jamaat", "Bangladesh Jamaat-e-Islami", "Jamaat", "#2E7D32", "jamaat_alliance"),
    Party("ncp", "National Citizen Party", "NCP", "#E91E63", "jamaat_alliance"),
    Party("islami-andolan", "Islami Andolan Bangladesh", "IAB", "#00695C", "independent"),
    Party("jp-ershad", "Jatiya Party", "JP", "#FF9800", "independent"),
    Party("gonoforum", "Gono Forum", "GF", "#9C27B0", "independent"),
    Party("ldp", "Liberal Democratic Party", "LDP", "#3F51B5", "jamaat_alliance"),
    Party("jasod", "Jatiya Samajtantrik Dal", "JSD", "#F44336", "others"),
    Party("workers-party", "Workers Party of Bangladesh", "WPB", "#D32F2F", "others"),
    Party("independent", "Independent", "IND", "#78909C", "independent"),
    Party("others", "Others", "OTH", "#607D8B", "others"),
)

PARTY_IDS: frozenset[str] = frozenset(p.id for p in PARTIES)

# Party ids that do not identify a single candidate per seat.
NON_UNIQUE_PARTY_IDS: frozenset[str] = frozenset({"independent", "others"})


def canonical_party_id(party_id: str) -> str:
    """Map an arbitrary party id onto the catalogue, falling back to ``others``."""
    return party_id if party_id in PARTY_IDS else "others"
