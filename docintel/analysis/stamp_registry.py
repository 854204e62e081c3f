"""Registry of officially recognized institutional stamps.

The registry is loaded once at startup into a tuple of frozen records and
shared read-only by every pipeline run. Each record's pattern requires its
keyword fragments to appear in order, with arbitrary text in between.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import yaml

from docintel.utils.logger import get_logger

logger = get_logger(__name__)

REGISTRY_VERSION = "2024.1"


@dataclass(frozen=True)
class StampRecord:
    """A known official stamp."""

    id: str
    name: str
    keywords: tuple[str, ...]
    match_pattern: re.Pattern[str]

    def matches(self, text: str) -> bool:
        return self.match_pattern.search(text) is not None


class StampRegistry(tuple):
    """Stamp records in match-priority order, tagged with a version."""

    version: str

    def __new__(
        cls, records: Iterable[StampRecord] = (), version: str = REGISTRY_VERSION
    ) -> "StampRegistry":
        registry = super().__new__(cls, records)
        registry.version = version
        return registry


def _record(id: str, name: str, keywords: list[str], pattern: str) -> StampRecord:
    return StampRecord(
        id=id,
        name=name,
        keywords=tuple(keywords),
        match_pattern=re.compile(pattern, re.IGNORECASE | re.DOTALL),
    )


_DEFAULT_RECORDS = (
    _record(
        "stamp_1",
        "OFFICER COMMANDING 14th BN A.P.S.P. ANANTHAPURAMU",
        ["OFFICER COMMANDING", "14TH BN", "A.P.S.P", "ANANTHAPURAMU"],
        r"OFFICER\s+COMMANDING.*14.*BN.*A\.P\.S\.P.*ANANTHAPURAMU",
    ),
    _record(
        "stamp_2",
        "STATE OFFICER TO ADGP APSP HEAD OFFICE MANGALAGIRI",
        ["STATE OFFICER", "ADGP", "APSP", "HEAD OFFICE", "MANGALAGIRI"],
        r"STATE\s+OFFICER.*ADGP.*APSP.*HEAD\s+OFFICE.*MANGALAGIRI",
    ),
    _record(
        "stamp_3",
        "Inspector General of Police APSP Bns, Amaravathi",
        ["INSPECTOR GENERAL", "POLICE", "APSP", "BNS", "AMARAVATHI"],
        r"INSPECTOR\s+GENERAL.*POLICE.*APSP.*BNS.*AMARAVATHI",
    ),
    _record(
        "stamp_4",
        "Dy. Inspector General of Police-IV APSP Battalions, Mangalagiri",
        ["DY", "INSPECTOR GENERAL", "POLICE", "APSP", "BATTALIONS", "MANGALAGIRI"],
        r"DY.*INSPECTOR\s+GENERAL.*POLICE.*APSP.*BATTALIONS.*MANGALAGIRI",
    ),
    _record(
        "stamp_5",
        "Sd/- B. Sreenivasulu, IPS., Addl. Commissioner of Police, Vijayawada City",
        ["SD", "SREENIVASULU", "IPS", "COMMISSIONER", "POLICE", "VIJAYAWADA"],
        r"SD.*SREENIVASULU.*IPS.*COMMISSIONER.*POLICE.*VIJAYAWADA",
    ),
    _record(
        "stamp_6",
        "Dr. SHANKHABRATA BAGCHI IPS., Addl. Director General of Police, "
        "APSP Battalions",
        [
            "SHANKHABRATA",
            "BAGCHI",
            "IPS",
            "DIRECTOR GENERAL",
            "POLICE",
            "APSP",
            "BATTALIONS",
        ],
        r"SHANKHABRATA.*BAGCHI.*IPS.*DIRECTOR\s+GENERAL.*POLICE.*APSP.*BATTALIONS",
    ),
)

DEFAULT_STAMP_REGISTRY = StampRegistry(_DEFAULT_RECORDS, REGISTRY_VERSION)


def load_stamp_registry(path: Path | None = None) -> StampRegistry:
    """Load the stamp registry, optionally from a YAML override.

    The YAML file holds an optional ``version`` and a ``stamps`` list whose
    entries have ``id``, ``name``, ``keywords`` and ``pattern`` keys.

    Args:
        path: Optional override file. The embedded registry is used when
            ``None`` or when the file does not exist.

    Returns:
        Immutable, versioned tuple of stamp records, in match-priority order.
    """
    if path is None or not path.exists():
        logger.debug("Using embedded stamp registry v%s", REGISTRY_VERSION)
        return DEFAULT_STAMP_REGISTRY

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    registry = StampRegistry(
        (
            _record(
                str(entry["id"]),
                str(entry["name"]),
                [str(k) for k in entry.get("keywords", [])],
                str(entry["pattern"]),
            )
            for entry in data.get("stamps", [])
        ),
        version=str(data.get("version", "unversioned")),
    )
    logger.info(
        "Loaded %d stamp records (version %s) from %s",
        len(registry),
        registry.version,
        path,
    )
    return registry


def match_registry(
    text: str, registry: tuple[StampRecord, ...]
) -> StampRecord | None:
    """Return the first registry record whose pattern matches the text.

    Args:
        text: Raw extracted document text.
        registry: Stamp records in priority order.

    Returns:
        The matching record, or ``None``.
    """
    for record in registry:
        if record.matches(text):
            return record
    return None
