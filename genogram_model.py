"""
genogram_model.py

Family graph model: the Person record, the persisted document codec and
the attribute marker table.

Persisted document (version 1.0):
    {
        "version": "1.0",
        "nextKey": 5,
        "familyData": [
            {"key": 1, "name": "Kim", "gender": "M", "spouse": 2, ...},
            ...
        ]
    }

Loading is tolerant about field values (unknown gender -> "U", invalid
markers dropped, 0 / "" references -> None) and strict only about the
document shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"

# gender code -> rendered node kind
GENDER_KINDS = {"M": "male", "F": "female", "U": "unknown", "P": "pet"}
_GENDER_ALIASES = {
    "MALE": "M",
    "FEMALE": "F",
    "UNKNOWN": "U",
    "PET": "P",
}
BIRTH_STATUSES = ("normal", "pregnancy", "miscarriage", "abortion")
RELATION_STATUSES = ("married", "divorced")

# Attribute markers A-L, three per quadrant.
QUADRANT_MARKERS = {
    "topLeft": ("A", "B", "C"),
    "topRight": ("D", "E", "F"),
    "bottomRight": ("G", "H", "I"),
    "bottomLeft": ("J", "K", "L"),
}
MARKER_QUADRANT = {m: q for q, markers in QUADRANT_MARKERS.items() for m in markers}
MAX_ATTRIBUTES = len(QUADRANT_MARKERS)

ATTRIBUTE_COLORS = {
    "A": "#00af54",  # green
    "B": "#f27935",  # orange
    "C": "#d4071c",  # red
    "D": "#70bdc2",  # cyan
    "E": "#fcf384",  # gold
    "F": "#e69aaf",  # pink
    "G": "#08488f",  # blue
    "H": "#866310",  # brown
    "I": "#9270c2",  # purple
    "J": "#a3cf62",  # chartreuse
    "K": "#91a4c2",  # bluish gray
    "L": "#af70c2",  # magenta
}

# child line stroke by relation; adopted and foster lines are dashed
CHILD_STROKES = {
    None: "gray",
    "adopted": "#2196F3",
    "foster": "#4CAF50",
}


class GenogramError(ValueError):
    """Base class for invalid family data."""


class DocumentError(GenogramError):
    """The persisted document does not have the expected shape."""


class RelationError(GenogramError):
    """A father/mother/spouse assignment would break the family graph."""


class AttributeMarkerError(GenogramError):
    pass


class UnknownPersonError(GenogramError):
    pass


@dataclass
class Person:
    key: int
    name: str = ""
    gender: str = "U"  # "M" | "F" | "U" | "P"
    age: Optional[int] = None
    deceased: bool = False
    is_adopted: bool = False
    is_foster: bool = False
    birth_status: str = "normal"
    father: Optional[int] = None
    mother: Optional[int] = None
    spouse: Optional[int] = None
    relation_status: str = "married"
    twin_group: Optional[int] = None
    is_identical_twin: bool = False
    attributes: List[str] = field(default_factory=list)
    position: Optional[Tuple[float, float]] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Person":
        if not isinstance(data, dict):
            raise DocumentError(f"Person entry must be an object, got {type(data).__name__}")
        if data.get("key") is None:
            raise DocumentError(f"Person entry without key: {data!r}")
        try:
            key = int(data["key"])
        except (TypeError, ValueError):
            raise DocumentError(f"Person key is not an integer: {data['key']!r}") from None
        if key <= 0:
            raise DocumentError(f"Person key must be positive: {key}")

        birth_status = str(data.get("birthStatus") or "normal").strip().lower()
        if birth_status not in BIRTH_STATUSES:
            logger.debug("person %s: unknown birthStatus %r, using normal", key, birth_status)
            birth_status = "normal"
        relation_status = str(data.get("relationStatus") or "married").strip().lower()
        if relation_status not in RELATION_STATUSES:
            relation_status = "married"

        return cls(
            key=key,
            name=str(data.get("name") or ""),
            gender=normalize_gender(data.get("gender")),
            age=_optional_age(data.get("age")),
            deceased=bool(data.get("deceased")),
            is_adopted=bool(data.get("isAdopted")),
            is_foster=bool(data.get("isFoster")),
            birth_status=birth_status,
            father=_optional_key(data.get("father")),
            mother=_optional_key(data.get("mother")),
            spouse=_optional_key(data.get("spouse")),
            relation_status=relation_status,
            twin_group=_optional_key(data.get("twinGroup")),
            is_identical_twin=bool(data.get("isIdenticalTwin")),
            attributes=clean_attributes(data.get("attributes") or []),
            position=_optional_position(data.get("position")),
        )

    def to_dict(self) -> dict:
        out = {
            "key": self.key,
            "name": self.name,
            "age": self.age,
            "gender": self.gender,
            "deceased": self.deceased,
            "father": self.father,
            "mother": self.mother,
            "spouse": self.spouse,
            "relationStatus": self.relation_status,
            "attributes": list(self.attributes),
            "position": None,
            "isAdopted": self.is_adopted,
            "isFoster": self.is_foster,
            "birthStatus": self.birth_status,
            "twinGroup": self.twin_group,
            "isIdenticalTwin": self.is_identical_twin,
        }
        if self.position is not None:
            out["position"] = {"x": self.position[0], "y": self.position[1]}
        return out


def normalize_gender(value) -> str:
    s = str(value or "U").strip().upper()
    s = _GENDER_ALIASES.get(s, s)
    if s not in GENDER_KINDS:
        logger.debug("unknown gender %r, using U", value)
        return "U"
    return s


def clean_attributes(values: Iterable) -> List[str]:
    """Keep valid markers, first one per quadrant, in input order."""
    out: List[str] = []
    seen = set()
    for v in values:
        marker = str(v).strip().upper()
        quadrant = MARKER_QUADRANT.get(marker)
        if quadrant is None or quadrant in seen:
            continue
        seen.add(quadrant)
        out.append(marker)
    return out


def quadrant_colors(markers: Iterable[str]) -> Dict[str, str]:
    return {MARKER_QUADRANT[m]: ATTRIBUTE_COLORS[m] for m in markers if m in MARKER_QUADRANT}


def validate_attributes(values: Iterable) -> List[str]:
    markers = [str(v).strip().upper() for v in values]
    if len(markers) > MAX_ATTRIBUTES:
        raise AttributeMarkerError(f"At most {MAX_ATTRIBUTES} attribute markers allowed, got {len(markers)}")
    seen: Dict[str, str] = {}
    for marker in markers:
        quadrant = MARKER_QUADRANT.get(marker)
        if quadrant is None:
            raise AttributeMarkerError(f"Unknown attribute marker: {marker!r}")
        if quadrant in seen:
            raise AttributeMarkerError(
                f"Markers {seen[quadrant]!r} and {marker!r} share the {quadrant} quadrant"
            )
        seen[quadrant] = marker
    return markers


def load_document(data) -> Tuple[List[Person], int]:
    """Parse a persisted document (or a bare person list) into (persons, next_key)."""
    if isinstance(data, list):
        entries = data
        next_key = None
    elif isinstance(data, dict):
        if "familyData" not in data:
            raise DocumentError("Document has no familyData")
        entries = data["familyData"] or []
        if not isinstance(entries, list):
            raise DocumentError("familyData must be a list")
        version = str(data.get("version") or FORMAT_VERSION)
        if version != FORMAT_VERSION:
            logger.warning("document version %s, expected %s", version, FORMAT_VERSION)
        next_key = data.get("nextKey")
    else:
        raise DocumentError(f"Unsupported document type: {type(data).__name__}")

    persons = [Person.from_dict(entry) for entry in entries]
    seen = set()
    for p in persons:
        if p.key in seen:
            raise DocumentError(f"Duplicate person key: {p.key}")
        seen.add(p.key)
    highest = max((p.key for p in persons), default=0)
    try:
        next_key = int(next_key) if next_key is not None else highest + 1
    except (TypeError, ValueError):
        raise DocumentError(f"nextKey is not an integer: {next_key!r}") from None
    if next_key <= highest:
        logger.warning("nextKey %s is not above the highest key %s, bumping", next_key, highest)
        next_key = highest + 1
    return persons, next_key


def dump_document(persons: Iterable[Person], next_key: int) -> dict:
    return {
        "version": FORMAT_VERSION,
        "nextKey": next_key,
        "familyData": [p.to_dict() for p in persons],
    }


def _optional_key(value) -> Optional[int]:
    if value is None or value == "" or value is False:
        return None
    try:
        k = int(value)
    except (TypeError, ValueError):
        logger.debug("ignoring non-integer reference %r", value)
        return None
    return k if k > 0 else None


def _optional_age(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        age = int(value)
    except (TypeError, ValueError):
        return None
    return age if age >= 0 else None


def _optional_position(value) -> Optional[Tuple[float, float]]:
    if not value:
        return None
    try:
        if isinstance(value, dict):
            return (float(value["x"]), float(value["y"]))
        x, y = value
        return (float(x), float(y))
    except (KeyError, TypeError, ValueError):
        logger.debug("ignoring malformed position %r", value)
        return None
