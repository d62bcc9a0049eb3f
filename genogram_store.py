"""
genogram_store.py

Family store: the mutation boundary in front of the layout engine.

Every mutation validates first, then pushes an immutable snapshot of the
previous state onto the undo history and installs a new tuple of Person
records. Persons are never modified in place (dataclasses.replace), so a
snapshot handed to compute_layout() stays valid after later edits.

Rules kept here (the layout engine only tolerates their violation):
- nobody is their own father, mother or spouse;
- no descendant may become a parent (checked with one visited-set walk);
- father/mother/spouse must reference an existing key;
- spouse links are symmetric and relationStatus is shared by the couple;
- deleting a person clears every reference to them.
"""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Dict, Iterable, List, Optional, Tuple

from genogram_layout_lib import GenogramLayout, LayoutResult
from genogram_model import (
    BIRTH_STATUSES,
    RELATION_STATUSES,
    GenogramError,
    Person,
    RelationError,
    UnknownPersonError,
    dump_document,
    load_document,
    normalize_gender,
    validate_attributes,
)

logger = logging.getLogger(__name__)

Snapshot = Tuple[Tuple[Person, ...], int]

_EDITABLE = {f.name for f in fields(Person)} - {"key"}


class GenogramStore:
    def __init__(self, persons: Iterable[Person] = (), next_key: Optional[int] = None,
                 history_limit: int = 100, layout: Optional[GenogramLayout] = None):
        self.persons: Tuple[Person, ...] = tuple(persons)
        highest = max((p.key for p in self.persons), default=0)
        self.next_key = next_key if next_key is not None else highest + 1
        self.history_limit = history_limit
        self.layout_engine = layout or GenogramLayout()
        self._past: List[Snapshot] = []
        self._future: List[Snapshot] = []

    # ---------- Queries ----------
    def get(self, key: int) -> Person:
        for p in self.persons:
            if p.key == key:
                return p
        raise UnknownPersonError(f"No person with key {key}")

    def __contains__(self, key) -> bool:
        return any(p.key == key for p in self.persons)

    def __len__(self) -> int:
        return len(self.persons)

    def layout(self) -> LayoutResult:
        return self.layout_engine.compute(self.persons)

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def descendants(self, key: int) -> set:
        children: Dict[int, List[int]] = {}
        for p in self.persons:
            for parent in {p.father, p.mother}:
                if parent is not None:
                    children.setdefault(parent, []).append(p.key)
        seen: set = set()
        stack = list(children.get(key, []))
        while stack:
            k = stack.pop()
            if k in seen:
                continue
            seen.add(k)
            stack.extend(children.get(k, []))
        return seen

    # ---------- Mutations ----------
    def add_person(self, **attrs) -> int:
        key = self.next_key
        attrs = self._clean(attrs)
        person = Person(key=key, **attrs)
        self._check_relations(person, attrs)

        persons = list(self.persons)
        if person.spouse is not None:
            persons = self._link_spouse(persons, key, person.spouse, person.relation_status)
        persons.append(person)
        self._commit(persons, key + 1)
        logger.debug("added person %s", key)
        return key

    def update_person(self, key: int, **updates) -> Person:
        current = self.get(key)
        updates = self._clean(updates)
        updated = replace(current, **updates)
        self._check_relations(updated, updates)

        persons = [updated if p.key == key else p for p in self.persons]
        old_spouse = current.spouse
        new_spouse = updated.spouse
        if old_spouse is not None and old_spouse != new_spouse:
            persons = self._release_spouse(persons, old_spouse, key)
        if new_spouse is not None:
            persons = self._link_spouse(persons, key, new_spouse, updated.relation_status)
        self._commit(persons, self.next_key)
        return self.get(key)

    def delete_person(self, key: int) -> None:
        self.get(key)
        persons = []
        for p in self.persons:
            if p.key == key:
                continue
            changes = {}
            if p.father == key:
                changes["father"] = None
            if p.mother == key:
                changes["mother"] = None
            if p.spouse == key:
                changes["spouse"] = None
                changes["relation_status"] = "married"
            persons.append(replace(p, **changes) if changes else p)
        self._commit(persons, self.next_key)
        logger.debug("deleted person %s", key)

    def set_position(self, key: int, x: float, y: float) -> None:
        self.update_person(key, position=(float(x), float(y)))

    def clear_all_positions(self) -> None:
        self._commit([replace(p, position=None) for p in self.persons], self.next_key)

    def pin_layout(self, result: Optional[LayoutResult] = None) -> None:
        """Store the computed coordinates as every person's manual position."""
        positions = (result or self.layout()).person_positions()
        self._commit(
            [replace(p, position=positions.get(p.key, p.position)) for p in self.persons],
            self.next_key,
        )

    def reset(self) -> None:
        self._commit([], 1)

    def import_data(self, data) -> None:
        persons, next_key = load_document(data)
        self._commit(persons, next_key)

    def export_data(self) -> dict:
        return dump_document(self.persons, self.next_key)

    def undo(self) -> bool:
        if not self._past:
            return False
        self._future.insert(0, (self.persons, self.next_key))
        self.persons, self.next_key = self._past.pop()
        return True

    def redo(self) -> bool:
        if not self._future:
            return False
        self._past.append((self.persons, self.next_key))
        self.persons, self.next_key = self._future.pop(0)
        return True

    # ---------- Internals ----------
    def _commit(self, persons: Iterable[Person], next_key: int) -> None:
        self._past.append((self.persons, self.next_key))
        if len(self._past) > self.history_limit:
            del self._past[: len(self._past) - self.history_limit]
        self._future.clear()
        self.persons = tuple(persons)
        self.next_key = next_key

    def _clean(self, attrs: dict) -> dict:
        unknown = set(attrs) - _EDITABLE
        if unknown:
            raise GenogramError(f"Unknown person field(s): {', '.join(sorted(unknown))}")
        out = dict(attrs)
        if "gender" in out:
            out["gender"] = normalize_gender(out["gender"])
        if "attributes" in out:
            out["attributes"] = validate_attributes(out["attributes"] or [])
        if out.get("birth_status") is not None and out["birth_status"] not in BIRTH_STATUSES:
            raise GenogramError(f"Unknown birth status: {out['birth_status']!r}")
        if out.get("relation_status") is not None and out["relation_status"] not in RELATION_STATUSES:
            raise GenogramError(f"Unknown relation status: {out['relation_status']!r}")
        if out.get("age") is not None and out["age"] < 0:
            raise GenogramError("Age must not be negative")
        if out.get("position") is not None:
            x, y = out["position"]
            out["position"] = (float(x), float(y))
        return out

    def _check_relations(self, person: Person, changed: dict) -> None:
        key = person.key
        for field_name in ("father", "mother", "spouse"):
            if field_name not in changed:
                continue
            ref = getattr(person, field_name)
            if ref is None:
                continue
            if ref == key:
                self._reject(f"Person {key} cannot be their own {field_name}")
            if ref not in self:
                self._reject(f"{field_name} of person {key} references unknown key {ref}")

        new_parents = [getattr(person, f) for f in ("father", "mother") if f in changed]
        new_parents = [p for p in new_parents if p is not None]
        if new_parents and key in self:
            below = self.descendants(key)
            for parent in new_parents:
                if parent in below:
                    self._reject(f"Person {parent} is a descendant of {key} and cannot be their parent")

    def _reject(self, message: str) -> None:
        logger.warning("rejected mutation: %s", message)
        raise RelationError(message)

    def _link_spouse(self, persons: List[Person], key: int, spouse_key: int, status: str) -> List[Person]:
        spouse = next(p for p in persons if p.key == spouse_key)
        if spouse.spouse is not None and spouse.spouse != key:
            persons = self._release_spouse(persons, spouse.spouse, spouse_key)
        return [
            replace(p, spouse=key, relation_status=status) if p.key == spouse_key else p
            for p in persons
        ]

    def _release_spouse(self, persons: List[Person], partner_key: int, key: int) -> List[Person]:
        return [
            replace(p, spouse=None, relation_status="married")
            if p.key == partner_key and p.spouse == key else p
            for p in persons
        ]
