"""
genogram_layout_lib.py (v0.3)

Deterministic layout: Person collection -> positioned nodes + connectors.

Version History:
- v0.3: Manual position overrides
  - A person with `position` keeps it verbatim; the subtree below follows
    the parent's actual coordinates instead of the computed ones.
  - Child connectors pick their source from the child's own recorded
    parents (marriage anchor only for a resolved couple).
- v0.2: Twins
  - Children sharing a twinGroup are laid out as one group with a fan-out
    hub (twin anchor) at 53% between the parent source and the first twin.
  - Identical twins get direct sibling links between neighbours.
  - Sibling groups ordered oldest first.
- v0.1: Basic implementation (forest of couple nodes, bottom-up widths,
  top-down placement, marriage anchors).

Design goals:
- Pure function of the Person collection. No randomness, no I/O.
- Never raise on a syntactically valid collection: dangling references
  are treated as absent, a parent cycle falls back to the smallest key as
  root and cannot loop forever.

Coordinates follow the drawing surface: a person node's (x, y) is the
top-left corner of a `node_width` wide box whose symbol (`symbol_size`
square) sits horizontally centered at the top. Attachment points are on
the symbol: top/bottom centers, left/right at mid-height.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from genogram_model import CHILD_STROKES, GENDER_KINDS, Person, quadrant_colors

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

MARRIAGE_ANCHOR = "marriageAnchor"
TWIN_ANCHOR = "twinAnchor"


class LayoutSettingsError(ValueError):
    pass


@dataclass
class TreeNode:
    person: Person
    spouse: Optional[Person] = None
    children: List["TreeNode"] = field(default_factory=list)
    width: float = 0.0
    center_x: float = 0.0  # offset of the couple center from the subtree's left edge


@dataclass
class PositionedNode:
    id: str
    kind: str
    x: float
    y: float
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "kind": self.kind, "x": self.x, "y": self.y, "data": dict(self.data)}


@dataclass
class Connector:
    id: str
    source: str
    target: str
    kind: str  # "marriage" | "child" | "twin" | "siblingLink"
    style: dict = field(default_factory=dict)
    path: List[List[Point]] = field(default_factory=list)  # one polyline per drawn stroke

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sourceId": self.source,
            "targetId": self.target,
            "kind": self.kind,
            "styleFlags": dict(self.style),
            "path": [[list(pt) for pt in line] for line in self.path],
        }


@dataclass
class LayoutResult:
    nodes: List[PositionedNode] = field(default_factory=list)
    connectors: List[Connector] = field(default_factory=list)
    generations: Dict[int, int] = field(default_factory=dict)

    def node(self, node_id) -> Optional[PositionedNode]:
        node_id = str(node_id)
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def connector(self, connector_id: str) -> Optional[Connector]:
        for c in self.connectors:
            if c.id == connector_id:
                return c
        return None

    def person_positions(self) -> Dict[int, Point]:
        return {
            int(n.id): (n.x, n.y)
            for n in self.nodes
            if n.kind not in (MARRIAGE_ANCHOR, TWIN_ANCHOR)
        }

    def to_dict(self) -> dict:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "connectors": [c.to_dict() for c in self.connectors],
        }


def node_kind(person: Person) -> str:
    if person.birth_status and person.birth_status != "normal":
        return "pregnancy"
    return GENDER_KINDS.get(person.gender, "unknown")


class GenogramLayout:
    def __init__(self, settings: Optional[dict] = None):
        # Layout config (surface px units)
        self.node_width = 80.0
        self.symbol_size = 40.0
        self.horizontal_spacing = 30.0  # between sibling subtrees
        self.spouse_spacing = 50.0
        self.vertical_spacing = 150.0  # floor-to-floor between generations
        self.tree_spacing = 100.0  # between independent family trees
        # Child step: horizontal leg at 67% of the drop (closer to the child).
        self.child_split_ratio = 0.67
        # Twin hub: 53% of the way from the parent source to the first twin.
        self.twin_hub_ratio = 0.53
        if settings:
            self.configure(settings)

    def configure(self, settings: dict) -> None:
        """Apply all settings or none of them."""
        merged = self.settings()
        for name, value in settings.items():
            if name.startswith("_") or not isinstance(getattr(self, name, None), float):
                raise LayoutSettingsError(f"Unknown layout setting: {name}")
            try:
                v = float(value)
            except (TypeError, ValueError):
                raise LayoutSettingsError(f"Layout setting {name} must be a number, got {value!r}") from None
            if v < 0:
                raise LayoutSettingsError(f"Layout setting {name} must not be negative")
            if name.endswith("_ratio") and v > 1:
                raise LayoutSettingsError(f"Layout setting {name} must be between 0 and 1")
            merged[name] = v
        if merged["symbol_size"] > merged["node_width"]:
            raise LayoutSettingsError("symbol_size must not exceed node_width")
        for name, v in merged.items():
            setattr(self, name, v)

    def settings(self) -> dict:
        return {k: v for k, v in vars(self).items() if isinstance(v, float)}

    def compute(self, persons: Iterable[Person]) -> LayoutResult:
        return _LayoutPass(self, persons).run()

    def couple_width(self, paired: bool) -> float:
        if paired:
            return self.node_width + self.spouse_spacing + self.node_width
        return self.node_width

    # ---------- Attachment points ----------
    def top_point(self, pos: Point) -> Point:
        return (pos[0] + self.node_width / 2, pos[1])

    def bottom_point(self, pos: Point) -> Point:
        return (pos[0] + self.node_width / 2, pos[1] + self.symbol_size)

    def left_point(self, pos: Point) -> Point:
        return (pos[0] + (self.node_width - self.symbol_size) / 2, pos[1] + self.symbol_size / 2)

    def right_point(self, pos: Point) -> Point:
        return (pos[0] + (self.node_width + self.symbol_size) / 2, pos[1] + self.symbol_size / 2)


def compute_layout(persons: Iterable[Person], settings: Optional[dict] = None) -> LayoutResult:
    return GenogramLayout(settings).compute(persons)


class _LayoutPass:
    """Transient state of one layout run."""

    def __init__(self, layout: GenogramLayout, persons: Iterable[Person]):
        self.cfg = layout
        self.people: Dict[int, Person] = {}
        self.order: List[int] = []
        for p in persons:
            if p.key in self.people:
                logger.warning("duplicate person key %s ignored", p.key)
                continue
            self.people[p.key] = p
            self.order.append(p.key)
        self._index = {k: i for i, k in enumerate(self.order)}

        self.children_of: Dict[int, List[int]] = {k: [] for k in self.order}
        for k in self.order:
            for parent in self._parent_keys(self.people[k]):
                self.children_of[parent].append(k)

        self.forest: List[TreeNode] = []
        self.partner: Dict[int, int] = {}  # resolved couples, both directions
        self.generation: Dict[int, int] = {}

        self.positions: Dict[int, Point] = {}
        self.nodes: List[PositionedNode] = []
        self.anchor_ids: Dict[frozenset, str] = {}
        self.anchor_points: Dict[str, Point] = {}
        # Placement records consumed by the connector pass, in placement order.
        self._couples: List[Tuple[Person, Person]] = []
        self._links: List[Tuple[str, object]] = []

    def run(self) -> LayoutResult:
        if not self.people:
            return LayoutResult()
        self._build_forest()
        self._assign_generations()
        for tree in self.forest:
            self._measure(tree)
        self._place_forest()
        twin_nodes = self._place_twin_anchors()
        connectors = self._connect()
        return LayoutResult(
            nodes=self.nodes + twin_nodes,
            connectors=connectors,
            generations={k: self.generation.get(k, 0) for k in self.order},
        )

    # ---------- Lookups ----------
    def _ref(self, person: Person, key: Optional[int]) -> Optional[int]:
        if key is None or key == person.key:
            return None
        if key not in self.people:
            logger.debug("person %s: reference to missing key %s treated as absent", person.key, key)
            return None
        return key

    def _parent_keys(self, person: Person) -> List[int]:
        out: List[int] = []
        for key in (person.father, person.mother):
            k = self._ref(person, key)
            if k is not None and k not in out:
                out.append(k)
        return out

    # ---------- Generation / tree resolver ----------
    def _build_forest(self) -> None:
        visited: set = set()

        roots = [k for k in self.order if not self._parent_keys(self.people[k])]
        if not roots:
            roots = [min(self.order)]
            logger.warning("no parentless person found, using key %s as root", roots[0])

        def build(key: int) -> Optional[TreeNode]:
            if key in visited:
                return None
            visited.add(key)
            person = self.people[key]
            node = TreeNode(person=person)

            spouse_key = self._ref(person, person.spouse)
            if spouse_key is not None and spouse_key not in visited:
                node.spouse = self.people[spouse_key]
                visited.add(spouse_key)
                self.partner[key] = spouse_key
                self.partner[spouse_key] = key

            child_keys = set(self.children_of[key])
            if node.spouse is not None:
                child_keys.update(self.children_of[node.spouse.key])
            for ck in sorted(child_keys, key=self._index.__getitem__):
                child = build(ck)
                if child is not None:
                    node.children.append(child)
            return node

        for key in roots:
            tree = build(key)
            if tree is not None:
                self.forest.append(tree)
        # Disconnected sub-families (only reachable through a cycle).
        for key in self.order:
            if key not in visited:
                self.forest.append(build(key))

    def _assign_generations(self) -> None:
        # A generation can never exceed n-1 in acyclic data; the cap stops cycles.
        limit = len(self.people) - 1
        gen = self.generation
        for tree in self.forest:
            stack = [(tree.person.key, 0)]
            while stack:
                key, depth = stack.pop()
                if depth > limit or gen.get(key, -1) >= depth:
                    continue
                gen[key] = depth
                partner = self.partner.get(key)
                if partner is not None:
                    stack.append((partner, depth))
                for child in reversed(self.children_of[key]):
                    stack.append((child, depth + 1))

    # ---------- Subtree sizer ----------
    def _measure(self, node: TreeNode) -> None:
        for child in node.children:
            self._measure(child)
        parents_width = self.cfg.couple_width(node.spouse is not None)
        children_width = self._children_width(node)
        node.width = max(parents_width, children_width)
        node.center_x = max(parents_width, children_width) / 2

    def _children_width(self, node: TreeNode) -> float:
        if not node.children:
            return 0.0
        return sum(c.width for c in node.children) + self.cfg.horizontal_spacing * (len(node.children) - 1)

    # ---------- Position assigner ----------
    def _place_forest(self) -> None:
        current_x = 0.0
        for tree in self.forest:
            self._place(tree, current_x, 0.0)
            current_x += tree.width + self.cfg.tree_spacing

    def _place(self, node: TreeNode, x: float, y_shift: float) -> None:
        cfg = self.cfg
        person = node.person
        row_y = self.generation.get(person.key, 0) * cfg.vertical_spacing + y_shift
        left = x + node.center_x - cfg.couple_width(node.spouse is not None) / 2

        computed = (left, row_y)
        actual = self._put(person, computed)
        if node.spouse is None:
            shift_x = actual[0] - computed[0]
            shift_y = actual[1] - computed[1]
        else:
            spouse_computed = (left + cfg.node_width + cfg.spouse_spacing, row_y)
            spouse_actual = self._put(node.spouse, spouse_computed)
            anchor = self._add_marriage_anchor(person, node.spouse)
            computed_mid = self._midpoint(computed, spouse_computed)
            shift_x = anchor[0] - computed_mid[0]
            shift_y = (actual[1] + spouse_actual[1]) / 2 - row_y

        if not node.children:
            return
        cursor = x + node.width / 2 - self._children_width(node) / 2 + shift_x
        for group in self._child_groups(node.children):
            for child in group:
                self._place(child, cursor, y_shift + shift_y)
                cursor += child.width + cfg.horizontal_spacing
            if len(group) > 1:
                self._links.append(("twins", [c.person.key for c in group]))
            else:
                self._links.append(("child", group[0].person.key))

    def _put(self, person: Person, computed: Point) -> Point:
        pos = tuple(person.position) if person.position is not None else computed
        self.positions[person.key] = pos
        self.nodes.append(
            PositionedNode(
                id=str(person.key),
                kind=node_kind(person),
                x=pos[0],
                y=pos[1],
                data=self._display_data(person),
            )
        )
        return pos

    def _display_data(self, person: Person) -> dict:
        return {
            "name": person.name,
            "gender": person.gender,
            "age": person.age,
            "deceased": person.deceased,
            "isAdopted": person.is_adopted,
            "isFoster": person.is_foster,
            "birthStatus": person.birth_status,
            "attributes": list(person.attributes),
            "attributeColors": quadrant_colors(person.attributes),
            "generation": self.generation.get(person.key, 0),
            "manual": person.position is not None,
        }

    def _midpoint(self, left_pos: Point, right_pos: Point) -> Point:
        a = self.cfg.right_point(left_pos)
        b = self.cfg.left_point(right_pos)
        return ((a[0] + b[0]) / 2, (a[1] + b[1]) / 2)

    def _add_marriage_anchor(self, primary: Person, spouse: Person) -> Point:
        point = self._midpoint(self.positions[primary.key], self.positions[spouse.key])
        anchor_id = f"marriage-node-{primary.key}-{spouse.key}"
        self.anchor_ids[frozenset((primary.key, spouse.key))] = anchor_id
        self.anchor_points[anchor_id] = point
        self.nodes.append(
            PositionedNode(
                id=anchor_id,
                kind=MARRIAGE_ANCHOR,
                x=point[0],
                y=point[1],
                data={"partners": [primary.key, spouse.key]},
            )
        )
        self._couples.append((primary, spouse))
        return point

    def _child_groups(self, children: List[TreeNode]) -> List[List[TreeNode]]:
        groups: List[List[TreeNode]] = []
        by_twin: Dict[int, List[TreeNode]] = {}
        for child in children:
            tg = child.person.twin_group
            if tg is None:
                groups.append([child])
            elif tg in by_twin:
                by_twin[tg].append(child)
            else:
                by_twin[tg] = [child]
                groups.append(by_twin[tg])
        # Oldest first; sort is stable so ties keep first-appearance order.
        groups.sort(key=lambda g: -self._group_age(g))
        return groups

    def _group_age(self, group: List[TreeNode]) -> int:
        ages = {c.person.age for c in group}
        if len(ages) != 1:
            return 0
        age = ages.pop()
        return age if age is not None else 0

    def _place_twin_anchors(self) -> List[PositionedNode]:
        out: List[PositionedNode] = []
        for kind, payload in self._links:
            if kind != "twins":
                continue
            first = payload[0]
            source_id = self._child_source(self.people[first])
            if source_id is None:
                continue
            src = self._source_point(source_id)
            top = self.cfg.top_point(self.positions[first])
            hub = (src[0], src[1] + (top[1] - src[1]) * self.cfg.twin_hub_ratio)
            anchor_id = f"twin-node-{first}"
            self.anchor_points[anchor_id] = hub
            out.append(
                PositionedNode(id=anchor_id, kind=TWIN_ANCHOR, x=hub[0], y=hub[1], data={"twins": list(payload)})
            )
        return out

    # ---------- Connector synthesizer ----------
    def _child_source(self, child: Person) -> Optional[str]:
        father = self._ref(child, child.father)
        mother = self._ref(child, child.mother)
        if father is not None and mother is not None and self.partner.get(father) == mother:
            return self.anchor_ids[frozenset((father, mother))]
        # Unpaired or single parent: father takes precedence.
        lone = father if father is not None else mother
        return str(lone) if lone is not None else None

    def _source_point(self, source_id: str) -> Point:
        if source_id in self.anchor_points:
            return self.anchor_points[source_id]
        return self.cfg.bottom_point(self.positions[int(source_id)])

    def _connect(self) -> List[Connector]:
        connectors: List[Connector] = []
        for primary, spouse in self._couples:
            connectors.append(self._marriage_connector(primary, spouse))

        linked: set = set()
        for kind, payload in self._links:
            if kind == "child":
                linked.add(payload)
                c = self._child_connector(self.people[payload])
                if c is not None:
                    connectors.append(c)
            else:
                linked.update(payload)
                connectors.extend(self._twin_connectors(payload))

        # Persons bound as someone's spouse before their own parents were reached.
        for node in self.nodes:
            if node.kind in (MARRIAGE_ANCHOR, TWIN_ANCHOR):
                continue
            key = int(node.id)
            if key in linked:
                continue
            c = self._child_connector(self.people[key])
            if c is not None:
                connectors.append(c)
        return connectors

    def _marriage_connector(self, primary: Person, spouse: Person) -> Connector:
        divorced = "divorced" in (primary.relation_status, spouse.relation_status)
        return Connector(
            id=f"marriage-{primary.key}-{spouse.key}",
            source=str(primary.key),
            target=str(spouse.key),
            kind="marriage",
            style={
                "relationStatus": "divorced" if divorced else "married",
                "dashed": divorced,
                "anchorId": self.anchor_ids[frozenset((primary.key, spouse.key))],
            },
            path=[[self.cfg.right_point(self.positions[primary.key]), self.cfg.left_point(self.positions[spouse.key])]],
        )

    def _child_connector(self, child: Person) -> Optional[Connector]:
        source_id = self._child_source(child)
        if source_id is None:
            return None
        sx, sy = self._source_point(source_id)
        tx, ty = self.cfg.top_point(self.positions[child.key])
        split_y = sy + abs(ty - sy) * self.cfg.child_split_ratio
        if child.is_adopted:
            dash = "adopted"
        elif child.is_foster:
            dash = "foster"
        else:
            dash = None
        return Connector(
            id=f"child-{source_id}-{child.key}",
            source=source_id,
            target=str(child.key),
            kind="child",
            style={
                "isAdopted": child.is_adopted,
                "isFoster": child.is_foster,
                "dash": dash,
                "stroke": CHILD_STROKES[dash],
                "splitRatio": self.cfg.child_split_ratio,
            },
            path=[[(sx, sy), (sx, split_y), (tx, split_y), (tx, ty)]],
        )

    def _twin_connectors(self, twin_keys: List[int]) -> List[Connector]:
        first = self.people[twin_keys[0]]
        source_id = self._child_source(first)
        if source_id is None:
            return []
        hub_id = f"twin-node-{first.key}"
        src = self._source_point(source_id)
        hub = self.anchor_points[hub_id]
        identical = first.is_identical_twin
        path = [[src, hub]]
        for key in twin_keys:
            path.append([hub, self.cfg.top_point(self.positions[key])])
        out = [
            Connector(
                id=f"twin-group-{first.key}",
                source=source_id,
                target=str(first.key),
                kind="twin",
                style={
                    "twinIds": [str(k) for k in twin_keys],
                    "isIdentical": identical,
                    "hubId": hub_id,
                },
                path=path,
            )
        ]
        if identical:
            for a, b in zip(twin_keys, twin_keys[1:]):
                out.append(
                    Connector(
                        id=f"identical-link-{a}-{b}",
                        source=str(a),
                        target=str(b),
                        kind="siblingLink",
                        style={},
                        path=[[self.cfg.right_point(self.positions[a]), self.cfg.left_point(self.positions[b])]],
                    )
                )
        return out
