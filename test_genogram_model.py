import pytest

from genogram_model import (
    AttributeMarkerError,
    DocumentError,
    Person,
    clean_attributes,
    dump_document,
    load_document,
    normalize_gender,
    quadrant_colors,
    validate_attributes,
)


def test_person_from_dict_reads_saved_fields():
    p = Person.from_dict({
        "key": 3,
        "name": "Minji",
        "age": 12,
        "gender": "F",
        "deceased": False,
        "father": 1,
        "mother": 2,
        "spouse": None,
        "relationStatus": "married",
        "attributes": ["A", "D"],
        "position": {"x": 10, "y": 150.5},
        "isAdopted": True,
        "birthStatus": "normal",
        "twinGroup": 2,
        "isIdenticalTwin": True,
    })
    assert p.key == 3
    assert (p.father, p.mother, p.spouse) == (1, 2, None)
    assert p.attributes == ["A", "D"]
    assert p.position == (10.0, 150.5)
    assert p.is_adopted is True and p.is_foster is False
    assert p.twin_group == 2 and p.is_identical_twin is True


def test_person_from_dict_is_tolerant():
    p = Person.from_dict({
        "key": "7",
        "gender": "alien",
        "age": "unknown",
        "father": 0,
        "mother": "",
        "birthStatus": "hatched",
        "relationStatus": "complicated",
        "attributes": ["A", "B", "Z"],
        "position": {"x": "left"},
    })
    assert p.key == 7
    assert p.gender == "U"
    assert p.age is None
    assert p.father is None and p.mother is None
    assert p.birth_status == "normal"
    assert p.relation_status == "married"
    assert p.attributes == ["A"]
    assert p.position is None


@pytest.mark.parametrize("entry", [{"name": "no key"}, {"key": "abc"}, {"key": -1}, "not a dict"])
def test_person_from_dict_rejects_bad_keys(entry):
    with pytest.raises(DocumentError):
        Person.from_dict(entry)


def test_to_dict_round_trips_position():
    p = Person(key=1, name="A", position=(12.25, -3.0))
    data = p.to_dict()
    assert data["position"] == {"x": 12.25, "y": -3.0}
    assert data["isIdenticalTwin"] is False
    assert Person.from_dict(data) == p


def test_gender_aliases():
    assert normalize_gender("male") == "M"
    assert normalize_gender("f") == "F"
    assert normalize_gender("Pet") == "P"
    assert normalize_gender(None) == "U"


def test_clean_attributes_keeps_one_marker_per_quadrant():
    assert clean_attributes(["b", "A", "G", "K", "E", "L"]) == ["B", "G", "K", "E"]


def test_validate_attributes():
    assert validate_attributes(["a", "d", "g", "j"]) == ["A", "D", "G", "J"]
    with pytest.raises(AttributeMarkerError):
        validate_attributes(["A", "B"])
    with pytest.raises(AttributeMarkerError):
        validate_attributes(["Q"])
    with pytest.raises(AttributeMarkerError):
        validate_attributes(["A", "D", "G", "J", "K"])


def test_load_document():
    persons, next_key = load_document({
        "version": "1.0",
        "nextKey": 10,
        "familyData": [{"key": 1, "name": "A"}, {"key": 2, "name": "B", "father": 1}],
    })
    assert [p.key for p in persons] == [1, 2]
    assert next_key == 10


def test_load_document_bumps_stale_next_key():
    _, next_key = load_document({"nextKey": 2, "familyData": [{"key": 5}]})
    assert next_key == 6


def test_load_bare_list():
    persons, next_key = load_document([{"key": 4}])
    assert persons[0].key == 4
    assert next_key == 5


@pytest.mark.parametrize("data", [{"version": "1.0"}, {"familyData": "x"}, "text", {"familyData": [], "nextKey": "x"}])
def test_load_document_rejects_bad_shapes(data):
    with pytest.raises(DocumentError):
        load_document(data)


def test_dump_document():
    doc = dump_document([Person(key=1)], 2)
    assert doc["version"] == "1.0"
    assert doc["nextKey"] == 2
    assert doc["familyData"][0]["key"] == 1


def test_load_document_rejects_duplicate_keys():
    with pytest.raises(DocumentError):
        load_document({"nextKey": 3, "familyData": [{"key": 1}, {"key": 2}, {"key": 1}]})


def test_quadrant_colors():
    assert quadrant_colors(["A", "L"]) == {"topLeft": "#00af54", "bottomLeft": "#af70c2"}
