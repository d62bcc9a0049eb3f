import pytest

from genogram_model import Person


@pytest.fixture
def couple():
    return [
        Person(key=1, name="Father", gender="M", spouse=2),
        Person(key=2, name="Mother", gender="F", spouse=1),
    ]


@pytest.fixture
def couple_with_child(couple):
    return couple + [Person(key=3, name="Child", gender="F", father=1, mother=2)]


@pytest.fixture
def identical_triplets(couple):
    return couple + [
        Person(key=k, name=f"Triplet {k}", gender="M", father=1, mother=2, age=7,
               twin_group=1, is_identical_twin=True)
        for k in (3, 4, 5)
    ]


@pytest.fixture
def three_generations():
    """Grandparents with two children; the son married in and has children of his own."""
    return [
        Person(key=1, name="Grandfather", gender="M", spouse=2, age=80),
        Person(key=2, name="Grandmother", gender="F", spouse=1, age=78),
        Person(key=3, name="Son", gender="M", father=1, mother=2, spouse=4, age=50),
        Person(key=4, name="Daughter-in-law", gender="F", spouse=3, age=48),
        Person(key=5, name="Daughter", gender="F", father=1, mother=2, age=45),
        Person(key=6, name="Grandson", gender="M", father=3, mother=4, age=20),
        Person(key=7, name="Granddaughter", gender="F", father=3, mother=4, age=22,
               attributes=["A", "G"]),
        Person(key=8, name="Twin A", gender="F", father=3, mother=4, age=12, twin_group=9),
        Person(key=9, name="Twin B", gender="M", father=3, mother=4, age=12, twin_group=9),
        Person(key=10, name="Dog", gender="P", father=5),
        Person(key=11, name="Unrelated", gender="U"),
    ]
