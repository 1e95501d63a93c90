"""
Shared test fixtures
====================
"""
import pytest

from tests.fakes import FakeRecognitionGateway, make_image


@pytest.fixture
def images():
    """Images A, B, C: A and B show the same person, C someone else."""
    return [make_image("a"), make_image("b"), make_image("c")]


@pytest.fixture
def people(images):
    a, b, c = images
    return {a.key: ["alice"], b.key: ["alice"], c.key: ["carol"]}


@pytest.fixture
def gateway(people, images):
    a, b, c = images
    # A resolves before B so B can adopt A's group
    return FakeRecognitionGateway(people, delays={b.key: 0.01})
