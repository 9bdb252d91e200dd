import string

import pytest

from gtunnel.randstr import random_string


@pytest.mark.parametrize("n", [0, 1, 16, 1024])
def test_length(n):
    assert len(random_string(n)) == n


def test_alphabet():
    allowed = set(string.ascii_letters + string.digits)
    assert set(random_string(4096)) <= allowed


def test_empty():
    assert random_string(0) == ""


def test_negative_length():
    with pytest.raises(ValueError):
        random_string(-1)