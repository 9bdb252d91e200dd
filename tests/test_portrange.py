import pytest

from gtunnel.portrange import PortRange, parse_port_range, port_range


@pytest.mark.parametrize(
    "text, expected",
    [
        ("22-80", PortRange(22, 80)),
        ("80", PortRange(80, 80)),
        ("0", PortRange(1, 65535)),
    ],
)
def test_parse_port_range(text, expected):
    assert parse_port_range(text) == expected


def test_zero_minimum_becomes_one():
    assert port_range(0, 10) == PortRange(1, 10)


def test_zero_range_is_rejected():
    with pytest.raises(ValueError):
        parse_port_range("0-0")


def test_minimum_greater_than_maximum():
    with pytest.raises(ValueError):
        parse_port_range("80-22")


@pytest.mark.parametrize("text", ["abc", "70000", "+5", " 5", "1-", "-5", "1-2-3", ""])
def test_invalid_text(text):
    with pytest.raises(ValueError):
        parse_port_range(text)


def test_out_of_range_numbers():
    with pytest.raises(ValueError):
        port_range(1, 70000)


def test_str_format():
    assert str(parse_port_range("22-80")) == "{Min: 22, Max: 80}"


def test_contains():
    pr = parse_port_range("22-80")
    assert 22 in pr
    assert 80 in pr
    assert 81 not in pr
    assert 21 not in pr