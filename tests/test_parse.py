import pytest

from tripshare.db.models import SplitTarget, SplitType
from tripshare.utils.parse import (
    format_amount,
    parse_amount,
    parse_group_name,
    parse_payer,
    parse_split,
    parse_title,
    split_args,
)


def test_parse_amount():
    assert parse_amount("300") == 30000
    assert parse_amount("300.5") == 30050
    assert parse_amount(" 12,34 ") == 1234
    assert parse_amount("0.01") == 1


@pytest.mark.parametrize("text", ["", "abc", "1.234", "-5", "0", "0.00", "1e3", "1,000.00"])
def test_parse_amount_rejects(text):
    with pytest.raises(ValueError):
        parse_amount(text)


def test_format_amount():
    assert format_amount(30000) == "300.00"
    assert format_amount(5) == "0.05"
    assert format_amount(-150) == "-1.50"


def test_split_args():
    assert split_args("/addexpense 1 | Dinner | 300 | all", "addexpense") == ["1", "Dinner", "300", "all"]
    assert split_args("/pay@tripsharebot 2 | @bob | 10", "pay") == ["2", "@bob", "10"]
    assert split_args("/pay", "pay") == []
    with pytest.raises(ValueError):
        split_args("/other 1", "pay")


def test_parse_split_modes():
    assert parse_split("all").target == SplitTarget.ALL
    assert parse_split("").target == SplitTarget.ALL

    group = parse_split("group 7")
    assert (group.target, group.group_id) == (SplitTarget.GROUP, 7)

    custom = parse_split("custom @alice @bob")
    assert custom.target == SplitTarget.CUSTOM
    assert custom.split_type == SplitType.EQUAL
    assert custom.members == {"alice": None, "bob": None}

    exact = parse_split("exact @alice=120.00 @bob=80")
    assert exact.split_type == SplitType.EXACT
    assert exact.members == {"alice": 12000, "bob": 8000}


@pytest.mark.parametrize("text", ["group", "group x", "custom", "exact @a", "exact", "everyone", "all 3"])
def test_parse_split_rejects(text):
    with pytest.raises(ValueError):
        parse_split(text)


def test_parse_title():
    assert parse_title("  Dinner ") == "Dinner"
    with pytest.raises(ValueError):
        parse_title("   ")
    with pytest.raises(ValueError):
        parse_title("x" * 101)


def test_group_names_are_shorter_than_titles():
    assert parse_group_name(" Divers ") == "Divers"
    assert parse_group_name("g" * 50) == "g" * 50
    with pytest.raises(ValueError, match="at most 50"):
        parse_group_name("g" * 51)
    with pytest.raises(ValueError):
        parse_group_name("  ")


def test_parse_payer():
    assert parse_payer("paid by @alice") == "alice"
    assert parse_payer("Paid  By bob") == "bob"
    assert parse_payer("all") is None
    assert parse_payer("custom @a @b") is None
    with pytest.raises(ValueError):
        parse_payer("paid by @")
