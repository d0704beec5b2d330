import pandas as pd
import pytest

from Riffle.errors import InputIntegrityError
from Riffle.riffle import aggregate_sites, size_class


def _passes():
    return pd.DataFrame(
        [
            {"site_id": "S1", "length_between_nets": 100.0, "pass_number": 1, "catch_count": 4},
            {"site_id": "S1", "length_between_nets": 100.0, "pass_number": 2, "catch_count": 1},
            {"site_id": "S2", "length_between_nets": 80.0, "pass_number": 2, "catch_count": 0},
            {"site_id": "S2", "length_between_nets": 80.0, "pass_number": 1, "catch_count": 0},
            {"site_id": "S3", "length_between_nets": 120.0, "pass_number": 1, "catch_count": 2},
            {"site_id": "S3", "length_between_nets": 120.0, "pass_number": 2, "catch_count": 0},
            {"site_id": "S3", "length_between_nets": 120.0, "pass_number": 3, "catch_count": 0},
        ]
    )


def _fish():
    lengths = {
        ("S1", 1): [120.0, 149.9, 150.0, 210.0],
        ("S1", 2): [305.0],
        ("S3", 1): [200.0, 200.1],
    }
    return pd.DataFrame(
        [
            {"site_id": s, "pass_number": p, "fork_length_mm": fl}
            for (s, p), fls in lengths.items()
            for fl in fls
        ]
    )


def test_size_class_thresholds():
    classes = size_class([149.9, 150.0, 200.0, 200.1])
    assert list(classes) == ["juvenile", "enigmatic", "enigmatic", "adult"]


def test_tallies_partition_handled_fish():
    df = aggregate_sites(_passes(), _fish())
    assert (df["juvenile"] + df["enigmatic"] + df["adult"] == df["m"]).all()
    assert df.loc["S1", ["m", "juvenile", "enigmatic", "adult"]].tolist() == [5, 2, 1, 2]
    assert df.loc["S3", ["m", "juvenile", "enigmatic", "adult"]].tolist() == [2, 0, 1, 1]


def test_catches_ordered_by_pass_and_zero_sites_kept():
    df = aggregate_sites(_passes(), _fish())
    assert list(df.index) == ["S1", "S2", "S3"]
    assert df.loc["S1", "catches"] == (4, 1)
    assert df.loc["S2", "catches"] == (0, 0)
    assert df.loc["S2", "total_catch"] == 0
    assert df.loc["S2", "m"] == 0
    assert df.loc["S3", "catches"] == (2, 0, 0)
    assert df.loc["S3", "L2"] == 120.0


def test_site_table_fixes_order_and_wetness():
    sites = pd.DataFrame(
        [
            {"site_id": "S3", "length_between_nets": 120.0, "wet": "yes"},
            {"site_id": "S1", "length_between_nets": 100.0, "wet": "yes"},
            {"site_id": "S2", "length_between_nets": 80.0, "wet": "no"},
        ]
    )
    df = aggregate_sites(_passes(), _fish(), sites)
    assert list(df.index) == ["S3", "S1", "S2"]
    assert df["wet"].tolist() == [True, True, False]


def test_catches_tallied_from_fish_when_not_recorded():
    passes = _passes().drop(columns=["catch_count"])
    df = aggregate_sites(passes, _fish())
    assert df.loc["S1", "catches"] == (4, 1)
    # passes with no fish are filled with zero
    assert df.loc["S3", "catches"] == (2, 0, 0)
    assert df.loc["S2", "catches"] == (0, 0)


def test_no_fish_table_gives_zero_tallies():
    df = aggregate_sites(_passes(), None)
    assert df["m"].sum() == 0
    assert df.loc["S1", "total_catch"] == 5


def test_unknown_site_in_fish_table():
    fish = pd.concat(
        [_fish(), pd.DataFrame([{"site_id": "S9", "pass_number": 1, "fork_length_mm": 180.0}])]
    )
    with pytest.raises(InputIntegrityError, match="unknown sites"):
        aggregate_sites(_passes(), fish)


def test_duplicate_pass_numbers():
    passes = pd.concat([_passes(), _passes().iloc[[0]]])
    with pytest.raises(InputIntegrityError, match="duplicate pass"):
        aggregate_sites(passes, _fish())


def test_non_contiguous_pass_numbers():
    passes = _passes()
    passes = passes[~((passes["site_id"] == "S3") & (passes["pass_number"] == 2))]
    with pytest.raises(InputIntegrityError, match="not 1..k"):
        aggregate_sites(passes, _fish())


def test_negative_catch():
    passes = _passes()
    passes.loc[0, "catch_count"] = -1
    with pytest.raises(InputIntegrityError, match="negative catch"):
        aggregate_sites(passes, _fish())


def test_non_positive_length():
    passes = _passes()
    passes.loc[passes["site_id"] == "S2", "length_between_nets"] = 0.0
    with pytest.raises(InputIntegrityError, match="must be positive"):
        aggregate_sites(passes, _fish())


def test_conflicting_site_lengths():
    passes = _passes()
    passes.loc[1, "length_between_nets"] = 101.0
    with pytest.raises(InputIntegrityError, match="more than one length"):
        aggregate_sites(passes, _fish())


def test_fish_from_a_pass_that_was_not_fished():
    fish = pd.concat(
        [_fish(), pd.DataFrame([{"site_id": "S1", "pass_number": 3, "fork_length_mm": 180.0}])]
    )
    with pytest.raises(InputIntegrityError, match="not fished"):
        aggregate_sites(_passes(), fish)


def test_missing_columns():
    with pytest.raises(InputIntegrityError, match="pass_number"):
        aggregate_sites(_passes().drop(columns=["pass_number"]), _fish())


def test_wet_flags_accept_common_spellings():
    sites = pd.DataFrame(
        [
            {"site_id": "S1", "length_between_nets": 100.0, "wet": "Y"},
            {"site_id": "S2", "length_between_nets": 80.0, "wet": 0},
            {"site_id": "S3", "length_between_nets": 120.0, "wet": " TRUE "},
        ]
    )
    df = aggregate_sites(_passes(), _fish(), sites)
    assert df["wet"].tolist() == [True, False, True]


def test_unrecognised_wet_flag_names_the_site():
    # a blank cell must not read as dry
    for flag in [None, "", "W", "maybe", 2]:
        sites = pd.DataFrame(
            [
                {"site_id": "S1", "length_between_nets": 100.0, "wet": "yes"},
                {"site_id": "S2", "length_between_nets": 80.0, "wet": flag},
                {"site_id": "S3", "length_between_nets": 120.0, "wet": "yes"},
            ]
        )
        with pytest.raises(InputIntegrityError, match="site S2 has an unrecognised wet flag"):
            aggregate_sites(_passes(), _fish(), sites)


def test_unrecognised_wet_flag_in_pass_table():
    passes = _passes().assign(wet="yes")
    passes.loc[passes["site_id"] == "S3", "wet"] = "unknown"
    with pytest.raises(InputIntegrityError, match="site S3"):
        aggregate_sites(passes, _fish())
