import pandas as pd
import pytest

from Riffle.errors import InputIntegrityError
from Riffle.riffle import csv_import, read_csv_if_exists, survey, worksheet_import


def _tables():
    frame = pd.DataFrame([{"total_frame_length": 141000.0, "N": 691}])
    passes = pd.DataFrame(
        [
            {"site_id": "S1", "length_between_nets": 100.0, "pass_number": 1, "catch_count": 10},
            {"site_id": "S1", "length_between_nets": 100.0, "pass_number": 2, "catch_count": 2},
            {"site_id": "S2", "length_between_nets": 120.0, "pass_number": 1, "catch_count": 6},
            {"site_id": "S2", "length_between_nets": 120.0, "pass_number": 2, "catch_count": 4},
        ]
    )
    fish = pd.DataFrame(
        [
            {"site_id": "S1", "pass_number": 1, "fork_length_mm": 210.0},
            {"site_id": "S2", "pass_number": 2, "fork_length_mm": 120.0},
        ]
    )
    return frame, passes, fish


def test_read_csv_if_exists_missing(tmp_path):
    assert read_csv_if_exists(None) is None
    assert read_csv_if_exists("") is None
    assert read_csv_if_exists(str(tmp_path / "nope.csv")) is None
    with pytest.raises(TypeError):
        read_csv_if_exists(42)


def test_csv_import(tmp_path):
    frame, passes, fish = _tables()
    frame.to_csv(tmp_path / "frame.csv", index=False)
    passes.to_csv(tmp_path / "passes.csv", index=False)
    fish.to_csv(tmp_path / "fish.csv", index=False)

    inputs = csv_import(str(tmp_path))
    assert inputs["N"] == 691
    assert inputs["frame_length"] == 141000.0
    assert inputs["sites"] is None

    sv = survey(**inputs)
    sv.site_abundance()
    assert sv.site_df["m"].tolist() == [1, 1]


def test_csv_import_requires_passes(tmp_path):
    frame, _, _ = _tables()
    frame.to_csv(tmp_path / "frame.csv", index=False)
    with pytest.raises(FileNotFoundError):
        csv_import(str(tmp_path))


def test_worksheet_import(tmp_path):
    frame, passes, fish = _tables()
    wks = tmp_path / "survey.xlsx"
    with pd.ExcelWriter(wks, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name="Frame", index=False)
        passes.to_excel(writer, sheet_name="Passes", index=False)
        fish.to_excel(writer, sheet_name="Fish", index=False)

    inputs = worksheet_import(str(wks))
    assert inputs["N"] == 691
    assert len(inputs["passes"]) == 4
    assert inputs["sites"] is None

    sv = survey(**inputs).run()
    assert sv.results["density"].estimate.point_estimate == pytest.approx(23.0 / 220.0)


def test_frame_sheet_missing_columns(tmp_path):
    _, passes, fish = _tables()
    pd.DataFrame([{"N": 691}]).to_csv(tmp_path / "frame.csv", index=False)
    passes.to_csv(tmp_path / "passes.csv", index=False)
    with pytest.raises(InputIntegrityError, match="total_frame_length"):
        csv_import(str(tmp_path))
