import pytest

from plugins.risk_classifier.core.csv_table import parse
from plugins.risk_classifier.core.errors import AmbiguousColumnError, ColumnNotFoundError
from plugins.risk_classifier.core.schema import ColumnRole, DeclaredSchema, match_column, resolve, resolve_declared


def _dataset(header: str):
    return parse(header + "\n" + ",".join("1" for _ in header.split(",")) + "\n")


def test_exact_match_wins_over_fuzzier_rules():
    assert match_column("Smoking", ["Smoking Status", "Smoking"]) == "Smoking"


def test_declared_name_with_trailing_space_resolves_to_header():
    assert match_column("Age ", ["Age", "Income"]) == "Age"


def test_case_insensitive_match():
    assert match_column("bmi", ["BMI", "Age"]) == "BMI"


def test_substring_match_handles_unit_suffixes():
    headers = ["UDI", "Air temperature [K]", "Process temperature [K]", "Torque [Nm]"]

    assert match_column("Torque", headers) == "Torque [Nm]"
    assert match_column("Air temperature", headers) == "Air temperature [K]"


def test_substring_tie_breaks_on_closest_length():
    assert match_column("Smoking", ["Smoking Status", "Smoking Habit History"]) == "Smoking Status"


def test_equally_close_candidates_are_ambiguous():
    with pytest.raises(AmbiguousColumnError) as excinfo:
        match_column("rate", ["heart_rate", "birth_rate"])

    assert sorted(excinfo.value.details["candidates"]) == ["birth_rate", "heart_rate"]


def test_unmatched_column_raises_not_found():
    with pytest.raises(ColumnNotFoundError):
        match_column("Weight", ["Age", "Income"])


def test_resolve_assigns_roles_and_marks_rest_ignored():
    dataset = _dataset("id,Age,Gender,Outcome")

    resolved = resolve(dataset, ["age"], ["gender"], "outcome")

    assert resolved.target.name == "Outcome"
    assert [spec.name for spec in resolved.numeric] == ["Age"]
    assert [spec.name for spec in resolved.categorical] == ["Gender"]
    ignored = resolved.by_role(ColumnRole.IGNORED)
    assert [spec.name for spec in ignored] == ["id"]


def test_claimed_headers_are_not_reused():
    dataset = _dataset("Smoking Status,Smoking,target")

    resolved = resolve(dataset, [], ["Smoking", "Smoking Status"], "target")

    assert [spec.name for spec in resolved.categorical] == ["Smoking", "Smoking Status"]


def test_missing_feature_can_be_skipped():
    dataset = _dataset("Age,target")

    resolved = resolve(dataset, ["Age", "Weight"], [], "target", on_missing="skip")

    assert [spec.name for spec in resolved.numeric] == ["Age"]
    assert resolved.skipped == ["Weight"]


def test_missing_feature_raises_by_default():
    dataset = _dataset("Age,target")

    with pytest.raises(ColumnNotFoundError):
        resolve(dataset, ["Age", "Weight"], [], "target")


def test_missing_target_raises_even_when_skipping():
    dataset = _dataset("Age,label")

    with pytest.raises(ColumnNotFoundError):
        resolve(dataset, ["Age"], [], "Outcome", on_missing="skip")


def test_declared_schema_from_mapping_round_trip():
    schema = DeclaredSchema.from_mapping(
        {"target": "y", "positive_value": "Yes", "numeric": ["a"], "categorical": ["b"]}
    )

    resolved = resolve_declared(_dataset("a,b,y"), schema)

    assert schema.to_dict() == {"target": "y", "positive_value": "Yes", "numeric": ["a"], "categorical": ["b"]}
    assert resolved.target.declared == "y"
