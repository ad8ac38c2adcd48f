"""
Department sequence tests.

The production line is a fixed ordered enumeration; ``next`` / ``previous``
return None at the ends instead of wrapping or raising.
"""

import pytest

from prodflow.core.departments import DEFAULT_DEPARTMENTS, DepartmentSequence
from prodflow.core.exceptions import ValidationError


class TestConstruction:
    def test_default_line(self):
        seq = DepartmentSequence.from_config(None)
        assert seq.as_list() == list(DEFAULT_DEPARTMENTS)

    def test_from_comma_separated_string(self):
        seq = DepartmentSequence.from_config(" Gabarito, impressao ,batida,")
        assert seq.as_list() == ["gabarito", "impressao", "batida"]

    def test_duplicate_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            DepartmentSequence(["gabarito", "impressao", "GABARITO"])

    def test_blank_rejected(self):
        with pytest.raises(ValidationError):
            DepartmentSequence(["gabarito", "  "])

    def test_admin_is_reserved(self):
        with pytest.raises(ValidationError, match="reserved"):
            DepartmentSequence(["gabarito", "admin"])

    def test_empty_sequence_is_constructible(self):
        seq = DepartmentSequence([])
        assert seq.is_empty
        assert seq.first is None
        assert seq.last is None


class TestNavigation:
    @pytest.fixture()
    def seq(self):
        return DepartmentSequence(["gabarito", "impressao", "batida"])

    def test_next_and_previous(self, seq):
        assert seq.next("gabarito") == "impressao"
        assert seq.previous("batida") == "impressao"

    def test_ends_return_none(self, seq):
        assert seq.next("batida") is None
        assert seq.previous("gabarito") is None

    def test_lookup_is_case_insensitive(self, seq):
        assert seq.require(" Impressao ") == "impressao"
        assert "IMPRESSAO" in seq

    def test_unknown_department(self, seq):
        with pytest.raises(ValidationError, match="Unknown department 'costura'"):
            seq.next("costura")

    def test_missing_department(self, seq):
        with pytest.raises(ValidationError, match="department is required"):
            seq.require("")

    @pytest.mark.parametrize("value", [5, ["impressao"], {"name": "impressao"}, True])
    def test_non_string_department(self, seq, value):
        with pytest.raises(ValidationError, match="department must be a string") as exc:
            seq.require(value)
        assert "department" in exc.value.details

    def test_container_protocol(self, seq):
        assert len(seq) == 3
        assert list(seq) == ["gabarito", "impressao", "batida"]
        assert seq == DepartmentSequence(["gabarito", "impressao", "batida"])
        assert seq != DepartmentSequence(["impressao", "gabarito", "batida"])
        assert seq.first == "gabarito"
        assert seq.last == "batida"
