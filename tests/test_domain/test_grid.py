"""Tests for grid tokens and cells."""

import pytest

from megaverse.domain.grid import (
    ComethDirection,
    EntityKind,
    SoloonColor,
    cell_matches,
    check_same_shape,
    parse_cell,
    parse_token,
)


class TestParseToken:
    def test_space(self):
        assert parse_token("SPACE", 0, 0) is None

    def test_polyanet(self):
        entity = parse_token("POLYANET", 2, 3)
        assert entity.kind == EntityKind.POLYANET
        assert (entity.row, entity.column) == (2, 3)
        assert entity.attrs == {}

    def test_soloon(self):
        entity = parse_token("PURPLE_SOLOON", 1, 1)
        assert entity.kind == EntityKind.SOLOON
        assert entity.color == SoloonColor.PURPLE
        assert entity.attrs == {"color": "purple"}

    def test_cometh(self):
        entity = parse_token("LEFT_COMETH", 1, 1)
        assert entity.direction == ComethDirection.LEFT
        assert entity.attrs == {"direction": "left"}

    @pytest.mark.parametrize("token", ["GREEN_SOLOON", "MOON", "SIDEWAYS_COMETH"])
    def test_unknown_treated_as_space(self, token, caplog):
        assert parse_token(token, 0, 0) is None
        assert "Unknown goal token" in caplog.text

    @pytest.mark.parametrize("token", ["POLYANET", "WHITE_SOLOON", "DOWN_COMETH"])
    def test_token_round_trip(self, token):
        assert parse_token(token, 0, 0).token == token


class TestParseCell:
    def test_empty(self):
        assert parse_cell(None, 0, 0) is None

    def test_polyanet(self):
        assert parse_cell({"type": 0}, 0, 0).kind == EntityKind.POLYANET

    def test_soloon(self):
        entity = parse_cell({"type": 1, "color": "blue"}, 0, 0)
        assert entity.kind == EntityKind.SOLOON
        assert entity.color == SoloonColor.BLUE

    def test_cometh(self):
        entity = parse_cell({"type": 2, "direction": "right"}, 0, 0)
        assert entity.kind == EntityKind.COMETH
        assert entity.direction == ComethDirection.RIGHT

    def test_unknown_type_treated_as_empty(self, caplog):
        with caplog.at_level("WARNING", logger="megaverse.domain.grid"):
            assert parse_cell({"type": 7}, 1, 2) is None
        assert "Unknown cell" in caplog.text

    def test_bad_color_treated_as_empty(self):
        assert parse_cell({"type": 1, "color": "green"}, 0, 0) is None


class TestCellMatches:
    @pytest.mark.parametrize(
        "token,cell",
        [
            ("SPACE", None),
            ("POLYANET", {"type": 0}),
            ("RED_SOLOON", {"type": 1, "color": "red"}),
            ("UP_COMETH", {"type": 2, "direction": "up"}),
        ],
    )
    def test_matches(self, token, cell):
        assert cell_matches(token, cell)

    @pytest.mark.parametrize(
        "token,cell",
        [
            ("SPACE", {"type": 0}),
            ("POLYANET", None),
            ("RED_SOLOON", {"type": 1, "color": "blue"}),
            ("UP_COMETH", {"type": 0}),
        ],
    )
    def test_mismatches(self, token, cell):
        assert not cell_matches(token, cell)


class TestShapeCheck:
    def test_same_shape(self):
        check_same_shape([["SPACE"]], [[None]])

    def test_row_count_differs(self):
        with pytest.raises(ValueError):
            check_same_shape([["SPACE"], ["SPACE"]], [[None]])

    def test_row_length_differs(self):
        with pytest.raises(ValueError):
            check_same_shape([["SPACE", "SPACE"]], [[None]])


class TestEntityKind:
    def test_resource(self):
        assert EntityKind.POLYANET.resource == "polyanets"
        assert EntityKind.SOLOON.resource == "soloons"
        assert EntityKind.COMETH.resource == "comeths"
