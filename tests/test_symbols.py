"""
Unit tests for the symbol registry and declaration-table handling.
"""
from sqlblocks.models import Datum, DatumKind, build_datum_names
from sqlblocks.symbols import SymbolRegistry, TransformContext, split_datums


def _datums():
    return [
        Datum(0, DatumKind.VAR, "p_id", "int8"),
        Datum(1, DatumKind.VAR, "found", "bool"),
        Datum(2, DatumKind.VAR, "v_count", "INT"),
        Datum(3, DatumKind.REC, "v_record"),
        Datum(4, DatumKind.ROW, "(unnamed row)"),
        Datum(5, DatumKind.RECFIELD, "time_slot", parent_index=3),
    ]


def test_split_datums_at_sentinel():
    params, local_vars = split_datums(_datums())
    assert [d.name for d in params] == ["p_id"]
    assert [d.name for d in local_vars] == ["v_count", "v_record"]


def test_split_datums_without_sentinel_treats_all_as_parameters():
    params, local_vars = split_datums([Datum(0, DatumKind.VAR, "a"), Datum(1, DatumKind.VAR, "b")])
    assert [d.name for d in params] == ["a", "b"]
    assert local_vars == []


class TestSymbolRegistry:
    def setup_method(self):
        self.registry = SymbolRegistry()
        self.local_vars = self.registry.register_datums(_datums())

    def test_registers_locals_in_order(self):
        assert [(v.name, v.id) for v in self.registry.variables()] == [
            ("v_count", "var_v_count"),
            ("v_record", "var_v_record"),
        ]

    def test_ids_are_stable(self):
        assert self.registry.id_for("v_count") == "var_v_count"
        assert self.registry.id_for("v_count") == "var_v_count"
        assert len(self.registry.variables()) == 2

    def test_parameters_are_not_assignable(self):
        assert self.registry.is_parameter("p_id")
        assert not self.registry.is_assignable("p_id")
        assert "p_id" not in [v.name for v in self.registry.variables()]

    def test_record_fields_are_not_assignable(self):
        assert not self.registry.is_assignable("v_record.time_slot")
        assert self.registry.is_assignable("v_count")

    def test_unnamed_record_is_registered_as_record(self):
        registry = SymbolRegistry()
        registry.register_datums([Datum(0, DatumKind.VAR, "found"), Datum(1, DatumKind.REC, "")])
        assert [v.name for v in registry.variables()] == ["record"]


def test_transform_contexts_do_not_share_counters():
    a, b = TransformContext(), TransformContext()
    assert [a.next_id(), a.next_id()] == ["block_1", "block_2"]
    assert b.next_id() == "block_1"
    assert a.registry is not b.registry


def test_datum_from_json_and_names():
    raw = [
        {"PLpgSQL_var": {"refname": "found", "datatype": {"PLpgSQL_type": {"typname": "BOOLEAN"}}}},
        {"PLpgSQL_rec": {"refname": "v_request"}},
        {"PLpgSQL_recfield": {"fieldname": "time_slot", "recparentno": 1}},
        {"PLpgSQL_row": {"fields": []}},
        {"Unknown": {}},
    ]
    datums = [d for d in (Datum.from_json(i, r) for i, r in enumerate(raw)) if d is not None]
    assert [d.kind for d in datums] == [DatumKind.VAR, DatumKind.REC, DatumKind.RECFIELD, DatumKind.ROW]
    assert datums[0].type_name == "BOOLEAN"
    names = build_datum_names(datums)
    assert names == {0: "found", 1: "v_request", 2: "v_request.time_slot", 3: "row_3"}
