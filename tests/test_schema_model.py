import pytest

from insanus_notes.domain.exceptions import ValidationSkip
from insanus_notes.domain.schema_model import (
    PropertyDefinition,
    PropertyType,
    coerce_for_edit,
    new_definition,
    parse_options,
    parse_property_type,
    parse_schema,
    validate_value,
)


def test_parse_schema_drops_malformed_and_duplicate_entries() -> None:
    raw = [
        {"id": "a", "name": "Status", "type": "select", "options": ["Todo", "Done", 3]},
        {"id": "a", "name": "Dup", "type": "text"},
        {"name": "No id", "type": "text"},
        "garbage",
        {"id": "b", "name": "Due", "type": "date", "options": ["ignored"]},
        {"id": "c", "name": "Odd", "type": "formula"},
    ]
    schema = parse_schema(raw)
    assert [d.id for d in schema] == ["a", "b", "c"]
    assert schema[0].options == ("Todo", "Done")
    assert schema[1].options is None
    assert schema[2].type is PropertyType.TEXT


def test_parse_schema_of_non_list_is_empty() -> None:
    assert parse_schema(None) == ()
    assert parse_schema({"id": "a"}) == ()


def test_legacy_bool_type_is_accepted() -> None:
    assert parse_property_type("bool") is PropertyType.BOOLEAN
    definition = PropertyDefinition.from_raw({"id": "x", "name": "Done", "type": "bool"})
    assert definition.to_raw()["type"] == "boolean"


def test_relation_definition_keeps_target_collection_only_for_relations() -> None:
    rel = PropertyDefinition("r", "Links", PropertyType.RELATION, relation_collection_id="col-1")
    assert rel.relation_collection_id == "col-1"
    text = PropertyDefinition("t", "Notes", PropertyType.TEXT, relation_collection_id="col-1")
    assert text.relation_collection_id is None


def test_coerce_for_edit_degrades_to_zero_values() -> None:
    assert coerce_for_edit(PropertyType.TEXT, None) == ""
    assert coerce_for_edit(PropertyType.TEXT, {"nested": 1}) == ""
    assert coerce_for_edit(PropertyType.NUMBER, 4.0) == "4"
    assert coerce_for_edit(PropertyType.NUMBER, 4.5) == "4.5"
    assert coerce_for_edit(PropertyType.NUMBER, 7) == "7"
    assert coerce_for_edit(PropertyType.RELATION, "n1") == []
    assert coerce_for_edit(PropertyType.RELATION, ["n1", 2, "", "n2"]) == ["n1", "n2"]
    assert coerce_for_edit(PropertyType.BOOLEAN, "false") is False
    assert coerce_for_edit(PropertyType.BOOLEAN, "0") is False
    assert coerce_for_edit(PropertyType.BOOLEAN, "yes") is True
    assert coerce_for_edit(PropertyType.BOOLEAN, None) is False


@pytest.mark.parametrize(
    "prop_type,raw",
    [
        (PropertyType.TEXT, 12),
        (PropertyType.NUMBER, 3.0),
        (PropertyType.BOOLEAN, "false"),
        (PropertyType.RELATION, ["a", "a", 1]),
        (PropertyType.DATE, None),
    ],
)
def test_coerce_for_edit_is_idempotent(prop_type, raw) -> None:
    once = coerce_for_edit(prop_type, raw)
    assert coerce_for_edit(prop_type, once) == once


def test_new_definition_trims_name_and_parses_options() -> None:
    d = new_definition("  Stage ", "select", "Idea, Draft ,, Done")
    assert d.name == "Stage"
    assert d.options == ("Idea", "Draft", "Done")
    assert d.id


def test_new_definition_rejects_blank_name_and_unknown_type() -> None:
    with pytest.raises(ValidationSkip):
        new_definition("   ", PropertyType.TEXT)
    with pytest.raises(ValidationSkip):
        new_definition("Name", "formula")


def test_parse_options_skips_empty_entries() -> None:
    assert parse_options("") == ()
    assert parse_options(" a ,b,") == ("a", "b")


def test_validate_value_by_type() -> None:
    number = PropertyDefinition("n", "Estimate", PropertyType.NUMBER)
    assert validate_value(number, "3.5") == "3.5"
    assert validate_value(number, 2) == "2"
    assert validate_value(number, "") == ""
    with pytest.raises(ValidationSkip):
        validate_value(number, "abc")
    with pytest.raises(ValidationSkip):
        validate_value(number, "inf")

    due = PropertyDefinition("d", "Due", PropertyType.DATE)
    assert validate_value(due, "2024-02-29") == "2024-02-29"
    with pytest.raises(ValidationSkip):
        validate_value(due, "2023-02-29")
    with pytest.raises(ValidationSkip):
        validate_value(due, "29/02/2024")

    stage = PropertyDefinition("s", "Stage", PropertyType.SELECT, options=("Idea", "Done"))
    assert validate_value(stage, "Done") == "Done"
    with pytest.raises(ValidationSkip):
        validate_value(stage, "Later")

    done = PropertyDefinition("b", "Done", PropertyType.BOOLEAN)
    assert validate_value(done, "false") is False
    assert validate_value(done, True) is True

    links = PropertyDefinition("r", "Links", PropertyType.RELATION)
    assert validate_value(links, ["a", "b", "a"]) == ["a", "b"]
    with pytest.raises(ValidationSkip):
        validate_value(links, "a")


def test_validate_value_rejects_non_scalars_for_text() -> None:
    text = PropertyDefinition("t", "Summary", PropertyType.TEXT)
    with pytest.raises(ValidationSkip):
        validate_value(text, {"x": 1})
    with pytest.raises(ValidationSkip):
        validate_value(text, True)
