import uuid

from api_test_plan.core.config import Settings
from api_test_plan.generator.values import (
    FORMAT_VALUES,
    ValueContext,
    ValueSynthesizer,
    encode_path_segment,
    placeholder_uuid,
    stringify,
)
from api_test_plan.parser.base import SchemaKind, SchemaNode, SpecDocument


def _synth(*nodes: SchemaNode, settings: Settings | None = None) -> ValueSynthesizer:
    return ValueSynthesizer(SpecDocument(version="3.0.3", schemas=list(nodes)), settings)


class TestPrecedence:
    def test_example_wins(self):
        node = SchemaNode(kind=SchemaKind.STRING, example="Rex", default="Max", enum=["a"], format="uuid")
        assert _synth(node).synthesize(0) == "Rex"

    def test_default_before_enum(self):
        node = SchemaNode(kind=SchemaKind.STRING, default="Max", enum=["a", "b"])
        assert _synth(node).synthesize(0) == "Max"

    def test_first_enum_value(self):
        node = SchemaNode(kind=SchemaKind.STRING, enum=["available", "sold"])
        assert _synth(node).synthesize(0) == "available"

    def test_uuid_is_name_based(self):
        node = SchemaNode(kind=SchemaKind.STRING, format="uuid")
        value = _synth(node).synthesize(0, ValueContext(name="widgetId"))
        assert value == str(uuid.uuid5(uuid.NAMESPACE_URL, "widgetId"))
        assert value == placeholder_uuid("widgetId")

    def test_format_value(self):
        node = SchemaNode(kind=SchemaKind.STRING, format="email")
        assert _synth(node).synthesize(0) == FORMAT_VALUES["email"]


class TestPhrases:
    def test_deterministic_per_name(self):
        node = SchemaNode(kind=SchemaKind.STRING)
        first = _synth(node).synthesize(0, ValueContext(name="title"))
        second = _synth(node).synthesize(0, ValueContext(name="title"))
        assert first == second
        assert " " in first

    def test_respects_max_length(self):
        node = SchemaNode(kind=SchemaKind.STRING, max_length=5)
        value = _synth(node).synthesize(0, ValueContext(name="code"))
        assert 0 < len(value) <= 5
        assert not value.endswith(" ")

    def test_respects_min_length(self):
        node = SchemaNode(kind=SchemaKind.STRING, min_length=40)
        synth = _synth(node)
        value = synth.synthesize(0, ValueContext(name="essay"))
        assert len(value) >= 40
        assert synth.diagnostics == []

    def test_default_length_cap(self):
        node = SchemaNode(kind=SchemaKind.STRING, min_length=20)
        value = _synth(node, settings=Settings(max_phrase_length=24)).synthesize(0)
        assert 20 <= len(value) <= 24

    def test_impossible_length_warns(self):
        node = SchemaNode(kind=SchemaKind.STRING, min_length=10, max_length=5)
        synth = _synth(node)
        value = synth.synthesize(0)
        assert len(value) == 10
        assert [d.code for d in synth.diagnostics] == ["empty-range"]

    def test_unsatisfied_pattern_warns(self):
        node = SchemaNode(kind=SchemaKind.STRING, pattern=r"^[0-9]+$")
        synth = _synth(node)
        synth.synthesize(0, ValueContext(name="digits"))
        assert synth.diagnostics[0].code == "pattern-not-satisfied"
        assert synth.diagnostics[0].severity == "warning"


class TestNumbers:
    def test_integer_midpoint(self):
        node = SchemaNode(kind=SchemaKind.INTEGER, minimum=1, maximum=50)
        assert _synth(node).synthesize(0) == 25

    def test_number_midpoint(self):
        node = SchemaNode(kind=SchemaKind.NUMBER, minimum=0, maximum=1000)
        assert _synth(node).synthesize(0) == 500.0

    def test_unbounded_integer_is_sentinel(self):
        assert _synth(SchemaNode(kind=SchemaKind.INTEGER)).synthesize(0) == 1

    def test_exclusive_integer_minimum(self):
        node = SchemaNode(kind=SchemaKind.INTEGER, minimum=5, exclusive_minimum=True)
        assert _synth(node).synthesize(0) == 6

    def test_exclusive_number_minimum(self):
        node = SchemaNode(kind=SchemaKind.NUMBER, minimum=5, exclusive_minimum=True)
        assert _synth(node).synthesize(0) > 5

    def test_maximum_below_sentinel(self):
        node = SchemaNode(kind=SchemaKind.INTEGER, maximum=0)
        assert _synth(node).synthesize(0) == 0

    def test_empty_range_warns(self):
        node = SchemaNode(kind=SchemaKind.INTEGER, minimum=3, maximum=2)
        synth = _synth(node)
        assert synth.synthesize(0) == 3
        assert synth.diagnostics[0].code == "empty-range"

    def test_boolean(self):
        assert _synth(SchemaNode(kind=SchemaKind.BOOLEAN)).synthesize(0) is True


class TestStructures:
    def test_object_has_required_and_exemplified_properties(self):
        doc_nodes = [
            SchemaNode(kind=SchemaKind.OBJECT, properties={"name": 1, "tag": 2, "color": 3}, required=["name"]),
            SchemaNode(kind=SchemaKind.STRING, example="Rex"),
            SchemaNode(kind=SchemaKind.STRING),
            SchemaNode(kind=SchemaKind.STRING, default="brown"),
        ]
        assert _synth(*doc_nodes).synthesize(0) == {"name": "Rex", "color": "brown"}

    def test_array_has_one_item(self):
        nodes = [SchemaNode(kind=SchemaKind.ARRAY, items=1), SchemaNode(kind=SchemaKind.INTEGER)]
        assert _synth(*nodes).synthesize(0) == [1]

    def test_array_min_items(self):
        nodes = [SchemaNode(kind=SchemaKind.ARRAY, items=1, min_items=3), SchemaNode(kind=SchemaKind.BOOLEAN)]
        assert _synth(*nodes).synthesize(0) == [True, True, True]

    def test_array_items_are_distinct_objects(self):
        nodes = [
            SchemaNode(kind=SchemaKind.ARRAY, items=1, min_items=2),
            SchemaNode(kind=SchemaKind.OBJECT, properties={"n": 2}, required=["n"]),
            SchemaNode(kind=SchemaKind.INTEGER),
        ]
        value = _synth(*nodes).synthesize(0)
        assert value == [{"n": 1}, {"n": 1}]
        assert value[0] is not value[1]

    def test_array_max_items_zero(self):
        nodes = [SchemaNode(kind=SchemaKind.ARRAY, items=1, max_items=0), SchemaNode(kind=SchemaKind.BOOLEAN)]
        assert _synth(*nodes).synthesize(0) == []

    def test_self_referential_object_terminates(self):
        node = SchemaNode(kind=SchemaKind.OBJECT, properties={"parent": 0, "id": 1}, required=["parent", "id"])
        value = _synth(node, SchemaNode(kind=SchemaKind.INTEGER)).synthesize(0)
        assert value == {"parent": {}, "id": 1}

    def test_union_uses_first_variant(self):
        nodes = [
            SchemaNode(kind=SchemaKind.UNION, variants=[1, 2]),
            SchemaNode(kind=SchemaKind.INTEGER, example=7),
            SchemaNode(kind=SchemaKind.STRING),
        ]
        assert _synth(*nodes).synthesize(0) == 7


class TestPathSegments:
    def test_path_segment_is_encoded(self):
        node = SchemaNode(kind=SchemaKind.STRING, example="a/b c")
        assert _synth(node).synthesize(0, ValueContext(is_path_segment=True)) == "a%2Fb%20c"

    def test_encode_path_segment(self):
        assert encode_path_segment("x?y#z") == "x%3Fy%23z"
        assert encode_path_segment(42) == "42"

    def test_stringify(self):
        assert stringify(True) == "true"
        assert stringify(None) == "null"
        assert stringify([1, "a"]) == "1,a"
        assert stringify({"a": 1}) == '{"a":1}'
