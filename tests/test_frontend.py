# tests/test_frontend.py
"""
Tests for the JSON front-end.
"""

import json

import pytest

from idiomcheck.errors import ModelError, ParseFailure
from idiomcheck.frontend import FrontEnd, JsonFrontEnd


class TestJsonFrontEnd:

    def test_is_a_front_end(self):
        assert isinstance(JsonFrontEnd(), FrontEnd)

    def test_unit_defaults_to_path(self):
        rep = JsonFrontEnd().parse(json.dumps({"types": []}), "a.json")
        assert rep["unit"] == "a.json"

    def test_declared_unit_is_kept(self):
        rep = JsonFrontEnd().parse(json.dumps({"unit": "a.cpp"}), "a.json")
        assert rep["unit"] == "a.cpp"

    def test_invalid_json_position(self):
        with pytest.raises(ParseFailure) as info:
            JsonFrontEnd().parse('{\n  "types": [,]\n}', "a.json")
        assert (info.value.unit, info.value.line) == ("a.json", 2)
        assert info.value.message.startswith("invalid JSON")

    def test_non_object_document(self):
        with pytest.raises(ModelError, match="must be a JSON object, got list"):
            JsonFrontEnd().parse("[]", "a.json")

    @pytest.mark.parametrize("doc", [
        {"types": 5},
        {"types": None, "functions": "f"},
    ])
    def test_malformed_sections_are_left_to_the_builder(self, doc):
        rep = JsonFrontEnd().parse(json.dumps(doc), "a.json")
        assert rep["unit"] == "a.json"
