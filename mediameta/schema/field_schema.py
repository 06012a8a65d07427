# field_schema.py
FIELDS_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://example.com/template-fields.schema.json",
    "title": "Template Fields",
    "type": "array",
    "items": {"$ref": "#/$defs/field"},

    "$defs": {
        "name": {
            "type": "string",
            "minLength": 1,
            "pattern": "^[^.]*\\S[^.]*$"
        },
        "field": {
            "anyOf": [
                {"$ref": "#/$defs/scalar"},
                {"$ref": "#/$defs/select"},
                {"$ref": "#/$defs/group"}
            ]
        },
        "scalar": {
            "type": "object",
            "description": "A leaf holding free text, a number or a date",
            "properties": {
                "name": {"$ref": "#/$defs/name"},
                "type": {"enum": ["text", "number", "date"]}
            },
            "required": ["name", "type"],
            "additionalProperties": False
        },
        "select": {
            "type": "object",
            "description": "A leaf holding one value from a closed option list",
            "properties": {
                "name": {"$ref": "#/$defs/name"},
                "type": {"const": "select"},
                "options": {
                    "type": "array",
                    "items": {"type": "string"}
                }
            },
            "required": ["name", "type"],
            "additionalProperties": False
        },
        "group": {
            "type": "object",
            "description": "A container whose leaves carry the values",
            "properties": {
                "name": {"$ref": "#/$defs/name"},
                "type": {"const": "group"},
                "fields": {
                    "type": "array",
                    "items": {"$ref": "#/$defs/field"}
                }
            },
            "required": ["name", "type"],
            "additionalProperties": False
        }
    }
}
