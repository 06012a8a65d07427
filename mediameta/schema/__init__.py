from .codec import (
    AttributeKeyCollision, CollisionPolicy, IS_ACTIVE_KEY, RESERVED_KEYS, SEQUENCE_KEY,
    encode_attributes, find_collisions, format_value, sanitize_key,
)
from .fields import (
    DateField, DuplicateFieldName, FieldDefinition, FieldKind, FieldPathError, FieldSchemaError,
    GroupField, NumberField, SelectField, TextField,
    add_child, dump_fields, join_path, leaf_paths, load_fields, make_field, move_child, parse_fields, remove_child,
    replace_child, resolve, split_path, validate_fields,
)
from .metadata import (
    FieldValueError, MetadataValidationError, coerce_metadata, coerce_value, dump_metadata, parse_metadata,
)
from .binder import Control, Form, GroupBlock, NOT_AVAILABLE, ReadLine, format_read_view, read_view, render
