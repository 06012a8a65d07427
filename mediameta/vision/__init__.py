from .client import VisionClient, VisionError, FieldDescriptor, annotate_batch, describe_fields, extract_json
