# for reference:
#   https://json-schema.org/understanding-json-schema/reference/object
#   https://github.com/opencontainers/image-spec/blob/main/schema/image-index-schema.json
#
# Only the structure is checked here. Values such as the schemaVersion, the
# media types and the digest format are semantic checks of the validator.

schema_url = "http://json-schema.org/draft-07/schema"

annotationsProperties = {
    "type": "object",
    "additionalProperties": {"type": "string"},
}

platformProperties = {
    "architecture": {"type": "string"},
    "os": {"type": "string"},
    "os.version": {"type": "string"},
    "os.features": {"type": "array", "items": {"type": "string"}},
    "variant": {"type": "string"},
}

manifestMetaProperties = {
    "mediaType": {"type": "string"},
    "digest": {"type": "string"},
    "size": {"type": "integer"},
    "annotations": annotationsProperties,
    "platform": {
        "type": "object",
        "required": ["architecture", "os"],
        "properties": platformProperties,
    },
}

indexProperties = {
    "schemaVersion": {"type": "integer"},
    "mediaType": {"type": "string"},
    "manifests": {
        "type": "array",
        "items": {
            "type": "object",
            "required": ["mediaType", "digest", "size", "platform"],
            "properties": manifestMetaProperties,
        },
    },
    "annotations": annotationsProperties,
}


index = {
    "$schema": schema_url,
    "title": "Index Schema",
    "type": "object",
    "required": [
        "schemaVersion",
        "manifests",
    ],
    "properties": indexProperties,
    "additionalProperties": True,
}
