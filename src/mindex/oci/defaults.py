# media types, for reference:
#   https://github.com/opencontainers/image-spec/blob/main/media-types.md

image_index_media_type = "application/vnd.oci.image.index.v1+json"
image_manifest_media_type = "application/vnd.oci.image.manifest.v1+json"

index_schema_version = 2

default_digest_algorithm = "sha256"

annotation_signature_key = "io.mindex.index.entry.signature"
annotation_signed_string_key = "io.mindex.index.entry.signed-string"

registry_token_env = "MINDEX_REGISTRY_TOKEN"
