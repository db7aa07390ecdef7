class MindexError(ValueError):
    pass


class DuplicatePlatformError(MindexError):
    def __init__(self, platform):
        self.platform = platform
        super().__init__(f"duplicate platform {describe_platform(platform)}")


class InvalidDescriptorError(MindexError):
    def __init__(self, message: str, digest=None):
        self.digest = digest
        super().__init__(message)


class EmptyIndexError(MindexError):
    def __init__(self, message: str = "index contains no manifests"):
        super().__init__(message)


class InvalidKeyError(MindexError):
    pass


class MalformedDocumentError(MindexError):
    pass


class DigestMismatchError(MindexError):
    def __init__(
        self,
        expected_digest: str,
        actual_digest=None,
        expected_size=None,
        actual_size=None,
    ):
        self.expected_digest = expected_digest
        self.actual_digest = actual_digest
        self.expected_size = expected_size
        self.actual_size = actual_size
        if actual_size is not None and expected_size != actual_size:
            message = (
                f"size mismatch for {expected_digest}: "
                f"expected {expected_size} bytes, got {actual_size}"
            )
        else:
            message = f"digest mismatch: {expected_digest} != {actual_digest}"
        super().__init__(message)


class UnsupportedDigestAlgorithmError(MindexError):
    def __init__(self, algorithm: str, digest=None):
        self.algorithm = algorithm
        self.digest = digest
        super().__init__(f"unsupported digest algorithm {algorithm!r}")


class ContentNotFoundError(MindexError):
    def __init__(self, digest: str, location=None):
        self.digest = digest
        if location:
            super().__init__(f"content {digest} not found in {location}")
        else:
            super().__init__(f"content {digest} not found")


def describe_platform(platform) -> str:
    """
    Render a platform tuple for messages, e.g. ``linux/arm64 (variant v7)``.

    Accepts a Platform or an ``(os, architecture, variant)`` tuple.
    """
    if hasattr(platform, "key"):
        platform = platform.key
    os_name, architecture, variant = platform
    if variant:
        return f"{os_name}/{architecture} (variant {variant})"
    return f"{os_name}/{architecture}"
