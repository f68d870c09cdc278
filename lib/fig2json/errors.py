class Fig2JsonError(Exception):
    pass


class DecodeError(Fig2JsonError):
    """!
    Failure while decoding a schema or data blob.

    Carries the byte offset, the message field tag and the name of the
    enclosing type when they are known.
    """
    def __init__(self, message, offset=None, tag=None, type_name=None):
        super().__init__(message)
        self.message = message
        self.offset = offset
        self.tag = tag
        self.type_name = type_name

    def context(self):
        parts = []
        if self.offset is not None:
            parts.append("offset %s" % self.offset)
        if self.type_name is not None:
            parts.append("in %s" % self.type_name)
        if self.tag is not None:
            parts.append("field tag %s" % self.tag)
        return ", ".join(parts)

    def with_context(self, offset=None, tag=None, type_name=None):
        if self.offset is None:
            self.offset = offset
        if self.tag is None:
            self.tag = tag
        if self.type_name is None:
            self.type_name = type_name
        return self

    def __str__(self):
        context = self.context()
        if context:
            return "%s (%s)" % (self.message, context)
        return self.message


class MalformedSchema(DecodeError):
    pass


class TruncatedStream(DecodeError):
    pass


class UnknownRootType(DecodeError):
    pass


class UnknownTag(DecodeError):
    pass


class TypeMismatch(DecodeError):
    pass


class ContainerError(Fig2JsonError):
    pass


class InvalidHeader(ContainerError):
    def __init__(self, header):
        super().__init__("Invalid magic header: expected 'fig-kiwi' or 'fig-jam.', found %r" % header)
        self.header = header


class FileTooSmall(ContainerError):
    def __init__(self, expected, actual):
        super().__init__("File too small: expected at least %s bytes, found %s" % (expected, actual))
        self.expected = expected
        self.actual = actual


class IncompleteChunk(ContainerError):
    def __init__(self, offset, expected, actual):
        super().__init__(
            "Incomplete chunk at offset %s: expected %s bytes, found %s" % (offset, expected, actual)
        )
        self.offset = offset
        self.expected = expected
        self.actual = actual


class NotEnoughChunks(ContainerError):
    def __init__(self, expected, actual):
        super().__init__("Not enough chunks: expected at least %s, found %s" % (expected, actual))
        self.expected = expected
        self.actual = actual


class CanvasNotFound(ContainerError):
    def __init__(self):
        super().__init__("canvas.fig not found in ZIP archive")


class NodeTreeError(Fig2JsonError):
    pass
