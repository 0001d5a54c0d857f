"""
Filename text normalization.

macOS and some Android storage layers hand back decomposed (NFD) names
while Linux keeps whatever bytes were written. Comparing the two sides
only works once every path is in one canonical form.
"""
import unicodedata


class Normalizer:
    """No-op normalizer; paths are compared byte-for-byte."""

    def normalize(self, path: str) -> str:
        return path

    def __call__(self, path: str) -> str:
        return self.normalize(path)


class NullNormalizer(Normalizer):
    pass


class NFCNormalizer(Normalizer):
    """Compose every path to Unicode NFC."""

    def normalize(self, path: str) -> str:
        # Names that are not valid UTF-8 carry surrogate escapes; leave them be.
        if path.isascii():
            return path
        try:
            path.encode("utf-8")
        except UnicodeEncodeError:
            return path
        return unicodedata.normalize("NFC", path)


def decode_path(raw: bytes) -> str:
    """Decode a NUL-delimited listing entry without losing undecodable bytes."""
    return raw.decode("utf-8", "surrogateescape")


def encode_path(path: str) -> bytes:
    return path.encode("utf-8", "surrogateescape")
