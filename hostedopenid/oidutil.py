"""This module contains general utility code that is used throughout
the library.
"""
import binascii

__all__ = ['toBase64', 'fromBase64', 'force_text', 'force_bytes', 'Symbol']


def toBase64(s):
    """Return string s as base64, omitting newlines.

    @type s: bytes
    @rtype str
    """
    return binascii.b2a_base64(s)[:-1].decode('utf-8')


def fromBase64(s):
    """Return binary data from base64 encoded string.

    Whitespace is ignored, so wrapped base64 as found in XML documents
    and HTTP headers is accepted.

    @type s: str or bytes
    @rtype bytes
    """
    s = force_text(s)
    try:
        return binascii.a2b_base64(''.join(s.split()))
    except binascii.Error as why:
        # Convert to a common exception type
        raise ValueError(str(why))


class Symbol(object):
    """This class implements an object that compares equal to others
    of the same type that have the same name. These are distict from
    string objects.
    """

    def __init__(self, name):
        self.name = name

    def __eq__(self, other):
        return type(self) == type(other) and self.name == other.name

    def __ne__(self, other):
        return not (self == other)

    def __hash__(self):
        return hash((self.__class__, self.name))

    def __repr__(self):
        return '<Symbol %s>' % (self.name,)


def force_text(value):
    """
    Return a text object representing value in UTF-8 encoding.
    """
    if isinstance(value, str):
        # It's already a text, just return it.
        return value
    elif isinstance(value, bytes):
        # It's a byte string, decode it.
        return value.decode('utf-8')
    else:
        # It's not a string, convert it.
        return str(value)


def force_bytes(value):
    """
    Return a byte string, encoding text as UTF-8.
    """
    if isinstance(value, bytes):
        return value
    return force_text(value).encode('utf-8')
