"""
This package contains the relying party side of discovery: the
generic unsigned discovery in C{L{hostedopenid.consumer.discover}} and
signed discovery for hosted domains in
C{L{hostedopenid.consumer.hosted}}.
"""
