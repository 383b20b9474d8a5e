''' Wrapper module to select the most performant available library to handle
    the equivalent of :func:`json.loads` and :func:`json.dumps`.
'''

# The business about conditionally importing the libraries is intended to
# avoid importing less efficient libraries if they are not available. With
# the right build process this could be determined at build time, instead
# of at run time.

msgspec = None
orjson = None
json = None

try:
    import msgspec
except ImportError:
    pass

if msgspec is None:
    try:
        import orjson
    except ImportError:
        pass

if msgspec is None and orjson is None:
    import json


# The msgspec 'encode' operation returns bytes, as does orjson.dumps. To
# maintain alignment all 'dumps' methods need to do so as well.

def json_dumps(*args, **kwargs):
    return json.dumps(*args, **kwargs).encode()


# orjson refuses non-string dictionary keys unless asked; the other
# libraries quietly convert them to strings.

def orjson_dumps(value):
    return orjson.dumps(value, option=orjson.OPT_NON_STR_KEYS)


# Each library has its own notion of what a failure looks like. The tuples
# below are suitable for use in an except clause no matter which library
# is active.

EncodeError = (TypeError, ValueError, OverflowError)
DecodeError = (ValueError,)

if msgspec is not None:
    encoder = msgspec.json.Encoder()
    decoder = msgspec.json.Decoder()
    dumps = encoder.encode
    loads = decoder.decode
    EncodeError = EncodeError + (msgspec.EncodeError,)
    DecodeError = DecodeError + (msgspec.DecodeError,)
elif orjson is not None:
    dumps = orjson_dumps
    loads = orjson.loads
    EncodeError = EncodeError + (orjson.JSONEncodeError,)
    DecodeError = DecodeError + (orjson.JSONDecodeError,)
else:
    dumps = json_dumps
    loads = json.loads

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
