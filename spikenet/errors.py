"""Exceptions raised by spikenet.

Both derive from ValueError so callers that already guard construction
and input with ``except ValueError`` keep working.
"""


class ConfigurationError(ValueError):
    """Malformed region spec, projection, preset or configuration file.

    Raised at construction time; the network is not built.
    """


class InputError(ValueError):
    """Non-finite external input (vector, stimulus or current).

    Raised before any neuron state is touched, since a non-finite
    membrane potential cannot be recovered by clamping.
    """
