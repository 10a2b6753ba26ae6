"""Rule extraction and the standard rule catalogue.

    formats   -- well-known string formats (email, hostname, ip, uri, uuid)
    standard  -- parameterised checks keyed by type family
    registry  -- ordered rules per message type, with SchemaError on bad rules

The expression functions import ``formats``, so this package keeps its
submodules out of the package namespace; import them directly.
"""
