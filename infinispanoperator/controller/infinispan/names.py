# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

"""Names of the objects derived from an Infinispan cluster

Derived names end up as the names of Services, Routes, Secrets, etc. They must
be stable between reconcile runs, so everything here is deterministic.
"""

from ..consts import MAX_ROUTE_OBJECT_NAME_LENGTH


def truncate_name(base: str, suffix: str, ceiling: int = MAX_ROUTE_OBJECT_NAME_LENGTH,
                  filler: str = "") -> str:
    """
    Append suffix to base, keeping the result within ceiling characters.

    If base+suffix doesn't fit, base is cut to ceiling-len(suffix)-1
    characters. The spare character is where callers that must avoid
    collisions between truncated names put their filler.
    """
    if len(filler) > 1:
        raise ValueError(f"filler must be at most one character, got '{filler}'")

    if len(base) + len(suffix) <= ceiling:
        return base + suffix

    keep = max(0, ceiling - len(suffix) - 1)
    return base[:keep] + filler + suffix
