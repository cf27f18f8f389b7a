"""Constants for field reference resolution.

These bound the work done for a single compilation so that cyclic or
self-referencing entries always terminate.
"""

# Maximum nesting of reference expansion; deeper levels resolve to ""
MAX_RECURSION_DEPTH = 12

# Maximum scan/substitute passes per recursion level
MAX_ITERATIONS = 20

# Reference token markers (matched case-insensitively)
REF_START = "{REF:"
REF_END = "}"

# Separator characters inside the token body: {REF:<Wanted>@<Scan>:<Term>}
REF_WANTED_SEPARATOR = "@"
REF_SCAN_SEPARATOR = ":"
