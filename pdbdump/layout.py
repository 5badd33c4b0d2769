"""Reconstruct nesting that the compiler flattened away.

Anonymous unions and structs don't get a type record of their own when
they are declared without a member name; their members show up directly in
the enclosing field list. The only trace left is in the offsets, so the
grouping below works from those alone.

Each function takes members in field list order and returns a list of
(wrapper, members) blocks, where wrapper is None for a lone member or the
keyword of the synthesized block.
"""

from collections import namedtuple

Member = namedtuple("Member", ["name", "index", "bit_offset"])


def group_struct_members(members):
    """Members of a struct sharing a bit offset overlap, so they form a union."""
    runs = []
    for m in members:
        if runs and runs[-1][-1].bit_offset == m.bit_offset:
            runs[-1].append(m)
        else:
            runs.append([m])
    return [(None if len(run) == 1 else "union", run) for run in runs]


def group_union_members(members):
    """Members of a union that don't start at 0 must follow something, so they form a struct."""
    blocks = []
    for m in members:
        if m.bit_offset == 0:
            blocks.append((None, [m]))
        elif blocks and blocks[-1][0] == "struct":
            blocks[-1][1].append(m)
        else:
            blocks.append(("struct", [m]))
    return blocks


def group_members(kind, members):
    if kind == "LF_UNION":
        return group_union_members(members)
    return group_struct_members(members)
