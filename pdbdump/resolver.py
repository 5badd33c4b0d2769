from pdbdump import basetypes, config
from pdbdump.errors import Malformed, TypeDecodeError, UnhandledLeafKind, UnresolvedForwardRef
from pdbdump.layout import Member, group_members
from pdbdump.tpi import AGGREGATE_KINDS, is_unnamed, iter_fields, parse_type, record_kind


def _declare(type_name, name):
    if name:
        return "%s %s" % (type_name, name)
    return type_name


class TypeResolver:
    """Turns type indices into C names, sizes and member declarations.

    tpi: a TypeStream; it is only ever read
    max_depth: how many records one lookup may pass through before the
        chain is considered cyclic
    """

    def __init__(self, tpi, max_depth = config.MAX_TYPE_DEPTH, indent = config.INDENT):
        self.tpi = tpi
        self.max_depth = max_depth
        self.indent = indent
        # (leaf_type, name) -> index of the first full definition
        self._definitions = None
        # records and member lists decoded so far, by type index
        self._types = {}
        self._members = {}

    def _check_depth(self, depth, ti):
        if depth > self.max_depth:
            raise Malformed("type 0x%x is nested more than %d levels deep" % (ti, self.max_depth))

    def lookup(self, ti):
        try:
            return self._types[ti]
        except KeyError:
            lf = self._types[ti] = parse_type(self.tpi.record(ti))
            return lf

    def _index_definitions(self):
        definitions = {}
        for ti, record in self.tpi:
            try:
                if record_kind(record) not in AGGREGATE_KINDS:
                    continue
                lf = parse_type(record)
            except TypeDecodeError:
                # Broken records get reported if and when they are printed
                continue
            if not lf.prop.fwdref:
                definitions.setdefault((lf.leaf_type, lf.name), ti)
        return definitions

    def resolve_forward_ref(self, ti, lf):
        """Find the full definition of the forward reference lf (at index ti).

        Same kind, same name, not itself a forward reference; the first one
        in index order wins.
        """
        if self._definitions is None:
            self._definitions = self._index_definitions()
        try:
            return self._definitions[lf.leaf_type, lf.name]
        except KeyError:
            raise UnresolvedForwardRef("no definition for %s %s (0x%x)" % (lf.leaf_type, lf.name, ti))

    def resolve(self, ti, lf = None):
        "Returns (index, record) of the definition of ti, following a forward reference if it is one."
        if lf is None:
            lf = self.lookup(ti)
        if lf.leaf_type in AGGREGATE_KINDS and lf.prop.fwdref:
            ti = self.resolve_forward_ref(ti, lf)
            lf = self.lookup(ti)
        return ti, lf

    def type_name(self, ti, depth = 0):
        self._check_depth(depth, ti)
        if self.tpi.is_builtin(ti):
            return basetypes.type_name(ti)

        lf = self.lookup(ti)
        if lf.leaf_type == "LF_POINTER":
            return self.type_name(lf.utype, depth + 1) + "*"
        if lf.leaf_type == "LF_MODIFIER":
            name = self.type_name(lf.modified_type, depth + 1)
            if lf.modifier.volatile:
                name = "volatile " + name
            if lf.modifier.const:
                name = "const " + name
            return name
        if lf.leaf_type in AGGREGATE_KINDS or lf.leaf_type == "LF_ENUM":
            return lf.name
        raise UnhandledLeafKind("cannot name type 0x%x (%s)" % (ti, lf.leaf_type))

    def type_size(self, ti, depth = 0):
        self._check_depth(depth, ti)
        if self.tpi.is_builtin(ti):
            return basetypes.type_size(ti)

        lf = self.lookup(ti)
        if lf.leaf_type in ("LF_POINTER", "LF_ARRAY"):
            return lf.size
        if lf.leaf_type == "LF_MODIFIER":
            return self.type_size(lf.modified_type, depth + 1)
        if lf.leaf_type == "LF_ENUM":
            return self.type_size(lf.utype, depth + 1)
        if lf.leaf_type == "LF_BITFIELD":
            return self.type_size(lf.base_type, depth + 1)
        if lf.leaf_type in AGGREGATE_KINDS:
            return self.resolve(ti, lf)[1].size
        raise UnhandledLeafKind("cannot size type 0x%x (%s)" % (ti, lf.leaf_type))

    def bit_offset(self, field):
        "Offset of a member in bits, including the position of a bitfield within its storage unit."
        offset = field.offset * 8
        if not self.tpi.is_builtin(field.index):
            lf = self.lookup(field.index)
            if lf.leaf_type == "LF_BITFIELD":
                offset += lf.position
        return offset

    def collect_members(self, lf):
        """Members of the struct or union lf in field list order."""
        if not lf.fieldlist:
            return []
        if lf.fieldlist in self._members:
            return self._members[lf.fieldlist]
        members = []
        for field in iter_fields(self.tpi.record(lf.fieldlist)):
            if field.leaf_type != "LF_MEMBER":
                raise Malformed("%s in the field list of %s" % (field.leaf_type, lf.name))
            members.append(Member(field.name, field.index, self.bit_offset(field)))
        self._members[lf.fieldlist] = members
        return members

    def format_body(self, lf, prefix, depth = 0):
        """Member lines of the struct or union lf, each starting with prefix."""
        lines = []
        for wrapper, members in group_members(lf.leaf_type, self.collect_members(lf)):
            if wrapper is None:
                m = members[0]
                lines.append("%s%s;" % (prefix, self.format_member(m.index, m.name, prefix, depth + 1)))
                continue
            inner = prefix + self.indent
            lines.append("%s%s {" % (prefix, wrapper))
            for m in members:
                lines.append("%s%s;" % (inner, self.format_member(m.index, m.name, inner, depth + 1)))
            lines.append("%s};" % prefix)
        return lines

    def format_member(self, ti, name, prefix = "", depth = 0):
        """Declaration of a member called name of type ti, without the trailing semicolon.

        prefix is the indentation the declaration will be printed at; it
        only matters for anonymous structs and unions, which are written out
        inline over several lines.
        """
        self._check_depth(depth, ti)
        if self.tpi.is_builtin(ti):
            return _declare(basetypes.type_name(ti), name)

        lf = self.lookup(ti)
        if lf.leaf_type == "LF_ARRAY":
            return self._format_array(lf, name, prefix, depth)
        if lf.leaf_type == "LF_BITFIELD":
            return "%s : %d" % (_declare(self.type_name(lf.base_type, depth + 1), name), lf.length)
        if lf.leaf_type == "LF_POINTER":
            proc, stars = self._pointer_target(lf, depth)
            if proc is not None:
                return "%s (%s%s)(%s)" % (self.type_name(proc.return_type, depth + 1), "*" * stars, name,
                                          self.format_arguments(proc.arglist, depth + 1))
        elif lf.leaf_type in AGGREGATE_KINDS and is_unnamed(lf.name):
            ti, lf = self.resolve(ti, lf)
            keyword = "union" if lf.leaf_type == "LF_UNION" else "struct"
            lines = ["%s {" % keyword]
            lines += self.format_body(lf, prefix + self.indent, depth + 1)
            lines.append(_declare(prefix + "}", name))
            return "\n".join(lines)
        return _declare(self.type_name(ti, depth), name)

    def _format_array(self, lf, name, prefix, depth):
        # int a[2][3] is an array of 2 arrays of 3 ints
        dims = []
        while True:
            element = lf.element_type
            size = self.type_size(element, depth + 1)
            if size == 0:
                raise Malformed("array of zero-sized type 0x%x" % element)
            dims.append(lf.size // size)
            depth += 1
            self._check_depth(depth, element)
            if self.tpi.is_builtin(element):
                break
            lf = self.lookup(element)
            if lf.leaf_type != "LF_ARRAY":
                break
        return self.format_member(element, name + "".join("[%d]" % d for d in dims), prefix, depth)

    def _pointer_target(self, lf, depth):
        """Follow a chain of pointers to a procedure.

        Returns (procedure record, number of pointers) or (None, 0) if the
        chain ends somewhere else.
        """
        stars = 1
        while not self.tpi.is_builtin(lf.utype):
            depth += 1
            self._check_depth(depth, lf.utype)
            target = self.lookup(lf.utype)
            if target.leaf_type == "LF_PROCEDURE":
                return target, stars
            if target.leaf_type != "LF_POINTER":
                break
            lf = target
            stars += 1
        return None, 0

    def format_arguments(self, arglist, depth = 0):
        if arglist == basetypes.T_NOTYPE:
            return "void"
        self._check_depth(depth, arglist)
        lf = self.lookup(arglist)
        if lf.leaf_type != "LF_ARGLIST":
            raise Malformed("procedure argument list 0x%x is a %s" % (arglist, lf.leaf_type))
        if not lf.arg_type:
            return "void"
        args = []
        for arg in lf.arg_type:
            if arg == basetypes.T_NOTYPE:
                args.append("...")
            else:
                args.append(self.format_member(arg, "", "", depth + 1))
        return ", ".join(args)
