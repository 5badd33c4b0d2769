"""Synthesize C declarations from the aggregates in a TPI stream.

Every struct, union and enum that has a proper name gets printed, along with
static_asserts checking the size and member offsets the PDB recorded, so
that compiling the output against the real headers catches any layout
the reconstruction got wrong.
"""

import sys
from collections import namedtuple

from pdbdump.errors import Malformed, TypeDecodeError
from pdbdump.logger import getlogger
from pdbdump.resolver import TypeResolver
from pdbdump.tpi import AGGREGATE_KINDS, is_unnamed, iter_fields, parse_type, record_kind

logger = getlogger("Printer")

Assertion = namedtuple("Assertion", ["path", "offset"])
Declaration = namedtuple("Declaration", ["index", "name", "text", "asserts"])
DumpResult = namedtuple("DumpResult", ["printed", "failed"])


class DeclarationPrinter(TypeResolver):

    def print_type(self, ti):
        """Declaration for the record at ti, or None if it isn't one we print.

        Forward references and compiler-named aggregates are skipped: the
        former are printed where they are defined, the latter inline in
        whatever contains them.
        """
        record = self.tpi.record(ti)
        kind = record_kind(record)
        if kind != "LF_ENUM" and kind not in AGGREGATE_KINDS:
            return None

        lf = parse_type(record)
        if lf.prop.fwdref or is_unnamed(lf.name):
            return None
        if kind == "LF_ENUM":
            return self.print_enum(ti, lf)
        return self.print_aggregate(ti, lf)

    def print_enum(self, ti, lf):
        entries = []
        expected = 0
        if lf.fieldlist:
            for field in iter_fields(self.tpi.record(lf.fieldlist)):
                if field.leaf_type != "LF_ENUMERATE":
                    raise Malformed("%s in the field list of enum %s" % (field.leaf_type, lf.name))
                if field.value == expected:
                    entries.append(field.name)
                else:
                    entries.append("%s = %d" % (field.name, field.value))
                expected = field.value + 1

        lines = ["enum %s {" % lf.name]
        lines += [self.indent + e + "," for e in entries[:-1]]
        lines += [self.indent + e for e in entries[-1:]]
        lines.append("};")
        return Declaration(ti, lf.name, "\n".join(lines), [])

    def print_aggregate(self, ti, lf):
        keyword = "union" if lf.leaf_type == "LF_UNION" else "struct"
        lines = ["%s %s {" % (keyword, lf.name)]
        lines += self.format_body(lf, self.indent)
        lines.append("};")

        asserts = ["static_assert(sizeof(%s) == 0x%x);" % (lf.name, lf.size)]
        for a in self.collect_assertions(lf):
            asserts.append("static_assert(offsetof(%s, %s) == 0x%x);" % (lf.name, a.path, a.offset))
        return Declaration(ti, lf.name, "\n".join(lines), asserts)

    def collect_assertions(self, lf, prefix = "", base = 0, depth = 0):
        """Offsets worth checking for the members of lf.

        Members of anonymous structs and unions are reached through their
        dotted path. Bitfields have no offset to take.
        """
        self._check_depth(depth, lf.fieldlist)
        result = []
        for m in self.collect_members(lf):
            bit_offset = base + m.bit_offset
            path = prefix + m.name
            if not self.tpi.is_builtin(m.index):
                member = self.lookup(m.index)
                if member.leaf_type == "LF_BITFIELD":
                    continue
                if member.leaf_type in AGGREGATE_KINDS and is_unnamed(member.name):
                    nested = self.resolve(m.index, member)[1]
                    inner = path + "." if m.name else prefix
                    result += self.collect_assertions(nested, inner, bit_offset, depth + 1)
                    continue
            result.append(Assertion(path, bit_offset // 8))
        return result


def synthesize(tpi, printer = None):
    """Yield (type index, Declaration or exception) for each printable record.

    A record that fails to decode doesn't stop the ones after it.
    """
    if printer is None:
        printer = DeclarationPrinter(tpi)
    for ti, _ in tpi:
        try:
            decl = printer.print_type(ti)
        except TypeDecodeError as e:
            yield ti, e
            continue
        if decl is not None:
            yield ti, decl


def dump_types(tpi, out = sys.stdout):
    """Write every declaration in tpi to out, then all of their assertions."""
    printed = failed = 0
    asserts = []
    for ti, result in synthesize(tpi):
        if isinstance(result, Exception):
            logger.warning("type 0x%x: %s: %s", ti, type(result).__name__, result)
            failed += 1
            continue
        out.write(result.text + "\n\n")
        asserts += result.asserts
        printed += 1

    for a in asserts:
        out.write(a + "\n")

    logger.info("printed %d types, %d failed", printed, failed)
    return DumpResult(printed, failed)
