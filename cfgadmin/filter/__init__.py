"""Filter — LDAP-style predicates for querying registered configurations."""

from cfgadmin.filter.ldap_filter import Filter, InvalidFilterSyntax, compile_filter

__all__ = ["Filter", "InvalidFilterSyntax", "compile_filter"]
