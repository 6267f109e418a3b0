from erpforge.core.tabular.decoder import SUPPORTED_SUFFIXES, DecodedTable, TabularDecodeError, decode_table, read_table

__all__ = ["SUPPORTED_SUFFIXES", "DecodedTable", "TabularDecodeError", "decode_table", "read_table"]
