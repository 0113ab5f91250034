"""Core (UI-agnostic) weekly stock allocation logic.

This package contains:
- spreadsheet loading (XLSX/CSV -> RawRecord)
- the allocation engine (real stock, allocatable, listing split, change triggers)
- the weekly record builder and the week-keyed output store
- export renderers and summary payloads (JSON-serializable)
"""
