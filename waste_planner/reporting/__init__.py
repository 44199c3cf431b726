"""
waste_planner.reporting: terminal formatting and flat-file export of a
project's waste strategy.

It does NOT compute anything; every function takes an already-built
``WasteStrategy`` (or its ``to_dict()`` form).

Modules:
  formatters — ASCII tables for the ``strategy`` CLI command.
  export     — CSV/JSON flat-file export helpers.
"""
