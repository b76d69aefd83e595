"""Library Hub - CLI and validation helpers

- Input validators (validators.py)
- Plain/JSON/Rich output for the CLI (ui_helpers.py)
"""
