# pegcraft/__init__.py
"""pegcraft – PEG grammars compiled into Python matchers."""

__version__ = "0.1.0"
