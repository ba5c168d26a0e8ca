"""
Identifier normalization for destination column names

Bulk load column lists cannot reference names containing ``%`` or whitespace.
``sanitize_identifier`` removes every ``%`` and replaces each whitespace
character (anything for which ``str.isspace`` is true) with an underscore.
The output contains neither, so applying it twice equals applying it once.
"""

import re


_PERCENT = re.compile(r"%")
_WHITESPACE = re.compile(r"\s")


def sanitize_identifier(name: str) -> str:
    """Return ``name`` without ``%`` characters and with whitespace as ``_``.

    Examples::

        sanitize_identifier("unit price")    ->  "unit_price"
        sanitize_identifier("growth %")      ->  "growth_"
        sanitize_identifier("a  b")          ->  "a__b"
    """
    without_percent = _PERCENT.sub("", name)
    return _WHITESPACE.sub("_", without_percent)
