"""
Tests for destination identifier sanitization.
"""

import unittest

from sqldb_migration.core.identifiers import sanitize_identifier


class TestSanitizeIdentifier(unittest.TestCase):
    """Tests for sanitize_identifier."""

    def test_plain_name_unchanged(self):
        self.assertEqual(sanitize_identifier("order_id"), "order_id")

    def test_whitespace_replaced(self):
        self.assertEqual(sanitize_identifier("unit price"), "unit_price")
        self.assertEqual(sanitize_identifier("a  b"), "a__b")
        self.assertEqual(sanitize_identifier("line\tone\ntwo"), "line_one_two")

    def test_percent_removed(self):
        self.assertEqual(sanitize_identifier("growth %"), "growth_")
        self.assertEqual(sanitize_identifier("%done%"), "done")

    def test_idempotent(self):
        """Test that sanitizing twice equals sanitizing once."""
        names = ["unit price", "growth %", " % ", "a  b", "", "%%", "x\r\ny"]
        for name in names:
            once = sanitize_identifier(name)
            self.assertEqual(sanitize_identifier(once), once)
            self.assertNotIn("%", once)
            self.assertFalse(any(ch.isspace() for ch in once), repr(once))


if __name__ == "__main__":
    unittest.main()
