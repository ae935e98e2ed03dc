"""Chat gateway tests."""
