"""``stk`` command-line interface for the convention engine."""
