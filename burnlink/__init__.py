"""burnlink: self-destructing notes and redirect links with exact view budgets."""

__version__ = "0.1.0"
