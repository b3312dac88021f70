"""classbook: academic records, lending ledger and attendance for small schools."""

__version__ = "0.1.0"
