"""matlas command line interface."""
