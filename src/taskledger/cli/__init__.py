"""taskledger command-line interface."""
