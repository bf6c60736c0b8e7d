"""HTTP surface of the approval chain service."""
