"""Settlement: full-and-final pay for a leaving employee."""
