"""Pure value objects shared by every HR module. Zero I/O."""
