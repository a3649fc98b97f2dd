"""Use-case facades exposed to calling modules."""
