"""A stand-in host application whose internals the tests bind against."""
