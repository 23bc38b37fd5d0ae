"""Core configlock functionality: paths, config I/O, scheduling, exclusions."""
