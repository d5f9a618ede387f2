# qgen/core: configuration, logging and the exception hierarchy.
