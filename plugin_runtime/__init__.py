"""Plugin extensibility runtime for the blog: registry, asset proxy, install state and client loader."""
