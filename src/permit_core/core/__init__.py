"""Clock, settings and errors shared by the cache and emitter."""
