"""Built-in tag callbacks, registered by :mod:`brace.environment.actions`."""
