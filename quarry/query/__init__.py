"""Query layer: fluent builder, statement model and the base compiler."""
