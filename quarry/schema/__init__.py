"""Schema layer: table, column and view DDL builders and compilers."""
