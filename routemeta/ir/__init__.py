"""Declaration graph and metadata IR.

``program`` parses decorated Python source into a queryable declaration
graph without importing it. ``models`` holds the normalized description that
the metadata generators build and the route generator consumes:
- Controllers, methods, parameters and responses
- Security requirements
- Types, including the registry of named reference types
"""
