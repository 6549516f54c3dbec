"""
models/ - Domain Layer
======================
Plain dataclasses: the condition model fed to the query generator,
the operator vocabulary, and the record shapes returned by repositories.
"""
