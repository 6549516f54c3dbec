"""
repositories/ - Data Access Layer
==================================
A generic, table-bound Repository turns condition maps into SQL through the
generator and runs it on the pool or on an open transaction.
Table-specific repositories only pick the table, projection and record shape.
"""
