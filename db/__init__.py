"""
db/ - Database Layer
====================
Handles PostgreSQL connections, transactions, schema initialization and the
SQL generator that turns condition maps into parameterized statements.
This layer is the lowest in the architecture and depends only on models/.
"""
