"""
services/ - Business Logic Layer
================================
Services combine repositories into use cases. No SQL lives here.
"""
