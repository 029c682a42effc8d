"""
relquery Domain Layer

Query construction, planning and execution.
"""
