"""
HTTP glue around the query layer. Keep SQL out of here.
"""
