"""
Services

- sheets/ - sheet value synchronization
"""
