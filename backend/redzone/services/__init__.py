"""
Services for Redzone Fantasy.
"""
